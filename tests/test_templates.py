from __future__ import annotations

from core.models import MessageTemplate
from core.templates import resolve_template


def _template(template_id: str, title: str, category: str, content: str = "", ordering_key: int = 0) -> MessageTemplate:
    return MessageTemplate(
        id=template_id,
        title=title,
        category=category,
        content=content,
        ordering_key=ordering_key,
    )


CATALOG = [
    _template("T1", "Saluti generici", "feedback", "Grazie per averci scelto", 1),
    _template("T2", "Valutazione servizio", "feedback", "Lasciaci un voto", 2),
    _template("T3", "Richiesta Feedback", "feedback", "Come è andata?", 3),
    _template("T4", "Auguri", "Cortesia", "Buon compleanno *nome*", 1),
]


def test_empty_category_is_unresolved() -> None:
    assert resolve_template(CATALOG, "preventivi", ["preventivo"]) is None


def test_primary_keyword_wins_over_catalog_order() -> None:
    chosen = resolve_template(CATALOG, "feedback", ["feedback", "recensione"], ["valutazione"])

    assert chosen.id == "T3"


def test_fallback_keyword_beats_first_of_category() -> None:
    chosen = resolve_template(CATALOG, "feedback", ["recensione"], ["valutazione"])

    assert chosen.id == "T2"


def test_first_of_category_is_last_resort() -> None:
    chosen = resolve_template(CATALOG, "feedback", ["recensione"], ["stelle"])

    assert chosen.id == "T1"


def test_keywords_match_content_case_insensitively() -> None:
    chosen = resolve_template(CATALOG, "feedback", ["VOTO"])

    assert chosen.id == "T2"


def test_category_comparison_ignores_case() -> None:
    chosen = resolve_template(CATALOG, "cortesia", ["compleanno"])

    assert chosen.id == "T4"


def test_catalog_order_follows_ordering_key() -> None:
    catalog = [
        _template("late", "Promemoria B", "oggi", "", 9),
        _template("early", "Promemoria A", "oggi", "", 1),
    ]

    assert resolve_template(catalog, "oggi", ["nulla"]).id == "early"
