"""Template resolution (core domain).

Template titles are free text maintained by the workshop staff, so
resolution degrades in tiers instead of failing on a renamed template:
primary keywords, then fallback keywords, then the first template of the
category in catalog order.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from core.models import MessageTemplate

LOGGER = logging.getLogger(__name__)


def templates_in_category(catalog: Iterable[MessageTemplate], category: str) -> list[MessageTemplate]:
    """Return templates of a category, in catalog order (ordering key, then position)."""

    wanted = category.strip().lower()
    matching = [template for template in catalog if (template.category or "").strip().lower() == wanted]
    return sorted(matching, key=lambda template: template.ordering_key)


def _first_with_keyword(
    templates: Sequence[MessageTemplate],
    keywords: Iterable[str],
) -> Optional[MessageTemplate]:
    lowered = [keyword.lower() for keyword in keywords if keyword]
    if not lowered:
        return None
    for template in templates:
        haystack = f"{template.title or ''}\n{template.content or ''}".lower()
        if any(keyword in haystack for keyword in lowered):
            return template
    return None


def resolve_template(
    catalog: Iterable[MessageTemplate],
    category: str,
    primary_keywords: Iterable[str],
    fallback_keywords: Iterable[str] = (),
) -> Optional[MessageTemplate]:
    """Pick the single best template for a category, or None.

    Matching is a case-insensitive substring search over title and content.
    An empty category is the only way to get None back.
    """

    candidates = templates_in_category(catalog, category)
    if not candidates:
        return None

    match = _first_with_keyword(candidates, primary_keywords)
    if match is not None:
        return match

    match = _first_with_keyword(candidates, fallback_keywords)
    if match is not None:
        LOGGER.debug("Template %r picked by fallback keywords for %s", match.title, category)
        return match

    LOGGER.debug("Template %r picked as first of category %s", candidates[0].title, category)
    return candidates[0]
