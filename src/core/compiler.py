"""Message compilation (core domain).

Templates use two placeholder syntaxes for the same variables:
``{{nome}}`` and ``*nome*``. Both are substituted by one regex pass over a
single table, so a substituted value is never scanned again.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
import logging
import re
from typing import Any, Mapping

from core.config import ReminderConfig
from core.rules_engine import today_of

LOGGER = logging.getLogger(__name__)

# Placeholder name (as written by operators) -> logical variable.
PLACEHOLDERS: dict[str, str] = {
    "nome": "first_name",
    "nome_completo": "full_name",
    "cognome": "last_name",
    "data_appuntamento": "appointment_date",
    "ora_appuntamento": "appointment_time",
    "ora": "appointment_time",
    "targa": "plate",
    "modello_veicolo": "vehicle_model",
    "telefono": "phone",
    "email": "email",
    "password": "password",
    "data_oggi": "today",
    "data_domani": "tomorrow",
    "indirizzo": "address",
    "eta": "age",
    "anni": "age",
}

DATE_VARIABLES = {"appointment_date", "today", "tomorrow"}

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_]+)\s*\}\}|\*([A-Za-z_]+)\*")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def split_full_name(full_name: str) -> tuple[str, str]:
    """Split on the first space: ("Mario", "De Rossi") for "Mario De Rossi"."""

    first, _, last = (full_name or "").strip().partition(" ")
    return first, last.strip()


def format_date(value: Any, date_format: str) -> str:
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return value.strftime(date_format)
    if isinstance(value, date):
        return value.strftime(date_format)
    text = str(value)
    if _ISO_DATE_RE.match(text):
        try:
            return date.fromisoformat(text[:10]).strftime(date_format)
        except ValueError:
            return text
    # Labels such as "Da definire" pass through untouched.
    return text


def build_variables(context: Mapping[str, Any], now: datetime, config: ReminderConfig) -> dict[str, str]:
    """Resolve every logical variable to its rendered string."""

    today = today_of(now)
    full_name = str(context.get("full_name") or "").strip()
    first_name, last_name = split_full_name(full_name)
    raw: dict[str, Any] = {
        "first_name": first_name,
        "full_name": full_name,
        "last_name": last_name,
        "appointment_date": context.get("appointment_date"),
        "appointment_time": context.get("appointment_time"),
        "plate": context.get("plate"),
        "vehicle_model": context.get("vehicle_model"),
        "phone": context.get("phone"),
        "email": context.get("email"),
        "password": context.get("password"),
        "today": today,
        "tomorrow": today + timedelta(days=1),
        "address": context.get("address"),
        "age": context.get("age"),
    }

    rendered: dict[str, str] = {}
    for name, value in raw.items():
        if name in DATE_VARIABLES:
            rendered[name] = format_date(value, config.date_format)
        elif value is None:
            rendered[name] = ""
        else:
            rendered[name] = str(value)
    return rendered


def compile_message(
    content: str,
    context: Mapping[str, Any],
    now: datetime,
    config: ReminderConfig,
) -> str:
    """Return the template content with all known placeholders replaced.

    Unknown ``{{...}}`` placeholders become empty strings. Unknown
    ``*word*`` spans are WhatsApp bold text and are left alone.
    """

    variables = build_variables(context, now, config)

    def _substitute(match: re.Match) -> str:
        braced, starred = match.group(1), match.group(2)
        name = (braced or starred).lower()
        variable = PLACEHOLDERS.get(name)
        if variable is not None:
            return variables[variable]
        if braced is not None:
            LOGGER.debug("Unknown placeholder {{%s}} dropped", braced)
            return ""
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_substitute, content or "")
