"""Deduplication helpers (core domain).

A compiled message id is a pure function of (trigger type, subject id), so
the same condition scanned twice, or reached via a status-change event,
always lands on the same ledger key.
"""

from __future__ import annotations

from typing import Optional, Tuple

from core.models import TriggerType

# Prefixes match the keys already stored in the sent_messages ledger.
MESSAGE_ID_PREFIXES: dict[TriggerType, str] = {
    TriggerType.QUOTE_PROCESSED: "preventivo_elaborato",
    TriggerType.QUOTE_STALE_REMINDER: "reminder_15giorni",
    TriggerType.APPOINTMENT_CONFIRMATION: "conferma_appuntamento",
    TriggerType.REMINDER_TODAY: "reminder_oggi",
    TriggerType.REMINDER_TOMORROW: "reminder_domani",
    TriggerType.NEW_CLIENT_CREDENTIALS: "credenziali_cliente",
    TriggerType.WORK_CLOSED: "chiusura_lavoro",
    TriggerType.FEEDBACK_REQUEST: "feedback",
    TriggerType.BIRTHDAY: "compleanno",
}

# Longest first so "reminder_15giorni" is not mistaken for a shorter prefix.
_PREFIX_LOOKUP = sorted(
    ((prefix, trigger) for trigger, prefix in MESSAGE_ID_PREFIXES.items()),
    key=lambda item: len(item[0]),
    reverse=True,
)


def build_message_id(trigger_type: TriggerType, subject_entity_id: str) -> str:
    """Return the deterministic message id for a trigger on one entity."""

    if not subject_entity_id:
        raise ValueError("subject_entity_id is required")
    return f"{MESSAGE_ID_PREFIXES[trigger_type]}_{subject_entity_id}"


def split_message_id(message_id: str) -> Optional[Tuple[TriggerType, str]]:
    """Split a message id into (trigger_type, subject_entity_id)."""

    for prefix, trigger in _PREFIX_LOOKUP:
        head = f"{prefix}_"
        if message_id.startswith(head) and len(message_id) > len(head):
            return trigger, message_id[len(head):]
    return None
