from __future__ import annotations

from dataclasses import replace
from datetime import datetime

import pytest

from adapters.notification_formatting import format_reminder, format_sent_state
from core.models import CompiledMessage, Priority, TriggerType


def _message(**changes) -> CompiledMessage:
    message = CompiledMessage(
        id="reminder_domani_AP017",
        trigger_type=TriggerType.REMINDER_TOMORROW,
        recipient_name="Anna Bianchi",
        recipient_phone="3339876543",
        subject_label="XY987ZW - Appuntamento Domani",
        template_title="Reminder appuntamento domani",
        text="Ciao Anna, a domani alle 09:30. *Officina*",
        priority=Priority.MEDIUM,
    )
    return replace(message, **changes)


def test_sent_state_labels() -> None:
    assert format_sent_state(_message()) == "pending"
    assert format_sent_state(_message(sent=True)) == "sent"

    stamped = _message(sent=True, sent_at=datetime(2025, 7, 1, 9, 5))
    assert format_sent_state(stamped) == "sent 01-07-2025 09:05"
    assert format_sent_state(replace(stamped, sent_by="Giulia")) == "sent 01-07-2025 09:05 by Giulia"


def test_plain_card_contains_message_details() -> None:
    card = format_reminder(_message())

    lines = card.splitlines()
    assert lines[0] == "[MEDIUM] XY987ZW - Appuntamento Domani"
    assert "Anna Bianchi (3339876543)" in lines[1]
    assert "reminder_domani_AP017" in card
    assert "Ciao Anna, a domani alle 09:30. *Officina*" in lines


def test_rich_card_escapes_message_text() -> None:
    card = format_reminder(_message(text="Sconto [bold] solo oggi"), mode="rich")

    assert "Sconto \\[bold] solo oggi" in card
    assert "[yellow]MEDIUM[/]" in card


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        format_reminder(_message(), mode="html")
