"""Exceptions raised by the reminder core."""

from __future__ import annotations


class ReminderError(Exception):
    """Base class for reminder engine errors."""


class GatewayError(ReminderError):
    """A data store read or write failed."""


class LedgerWriteError(ReminderError):
    """Marking or unmarking a message failed; the caller must be told."""

    def __init__(self, message_id: str, action: str) -> None:
        super().__init__(f"Could not {action} message {message_id}")
        self.message_id = message_id
        self.action = action
