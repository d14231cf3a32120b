"""Ports (interfaces) used by the reminder core.

Ports define the minimal contracts for the data store so the core can run
against SQLite, a remote database, or in-memory fakes in tests. Every call
is a suspension point; nothing else in the core awaits.
"""

from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from core.models import Appointment, Client, MessageTemplate, Quote, SentMessageRecord


class GatewayPort(Protocol):
    """Read access to business entities plus the delivery ledger table."""

    async def list_clients(self) -> list[Client]:
        ...

    async def list_quotes(self) -> list[Quote]:
        ...

    async def list_appointments(self) -> list[Appointment]:
        ...

    async def list_templates(self) -> list[MessageTemplate]:
        ...

    async def get_appointments_on(self, day: date) -> list[Appointment]:
        ...

    async def is_message_sent(self, message_id: str) -> bool:
        ...

    async def mark_message_sent(self, message_id: str, sent_by: Optional[str] = None) -> None:
        ...

    async def unmark_message_sent(self, message_id: str) -> None:
        ...

    async def list_sent_messages(self) -> list[SentMessageRecord]:
        ...

    async def cleanup_sent(self, ttl_days: int) -> int:
        ...
