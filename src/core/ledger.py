"""Delivery ledger (core domain).

The persisted sent_messages table is the single source of truth. A local
read-through cache serves point lookups between sweeps. It is dropped on
every mark/unmark, and each sweep refills it from storage so changes made
by other processes are picked up.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.errors import LedgerWriteError
from core.models import SentMessageRecord
from core.ports import GatewayPort

LOGGER = logging.getLogger(__name__)


class DeliveryLedger:
    """Idempotent mark/unmark tracking of handed-off message ids."""

    def __init__(self, gateway: GatewayPort, operator: Optional[str] = None) -> None:
        self._gateway = gateway
        self._operator = operator
        self._cache: Optional[dict[str, SentMessageRecord]] = None

    def invalidate(self) -> None:
        self._cache = None

    async def sent_records(self, refresh: bool = False) -> dict[str, SentMessageRecord]:
        """Return all sent records keyed by message id, filling the cache.

        ``refresh`` rereads storage so marks made by other processes show up.
        """

        if refresh or self._cache is None:
            records = await self._gateway.list_sent_messages()
            self._cache = {record.message_id: record for record in records}
        return dict(self._cache)

    async def is_sent(self, message_id: str) -> bool:
        if self._cache is not None:
            return message_id in self._cache
        return await self._gateway.is_message_sent(message_id)

    async def mark_sent(self, message_id: str, sent_by: Optional[str] = None) -> None:
        """Record a hand-off. Marking twice is a no-op for the caller."""

        self.invalidate()
        try:
            await self._gateway.mark_message_sent(message_id, sent_by or self._operator)
        except Exception as exc:
            LOGGER.warning("Failed to mark %s as sent: %s", message_id, exc)
            raise LedgerWriteError(message_id, "mark") from exc
        LOGGER.info("Message %s marked as sent", message_id)

    async def unmark_sent(self, message_id: str) -> None:
        """Undo a hand-off. Unmarking an unknown id is a no-op."""

        self.invalidate()
        try:
            await self._gateway.unmark_message_sent(message_id)
        except Exception as exc:
            LOGGER.warning("Failed to unmark %s: %s", message_id, exc)
            raise LedgerWriteError(message_id, "unmark") from exc
        LOGGER.info("Message %s moved back to pending", message_id)

    async def toggle(self, message_id: str, sent_by: Optional[str] = None) -> bool:
        """Flip the sent state and return the new value."""

        # Decide from storage; another operator may have flipped it meanwhile.
        self.invalidate()
        if await self.is_sent(message_id):
            await self.unmark_sent(message_id)
            return False
        await self.mark_sent(message_id, sent_by)
        return True

    async def cleanup(self, ttl_days: int) -> int:
        """Forget records older than ``ttl_days`` and return how many went."""

        self.invalidate()
        removed = await self._gateway.cleanup_sent(ttl_days)
        LOGGER.info("Ledger cleanup removed %s records", removed)
        return removed
