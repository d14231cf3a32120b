from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest

from core.errors import LedgerWriteError
from core.ledger import DeliveryLedger
from core.models import SentMessageRecord


class FakeLedgerStore:
    def __init__(self) -> None:
        self.records: dict[str, SentMessageRecord] = {}
        self.fail_writes = False
        self.list_calls = 0

    async def is_message_sent(self, message_id: str) -> bool:
        return message_id in self.records

    async def mark_message_sent(self, message_id: str, sent_by: Optional[str] = None) -> None:
        if self.fail_writes:
            raise ConnectionError("store unreachable")
        self.records.setdefault(
            message_id,
            SentMessageRecord(message_id, datetime(2025, 7, 1, 9, tzinfo=timezone.utc), sent_by),
        )

    async def unmark_message_sent(self, message_id: str) -> None:
        if self.fail_writes:
            raise ConnectionError("store unreachable")
        self.records.pop(message_id, None)

    async def list_sent_messages(self) -> list[SentMessageRecord]:
        self.list_calls += 1
        return list(self.records.values())

    async def cleanup_sent(self, ttl_days: int) -> int:
        removed = len(self.records)
        self.records.clear()
        return removed


def test_mark_and_unmark_are_idempotent() -> None:
    store = FakeLedgerStore()
    ledger = DeliveryLedger(store)

    async def run() -> None:
        await ledger.mark_sent("feedback_Q1")
        await ledger.mark_sent("feedback_Q1")
        assert list(store.records) == ["feedback_Q1"]
        await ledger.unmark_sent("feedback_Q1")
        await ledger.unmark_sent("feedback_Q1")
        await ledger.unmark_sent("never_marked")
        assert store.records == {}

    asyncio.run(run())


def test_read_after_write_with_primed_cache() -> None:
    store = FakeLedgerStore()
    ledger = DeliveryLedger(store)

    async def run() -> None:
        assert await ledger.sent_records() == {}
        assert await ledger.is_sent("compleanno_C3") is False
        await ledger.mark_sent("compleanno_C3")
        assert await ledger.is_sent("compleanno_C3") is True
        await ledger.unmark_sent("compleanno_C3")
        assert await ledger.is_sent("compleanno_C3") is False

    asyncio.run(run())


def test_sent_records_are_cached_until_a_write() -> None:
    store = FakeLedgerStore()
    ledger = DeliveryLedger(store)

    async def run() -> None:
        await ledger.sent_records()
        await ledger.sent_records()
        assert store.list_calls == 1
        await ledger.mark_sent("reminder_oggi_A9")
        records = await ledger.sent_records()
        assert store.list_calls == 2
        assert "reminder_oggi_A9" in records

    asyncio.run(run())


def test_operator_is_stamped_on_marks() -> None:
    store = FakeLedgerStore()
    ledger = DeliveryLedger(store, operator="Giulia")

    asyncio.run(ledger.mark_sent("feedback_Q1"))
    asyncio.run(ledger.mark_sent("feedback_Q2", sent_by="Paolo"))

    assert store.records["feedback_Q1"].sent_by == "Giulia"
    assert store.records["feedback_Q2"].sent_by == "Paolo"


def test_toggle_returns_new_state() -> None:
    store = FakeLedgerStore()
    ledger = DeliveryLedger(store)

    assert asyncio.run(ledger.toggle("chiusura_lavoro_Q5")) is True
    assert asyncio.run(ledger.toggle("chiusura_lavoro_Q5")) is False
    assert store.records == {}


def test_write_failure_surfaces_as_ledger_error() -> None:
    store = FakeLedgerStore()
    store.fail_writes = True
    ledger = DeliveryLedger(store)

    with pytest.raises(LedgerWriteError) as excinfo:
        asyncio.run(ledger.mark_sent("preventivo_elaborato_Q1"))

    assert excinfo.value.message_id == "preventivo_elaborato_Q1"
    assert excinfo.value.action == "mark"
    assert store.records == {}

    with pytest.raises(LedgerWriteError):
        asyncio.run(ledger.unmark_sent("preventivo_elaborato_Q1"))


def test_cleanup_reports_removed_count() -> None:
    store = FakeLedgerStore()
    ledger = DeliveryLedger(store)
    asyncio.run(ledger.mark_sent("a_1"))
    asyncio.run(ledger.mark_sent("b_2"))

    assert asyncio.run(ledger.cleanup(30)) == 2
