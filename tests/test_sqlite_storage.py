from __future__ import annotations

import asyncio
import sqlite3
from datetime import date, datetime, timedelta, timezone

from adapters.sqlite_storage import SQLiteStorage
from core.ledger import DeliveryLedger
from core.processor import ReminderOrchestrator


def _storage(tmp_path) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "officina.db"))
    storage.init_db()
    return storage


def test_seed_and_list_entities(tmp_path) -> None:
    storage = _storage(tmp_path)
    counts = storage.seed(
        {
            "clients": [
                {
                    "id": "C1",
                    "name": "Mario",
                    "surname": "Rossi",
                    "birth_date": "1985-07-01",
                    "created_at": 1719820800000,
                }
            ],
            "quotes": [
                {
                    "id": "Q1",
                    "client_id": "C1",
                    "client_name": "Mario Rossi",
                    "plate": "AB123CD",
                    "status": "inviato",
                    "updated_at": "2025-07-01T08:00:00Z",
                }
            ],
            "templates": [{"id": "T1", "title": "Auguri", "category": "cortesia", "content": "Auguri *nome*"}],
        }
    )

    assert counts == {"clients": 1, "quotes": 1, "appointments": 0, "templates": 1}

    clients = asyncio.run(storage.list_clients())
    quotes = asyncio.run(storage.list_quotes())
    templates = asyncio.run(storage.list_templates())

    assert clients[0].full_name == "Mario Rossi"
    assert clients[0].birth_date == date(1985, 7, 1)
    assert clients[0].created_at == datetime(2024, 7, 1, 8, 0, tzinfo=timezone.utc)
    assert quotes[0].updated_at == datetime(2025, 7, 1, 8, 0, tzinfo=timezone.utc)
    assert templates[0].ordering_key == 0


def test_appointments_on_a_given_day(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.seed(
        {
            "appointments": [
                {"id": "A1", "client_name": "Mario Rossi", "date": "2025-07-01", "time": "10:00"},
                {"id": "A2", "client_name": "Anna Bianchi", "date": "2025-07-01T00:00:00", "time": "08:30"},
                {"id": "A3", "client_name": "Luca Verdi", "date": "2025-07-02", "time": "09:00"},
            ]
        }
    )

    today = asyncio.run(storage.get_appointments_on(date(2025, 7, 1)))

    assert [item.id for item in today] == ["A2", "A1"]
    assert today[0].date == date(2025, 7, 1)


def test_marking_twice_keeps_one_record(tmp_path) -> None:
    storage = _storage(tmp_path)

    asyncio.run(storage.mark_message_sent("feedback_Q1", "Giulia"))
    first = asyncio.run(storage.list_sent_messages())
    asyncio.run(storage.mark_message_sent("feedback_Q1", "Paolo"))
    second = asyncio.run(storage.list_sent_messages())

    assert len(second) == 1
    assert second == first
    assert second[0].sent_by == "Giulia"
    assert asyncio.run(storage.is_message_sent("feedback_Q1")) is True


def test_unmarking_unknown_id_is_noop(tmp_path) -> None:
    storage = _storage(tmp_path)

    asyncio.run(storage.unmark_message_sent("compleanno_C404"))

    assert asyncio.run(storage.list_sent_messages()) == []


def test_cleanup_removes_only_expired_records(tmp_path) -> None:
    storage = _storage(tmp_path)
    asyncio.run(storage.mark_message_sent("reminder_oggi_A1"))
    old = (datetime.now(timezone.utc) - timedelta(days=60)).isoformat()
    with sqlite3.connect(storage._db_path) as conn:
        conn.execute(
            "INSERT INTO sent_messages (message_id, sent_at, sent_by) VALUES (?, ?, ?)",
            ("reminder_oggi_A0", old, None),
        )

    removed = asyncio.run(storage.cleanup_sent(30))

    assert removed == 1
    remaining = asyncio.run(storage.list_sent_messages())
    assert [record.message_id for record in remaining] == ["reminder_oggi_A1"]


def test_sweep_against_sqlite(tmp_path) -> None:
    storage = _storage(tmp_path)
    now = datetime(2025, 7, 1, 10, 0)
    storage.seed(
        {
            "appointments": [
                {
                    "id": "AP017",
                    "client_name": "Anna Bianchi",
                    "date": "2025-07-02",
                    "time": "09:30",
                    "plate": "XY987ZW",
                    "status": "programmato",
                }
            ],
            "templates": [
                {
                    "id": "T1",
                    "title": "Reminder appuntamento domani",
                    "category": "Domani",
                    "content": "Ciao {{nome}}, ti aspettiamo il {{data_appuntamento}} alle *ora*.",
                }
            ],
        }
    )
    orchestrator = ReminderOrchestrator(storage, DeliveryLedger(storage), clock=lambda: now)

    messages = asyncio.run(orchestrator.sweep())

    assert [message.id for message in messages] == ["reminder_domani_AP017"]
    assert messages[0].text == "Ciao Anna, ti aspettiamo il 02/07/2025 alle 09:30."

    assert asyncio.run(orchestrator.toggle_sent("reminder_domani_AP017")) is True
    again = asyncio.run(orchestrator.sweep())
    assert again[0].sent is True


def test_sweep_sees_marks_made_by_another_process(tmp_path) -> None:
    storage = _storage(tmp_path)
    now = datetime(2025, 7, 1, 10, 0)
    storage.seed(
        {
            "clients": [{"id": "C3", "name": "Mario", "surname": "Rossi", "birth_date": "1985-07-01"}],
            "templates": [{"id": "T1", "title": "Auguri", "category": "cortesia", "content": "Auguri *nome*"}],
        }
    )
    panel = ReminderOrchestrator(storage, DeliveryLedger(storage), clock=lambda: now)
    cli_ledger = DeliveryLedger(SQLiteStorage(storage._db_path))

    first = asyncio.run(panel.sweep())
    asyncio.run(cli_ledger.mark_sent("compleanno_C3"))
    after_mark = asyncio.run(panel.sweep())

    assert [(message.id, message.sent) for message in first] == [("compleanno_C3", False)]
    assert [(message.id, message.sent) for message in after_mark] == [("compleanno_C3", True)]

    asyncio.run(cli_ledger.unmark_sent("compleanno_C3"))
    assert asyncio.run(panel.toggle_sent("compleanno_C3")) is True
    assert asyncio.run(cli_ledger.is_sent("compleanno_C3")) is True


def test_malformed_row_does_not_hide_the_rest_of_the_table(tmp_path) -> None:
    storage = _storage(tmp_path)
    now = datetime(2025, 7, 1, 10, 0)
    storage.seed(
        {
            "clients": [
                {"id": "C1", "name": "Mario", "surname": "Rossi", "birth_date": "1985-07-01"},
                {"id": "C2", "name": "Anna", "surname": "Bianchi", "created_at": "01/07/2025 10:00"},
            ],
            "appointments": [
                {"id": "A1", "client_name": "Luca Verdi", "date": "2025-07-01", "time": "10:00"},
                {"id": "A2", "client_name": "Sara Neri", "date": "domani", "time": "11:00"},
            ],
            "templates": [{"id": "T1", "title": "Auguri", "category": "cortesia", "content": "Auguri *nome*"}],
        }
    )

    clients = asyncio.run(storage.list_clients())
    appointments = asyncio.run(storage.list_appointments())
    orchestrator = ReminderOrchestrator(storage, DeliveryLedger(storage), clock=lambda: now)
    messages = asyncio.run(orchestrator.sweep())

    assert [client.id for client in clients] == ["C1"]
    assert [appointment.id for appointment in appointments] == ["A1"]
    assert [message.id for message in messages] == ["compleanno_C1"]
