"""SQLite storage adapter.

Implements the core GatewayPort using a simple SQLite database. Each call
opens its own connection and runs in a worker thread so the event loop is
never blocked by disk I/O.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional, TypeVar

from core.errors import GatewayError
from core.models import Appointment, Client, MessageTemplate, Quote, SentMessageRecord

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)) or str(value).isdigit():
        # Epoch milliseconds, as written by the web client. TEXT columns hand
        # them back as digit strings.
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    text = str(value).replace("Z", "+00:00")
    return datetime.fromisoformat(text)


def _parse_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    return date.fromisoformat(str(value)[:10])


def _map_rows(table: str, mapper: Callable[[sqlite3.Row], T], rows: list[sqlite3.Row]) -> list[T]:
    """Map rows one by one; a malformed row is logged and skipped."""

    mapped: list[T] = []
    for row in rows:
        try:
            mapped.append(mapper(row))
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Skipping malformed %s row %s: %s", table, row["id"], exc)
    return mapped


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the GatewayPort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise GatewayError(f"SQLite error in {func.__name__}: {exc}") from exc

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - clients, quotes, appointments, templates: local mirror of the store
        - sent_messages: delivery ledger keyed by compiled message id
        """

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS clients (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    surname TEXT,
                    phone TEXT,
                    email TEXT,
                    password TEXT,
                    address TEXT,
                    birth_date TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS quotes (
                    id TEXT PRIMARY KEY,
                    client_id TEXT,
                    client_name TEXT,
                    phone TEXT,
                    plate TEXT,
                    model TEXT,
                    status TEXT,
                    address TEXT,
                    appointment_date TEXT,
                    appointment_time TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS appointments (
                    id TEXT PRIMARY KEY,
                    client_id TEXT,
                    client_name TEXT,
                    date TEXT NOT NULL,
                    time TEXT,
                    phone TEXT,
                    plate TEXT,
                    model TEXT,
                    address TEXT,
                    status TEXT,
                    quote_id TEXT
                )
                """
            )
            # ordering_key mirrors the operators' manual sort order.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS templates (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    category TEXT NOT NULL,
                    content TEXT NOT NULL,
                    ordering_key INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            # sent_messages holds one row per handed-off message id.
            # Fields:
            # - message_id: deterministic compiled message id (PRIMARY KEY)
            # - sent_at: when the operator marked it, for ordering and TTL
            # - sent_by: operator name, if known
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sent_messages (
                    message_id TEXT PRIMARY KEY,
                    sent_at TIMESTAMP NOT NULL,
                    sent_by TEXT
                )
                """
            )

    # -- row mapping -------------------------------------------------------

    @staticmethod
    def _client(row: sqlite3.Row) -> Client:
        return Client(
            id=row["id"],
            name=row["name"] or "",
            surname=row["surname"] or "",
            phone=row["phone"] or "",
            email=row["email"] or "",
            password=row["password"] or "",
            address=row["address"] or "",
            birth_date=_parse_date(row["birth_date"]),
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    @staticmethod
    def _quote(row: sqlite3.Row) -> Quote:
        return Quote(
            id=row["id"],
            client_id=row["client_id"] or "",
            client_name=row["client_name"] or "",
            phone=row["phone"] or "",
            plate=row["plate"] or "",
            model=row["model"] or "",
            status=row["status"] or "",
            address=row["address"] or "",
            appointment_date=row["appointment_date"],
            appointment_time=row["appointment_time"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    @staticmethod
    def _appointment(row: sqlite3.Row) -> Appointment:
        return Appointment(
            id=row["id"],
            client_id=row["client_id"] or "",
            client_name=row["client_name"] or "",
            date=_parse_date(row["date"]),
            time=row["time"] or "",
            phone=row["phone"] or "",
            plate=row["plate"] or "",
            model=row["model"] or "",
            address=row["address"] or "",
            status=row["status"] or "",
            quote_id=row["quote_id"],
        )

    # -- blocking queries --------------------------------------------------

    def _select(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._connect() as conn:
            return conn.execute(sql, params).fetchall()

    def _list_clients(self) -> list[Client]:
        return _map_rows("clients", self._client, self._select("SELECT * FROM clients ORDER BY id"))

    def _list_quotes(self) -> list[Quote]:
        return _map_rows("quotes", self._quote, self._select("SELECT * FROM quotes ORDER BY id"))

    def _list_appointments(self) -> list[Appointment]:
        rows = self._select("SELECT * FROM appointments ORDER BY date, time, id")
        return _map_rows("appointments", self._appointment, rows)

    def _appointments_on(self, day: date) -> list[Appointment]:
        rows = self._select(
            "SELECT * FROM appointments WHERE substr(date, 1, 10) = ? ORDER BY time, id",
            (day.isoformat(),),
        )
        return _map_rows("appointments", self._appointment, rows)

    def _list_templates(self) -> list[MessageTemplate]:
        rows = self._select("SELECT * FROM templates ORDER BY ordering_key, rowid")
        return [
            MessageTemplate(
                id=row["id"],
                title=row["title"],
                category=row["category"],
                content=row["content"],
                ordering_key=int(row["ordering_key"] or 0),
            )
            for row in rows
        ]

    def _is_sent(self, message_id: str) -> bool:
        rows = self._select("SELECT 1 FROM sent_messages WHERE message_id = ?", (message_id,))
        return bool(rows)

    def _mark_sent(self, message_id: str, sent_by: Optional[str]) -> None:
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            # A second mark keeps the original timestamp.
            conn.execute(
                """
                INSERT OR IGNORE INTO sent_messages (message_id, sent_at, sent_by)
                VALUES (?, ?, ?)
                """,
                (message_id, now.isoformat(), sent_by),
            )

    def _unmark_sent(self, message_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM sent_messages WHERE message_id = ?", (message_id,))

    def _list_sent(self) -> list[SentMessageRecord]:
        rows = self._select("SELECT * FROM sent_messages ORDER BY sent_at DESC")
        return [
            SentMessageRecord(
                message_id=row["message_id"],
                sent_at=_parse_datetime(row["sent_at"]),
                sent_by=row["sent_by"],
            )
            for row in rows
        ]

    def _cleanup_sent(self, ttl_days: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=ttl_days)
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM sent_messages WHERE sent_at < ?",
                (cutoff.isoformat(),),
            )
            return cur.rowcount

    # -- GatewayPort -------------------------------------------------------

    async def list_clients(self) -> list[Client]:
        return await self._run(self._list_clients)

    async def list_quotes(self) -> list[Quote]:
        return await self._run(self._list_quotes)

    async def list_appointments(self) -> list[Appointment]:
        return await self._run(self._list_appointments)

    async def list_templates(self) -> list[MessageTemplate]:
        return await self._run(self._list_templates)

    async def get_appointments_on(self, day: date) -> list[Appointment]:
        return await self._run(self._appointments_on, day)

    async def is_message_sent(self, message_id: str) -> bool:
        return await self._run(self._is_sent, message_id)

    async def mark_message_sent(self, message_id: str, sent_by: Optional[str] = None) -> None:
        await self._run(self._mark_sent, message_id, sent_by)

    async def unmark_message_sent(self, message_id: str) -> None:
        await self._run(self._unmark_sent, message_id)

    async def list_sent_messages(self) -> list[SentMessageRecord]:
        return await self._run(self._list_sent)

    async def cleanup_sent(self, ttl_days: int) -> int:
        return await self._run(self._cleanup_sent, ttl_days)

    # -- fixtures ----------------------------------------------------------

    def seed(self, data: dict[str, list[dict[str, Any]]]) -> dict[str, int]:
        """Upsert entities from a JSON-shaped dict and return counts per table.

        Keys are table names; rows use the column names of ``init_db``.
        """

        columns = {
            "clients": (
                "id", "name", "surname", "phone", "email", "password",
                "address", "birth_date", "created_at", "updated_at",
            ),
            "quotes": (
                "id", "client_id", "client_name", "phone", "plate", "model", "status",
                "address", "appointment_date", "appointment_time", "created_at", "updated_at",
            ),
            "appointments": (
                "id", "client_id", "client_name", "date", "time", "phone",
                "plate", "model", "address", "status", "quote_id",
            ),
            "templates": ("id", "title", "category", "content", "ordering_key"),
        }
        counts: dict[str, int] = {}
        with self._connect() as conn:
            for table, names in columns.items():
                rows = data.get(table, [])
                placeholders = ", ".join("?" for _ in names)
                sql = f"INSERT OR REPLACE INTO {table} ({', '.join(names)}) VALUES ({placeholders})"
                for row in rows:
                    if "id" not in row:
                        raise ValueError(f"{table} row without id: {row}")
                    values = [row.get(name) for name in names]
                    if table == "templates" and values[-1] is None:
                        values[-1] = 0
                    conn.execute(sql, values)
                counts[table] = len(rows)
        return counts
