"""Application entry point for the officina reminder engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.notification_formatting import format_reminder
from adapters.sqlite_storage import SQLiteStorage
from core.dedup import split_message_id
from core.errors import LedgerWriteError
from core.ledger import DeliveryLedger
from core.processor import ReminderOrchestrator, split_pending
from core.rules_engine import build_rules

NAME = "OFFICINA"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        # stderr keeps the printed reminder list clean for piping.
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/officina.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def build_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


def build_orchestrator(storage: Optional[SQLiteStorage] = None) -> ReminderOrchestrator:
    """Wire the orchestrator from settings; shared by the CLI and the panel."""

    storage = storage or build_storage()
    rules = build_rules(settings.RULE_OVERRIDES)
    logging.getLogger(__name__).info("%s reminder rules are loaded", len(rules))
    ledger = DeliveryLedger(storage, operator=settings.LEDGER_CONFIG.operator)
    return ReminderOrchestrator(
        gateway=storage,
        ledger=ledger,
        config=settings.REMINDER_CONFIG,
        rules=rules,
    )


def _sweep(show_sent: bool) -> None:
    orchestrator = build_orchestrator()
    messages = asyncio.run(orchestrator.sweep())
    pending, sent = split_pending(messages)
    print(f"{len(pending)} pending, {len(sent)} sent\n")
    for message in pending + (sent if show_sent else []):
        print(format_reminder(message))
        print()


def _ledger_action(action: str, message_id: str) -> int:
    if split_message_id(message_id) is None:
        # Only ids the engine can produce reach the ledger.
        print(f"{message_id}: not a reminder id (expected e.g. reminder_oggi_A9)", file=sys.stderr)
        return 2
    orchestrator = build_orchestrator()
    ledger = orchestrator.ledger
    try:
        if action == "mark":
            asyncio.run(ledger.mark_sent(message_id))
            print(f"{message_id}: sent")
        elif action == "unmark":
            asyncio.run(ledger.unmark_sent(message_id))
            print(f"{message_id}: pending")
        else:
            now_sent = asyncio.run(orchestrator.toggle_sent(message_id))
            print(f"{message_id}: {'sent' if now_sent else 'pending'}")
    except LedgerWriteError as exc:
        print(f"{exc}. Please retry.", file=sys.stderr)
        return 1
    return 0


def _event(event_type: str, subject_id: str, previous: Optional[str], new: Optional[str]) -> int:
    payload = {
        "quote_id": subject_id,
        "appointment_id": subject_id,
        "client_id": subject_id,
        "previous_status": previous,
        "new_status": new,
    }
    message = asyncio.run(build_orchestrator().handle_event(event_type, payload))
    if message is None:
        print("No reminder for this event.")
        return 1
    print(format_reminder(message))
    return 0


def _seed(path: str) -> None:
    with open(path, "r", encoding="utf-8") as handle:
        data = json.load(handle)
    counts = build_storage().seed(data)
    for table, count in counts.items():
        print(f"{table}: {count}")


def _cleanup(ttl_days: Optional[int]) -> None:
    days = ttl_days if ttl_days is not None else settings.LEDGER_CONFIG.ttl_days
    removed = asyncio.run(build_orchestrator().ledger.cleanup(days))
    print(f"Removed {removed} sent records older than {days} days")


def _panel() -> None:
    _print_banner()
    from frontend.app import RemindersApp

    RemindersApp(build_orchestrator()).run()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="officina")
    subparsers = parser.add_subparsers(dest="command")

    sweep_parser = subparsers.add_parser("sweep", help="Scan everything and print reminders")
    sweep_parser.add_argument("--all", action="store_true", help="Also print messages already sent")

    for action in ("mark", "unmark", "toggle"):
        action_parser = subparsers.add_parser(action, help=f"{action.capitalize()} a message as sent")
        action_parser.add_argument("message_id")

    event_parser = subparsers.add_parser("event", help="Compile the reminder for one state change")
    event_parser.add_argument("event_type")
    event_parser.add_argument("--id", required=True, dest="subject_id")
    event_parser.add_argument("--from", dest="previous_status")
    event_parser.add_argument("--to", dest="new_status")

    seed_parser = subparsers.add_parser("seed", help="Load clients, quotes, appointments, templates from JSON")
    seed_parser.add_argument("path")

    cleanup_parser = subparsers.add_parser("cleanup", help="Forget old sent records")
    cleanup_parser.add_argument("--days", type=int)

    subparsers.add_parser("panel", help="Launch the reminders TUI")

    args = parser.parse_args(argv)
    _configure_logging()

    if args.command == "panel":
        _panel()
        return 0
    if args.command in {"mark", "unmark", "toggle"}:
        return _ledger_action(args.command, args.message_id)
    if args.command == "event":
        return _event(args.event_type, args.subject_id, args.previous_status, args.new_status)
    if args.command == "seed":
        _seed(args.path)
        return 0
    if args.command == "cleanup":
        _cleanup(args.days)
        return 0
    _print_banner()
    _sweep(show_sent=getattr(args, "all", False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
