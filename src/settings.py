"""Static configuration for the officina reminder engine.

All user-editable settings (database, time windows, rule overrides, ledger,
logging) live in a single JSON file for quick edits without touching Python.
"""

import json
import os

from dotenv import load_dotenv

from core.config import DEFAULT_ADDRESS, LedgerConfig, ReminderConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

# OFFICINA_CONFIG lets a deployment point at another file without edits.
CONFIG_PATH = os.getenv("OFFICINA_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(os.path.dirname(os.path.abspath(CONFIG_PATH)), path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database (relative paths sit beside config.json).
_database = _CONFIG.get("database", {})
DB_PATH = _resolve_path(_database.get("path", "officina.db"))

# Time windows and rendering defaults for the reminder pipeline.
_reminders = _CONFIG.get("reminders", {})
REMINDER_CONFIG = ReminderConfig(
    recent_hours=int(_reminders.get("recent_hours", 48)),
    feedback_hours=int(_reminders.get("feedback_hours", 72)),
    stale_days=int(_reminders.get("stale_days", 15)),
    default_address=_reminders.get("default_address", DEFAULT_ADDRESS),
    undefined_label=_reminders.get("undefined_label", "Da definire"),
    date_format=_reminders.get("date_format", "%d/%m/%Y"),
)

# Per-trigger overrides (enabled, category, keywords, fallback_keywords, priority).
RULE_OVERRIDES = _CONFIG.get("rules", {})

# Ledger retention and the operator name stamped on sent records.
_ledger = _CONFIG.get("ledger", {})
LEDGER_CONFIG = LedgerConfig(
    ttl_days=int(_ledger.get("ttl_days", 30)),
    operator=os.getenv("OFFICINA_OPERATOR") or _ledger.get("operator"),
)

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
