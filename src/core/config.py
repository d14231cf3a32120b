"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_ADDRESS = "Via Eugenio Montale, 4\n70043 Monopoli (BA), Italia"


@dataclass(frozen=True)
class ReminderConfig:
    """Time windows and rendering defaults for the reminder pipeline."""

    recent_hours: int = 48
    feedback_hours: int = 72
    stale_days: int = 15
    default_address: str = DEFAULT_ADDRESS
    undefined_label: str = "Da definire"
    date_format: str = "%d/%m/%Y"


@dataclass(frozen=True)
class LedgerConfig:
    """Retention and attribution settings for the delivery ledger."""

    ttl_days: int = 30
    operator: str | None = None
