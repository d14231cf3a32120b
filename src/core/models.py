"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the data store that owns clients, quotes, and appointments.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union


class TriggerType(str, Enum):
    """Named conditions that produce a customer message."""

    QUOTE_PROCESSED = "quote_processed"
    QUOTE_STALE_REMINDER = "quote_stale_reminder"
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    REMINDER_TODAY = "reminder_today"
    REMINDER_TOMORROW = "reminder_tomorrow"
    NEW_CLIENT_CREDENTIALS = "new_client_credentials"
    WORK_CLOSED = "work_closed"
    FEEDBACK_REQUEST = "feedback_request"
    BIRTHDAY = "birthday"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class EntityKind(str, Enum):
    CLIENT = "client"
    QUOTE = "quote"
    APPOINTMENT = "appointment"


# The store keeps Italian status values; the engine reasons in English.
STATUS_ALIASES = {
    "bozza": "draft",
    "inviato": "sent",
    "accettato": "accepted",
    "programmato": "scheduled",
    "completato": "completed",
    "annullato": "cancelled",
}


def normalize_status(raw: Optional[str]) -> str:
    """Return the canonical lowercase status for a store value."""

    if not raw:
        return ""
    lowered = raw.strip().lower()
    return STATUS_ALIASES.get(lowered, lowered)


@dataclass(frozen=True)
class Client:
    id: str
    name: str
    surname: str = ""
    phone: str = ""
    email: str = ""
    password: str = ""
    address: str = ""
    birth_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}".strip()


@dataclass(frozen=True)
class Quote:
    id: str
    client_id: str
    client_name: str
    phone: str = ""
    plate: str = ""
    model: str = ""
    status: str = ""
    address: str = ""
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def last_touched(self) -> Optional[datetime]:
        return self.updated_at or self.created_at


@dataclass(frozen=True)
class Appointment:
    id: str
    client_id: str
    client_name: str
    date: date
    time: str = ""
    phone: str = ""
    plate: str = ""
    model: str = ""
    address: str = ""
    status: str = ""
    quote_id: Optional[str] = None


@dataclass(frozen=True)
class MessageTemplate:
    """Operator-authored message text, tagged with a category."""

    id: str
    title: str
    category: str
    content: str
    ordering_key: int = 0


# Values in a context bag are rendered by the compiler; dates get the locale
# format, everything else goes through str().
ContextValue = Union[str, int, date, datetime, None]


@dataclass(frozen=True)
class CandidateEvent:
    """A trigger condition that currently holds for one entity."""

    trigger_type: TriggerType
    subject_entity_id: str
    subject_entity_kind: EntityKind
    context_data: dict[str, ContextValue] = field(default_factory=dict)


@dataclass(frozen=True)
class CompiledMessage:
    """Final text ready for manual delivery, with a deterministic id."""

    id: str
    trigger_type: TriggerType
    recipient_name: str
    recipient_phone: str
    subject_label: str
    template_title: str
    text: str
    priority: Priority
    sent: bool = False
    sent_at: Optional[datetime] = None
    sent_by: Optional[str] = None


@dataclass(frozen=True)
class SentMessageRecord:
    """Persisted hand-off marker for one compiled message id."""

    message_id: str
    sent_at: datetime
    sent_by: Optional[str] = None


@dataclass(frozen=True)
class Snapshot:
    """Entities read from the store for one sweep."""

    clients: list[Client] = field(default_factory=list)
    quotes: list[Quote] = field(default_factory=list)
    appointments: list[Appointment] = field(default_factory=list)
    templates: list[MessageTemplate] = field(default_factory=list)
