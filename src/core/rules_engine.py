"""Trigger rule table and scanner (core domain).

The rule table is data: every trigger names its subject kind, template
category, keyword tiers, priority, and a pure condition over one entity and
"now". Scanning is side-effect free and safe to repeat.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
import logging
from typing import Any, Callable, Iterable, List, Mapping, Optional

from core.config import ReminderConfig
from core.models import (
    Appointment,
    CandidateEvent,
    Client,
    ContextValue,
    EntityKind,
    Priority,
    Quote,
    Snapshot,
    TriggerType,
    normalize_status,
)

LOGGER = logging.getLogger(__name__)

Condition = Callable[[Any, datetime, ReminderConfig], bool]

CLOSED_APPOINTMENT_STATUSES = {"completed", "cancelled"}


@dataclass(frozen=True)
class TriggerRule:
    """One row of the trigger taxonomy."""

    trigger_type: TriggerType
    subject_kind: EntityKind
    category: str
    primary_keywords: tuple[str, ...]
    fallback_keywords: tuple[str, ...]
    priority: Priority
    label: str
    condition: Condition


def _naive(value: datetime) -> datetime:
    # Aware timestamps are compared in local time so "today" means the
    # workshop's day, not UTC's.
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def hours_since(moment: Optional[datetime], now: datetime) -> Optional[float]:
    """Return elapsed hours between moment and now, or None if unknown."""

    if moment is None:
        return None
    return (_naive(now) - _naive(moment)).total_seconds() / 3600


def today_of(now: datetime) -> date:
    return _naive(now).date()


def _quote_recent(status: str) -> Condition:
    def condition(quote: Quote, now: datetime, config: ReminderConfig) -> bool:
        if normalize_status(quote.status) != status:
            return False
        elapsed = hours_since(quote.last_touched, now)
        return elapsed is not None and elapsed <= config.recent_hours

    return condition


def _quote_stale(quote: Quote, now: datetime, config: ReminderConfig) -> bool:
    if normalize_status(quote.status) != "sent" or quote.last_touched is None:
        return False
    return _naive(quote.last_touched) <= _naive(now) - timedelta(days=config.stale_days)


def _quote_awaiting_feedback(quote: Quote, now: datetime, config: ReminderConfig) -> bool:
    if normalize_status(quote.status) != "completed":
        return False
    elapsed = hours_since(quote.last_touched, now)
    return elapsed is not None and config.recent_hours < elapsed <= config.feedback_hours


def _appointment_on(offset_days: int) -> Condition:
    def condition(appointment: Appointment, now: datetime, config: ReminderConfig) -> bool:
        if normalize_status(appointment.status) in CLOSED_APPOINTMENT_STATUSES:
            return False
        return appointment.date == today_of(now) + timedelta(days=offset_days)

    return condition


def _client_is_new(client: Client, now: datetime, config: ReminderConfig) -> bool:
    for moment in (client.created_at, client.updated_at):
        elapsed = hours_since(moment, now)
        if elapsed is not None and elapsed <= config.recent_hours:
            return True
    return False


def _client_birthday(client: Client, now: datetime, config: ReminderConfig) -> bool:
    if client.birth_date is None:
        return False
    today = today_of(now)
    return (client.birth_date.month, client.birth_date.day) == (today.month, today.day)


RULES: tuple[TriggerRule, ...] = (
    TriggerRule(
        trigger_type=TriggerType.QUOTE_PROCESSED,
        subject_kind=EntityKind.QUOTE,
        category="preventivi",
        primary_keywords=("elaborato", "inviato", "preventivo elaborato"),
        fallback_keywords=("preventivo", "inviato"),
        priority=Priority.HIGH,
        label="Preventivo Elaborato",
        condition=_quote_recent("sent"),
    ),
    TriggerRule(
        trigger_type=TriggerType.QUOTE_STALE_REMINDER,
        subject_kind=EntityKind.QUOTE,
        category="preventivi",
        primary_keywords=("reminder15giorni", "15", "giorni"),
        fallback_keywords=("reminder", "preventivo"),
        priority=Priority.MEDIUM,
        label="Reminder 15 Giorni",
        condition=_quote_stale,
    ),
    TriggerRule(
        trigger_type=TriggerType.APPOINTMENT_CONFIRMATION,
        subject_kind=EntityKind.QUOTE,
        category="promemoria",
        primary_keywords=("conferma", "appuntamento", "checkup"),
        fallback_keywords=("conferma", "appuntamento"),
        priority=Priority.HIGH,
        label="Conferma Appuntamento",
        condition=_quote_recent("accepted"),
    ),
    TriggerRule(
        trigger_type=TriggerType.REMINDER_TODAY,
        subject_kind=EntityKind.APPOINTMENT,
        category="oggi",
        primary_keywords=("reminder appuntamento oggi",),
        fallback_keywords=("oggi", "reminder"),
        priority=Priority.HIGH,
        label="Appuntamento Oggi",
        condition=_appointment_on(0),
    ),
    TriggerRule(
        trigger_type=TriggerType.REMINDER_TOMORROW,
        subject_kind=EntityKind.APPOINTMENT,
        category="domani",
        primary_keywords=("reminder appuntamento domani",),
        fallback_keywords=("domani", "reminder"),
        priority=Priority.MEDIUM,
        label="Appuntamento Domani",
        condition=_appointment_on(1),
    ),
    TriggerRule(
        trigger_type=TriggerType.NEW_CLIENT_CREDENTIALS,
        subject_kind=EntityKind.CLIENT,
        category="generale",
        primary_keywords=("credenziali", "benvenuto", "accesso"),
        fallback_keywords=("cliente",),
        priority=Priority.HIGH,
        label="Credenziali",
        condition=_client_is_new,
    ),
    TriggerRule(
        trigger_type=TriggerType.WORK_CLOSED,
        subject_kind=EntityKind.QUOTE,
        category="completato",
        primary_keywords=("chiusura", "lavoro", "completato"),
        fallback_keywords=("feedback",),
        priority=Priority.HIGH,
        label="Chiusura Lavoro",
        condition=_quote_recent("completed"),
    ),
    TriggerRule(
        trigger_type=TriggerType.FEEDBACK_REQUEST,
        subject_kind=EntityKind.QUOTE,
        category="feedback",
        primary_keywords=("feedback", "recensione"),
        fallback_keywords=("valutazione",),
        priority=Priority.MEDIUM,
        label="Richiesta Feedback",
        condition=_quote_awaiting_feedback,
    ),
    TriggerRule(
        trigger_type=TriggerType.BIRTHDAY,
        subject_kind=EntityKind.CLIENT,
        category="cortesia",
        primary_keywords=("compleanno", "auguri", "buon compleanno"),
        fallback_keywords=("auguri", "festeggiamo"),
        priority=Priority.MEDIUM,
        label="Compleanno",
        condition=_client_birthday,
    ),
)


def build_rules(overrides: Optional[Mapping[str, dict]] = None) -> List[TriggerRule]:
    """Return the rule table with per-trigger config overrides applied.

    Overrides are keyed by trigger type and may set ``enabled``, ``category``,
    ``keywords``, ``fallback_keywords`` and ``priority``. Conditions are code
    and cannot be overridden.
    """

    overrides = overrides or {}
    known = {rule.trigger_type.value for rule in RULES}
    for key in overrides:
        if key not in known:
            raise ValueError(f"Unknown trigger type in rule overrides: {key}")

    compiled: List[TriggerRule] = []
    for rule in RULES:
        override = overrides.get(rule.trigger_type.value, {})
        if not override.get("enabled", True):
            continue
        changes: dict[str, Any] = {}
        if "category" in override:
            changes["category"] = str(override["category"])
        if "keywords" in override:
            changes["primary_keywords"] = tuple(str(k) for k in override["keywords"])
        if "fallback_keywords" in override:
            changes["fallback_keywords"] = tuple(str(k) for k in override["fallback_keywords"])
        if "priority" in override:
            changes["priority"] = Priority(override["priority"])
        compiled.append(replace(rule, **changes) if changes else rule)
    return compiled


def find_linked_appointment(quote: Quote, appointments: Iterable[Appointment], now: datetime) -> Optional[Appointment]:
    """Return the upcoming appointment for a quote, by id then plate+client."""

    today = today_of(now)
    upcoming = [item for item in appointments if item.date >= today]
    for appointment in upcoming:
        if appointment.quote_id and appointment.quote_id == quote.id:
            return appointment
    for appointment in upcoming:
        if appointment.plate == quote.plate and appointment.client_name == quote.client_name:
            return appointment
    return None


def build_context(
    rule: TriggerRule,
    entity: Any,
    snapshot: Snapshot,
    now: datetime,
    config: ReminderConfig,
) -> dict[str, ContextValue]:
    """Build the data bag the compiler substitutes into the template."""

    if isinstance(entity, Quote):
        context: dict[str, ContextValue] = {
            "full_name": entity.client_name,
            "phone": entity.phone,
            "plate": entity.plate,
            "vehicle_model": entity.model,
            "address": entity.address,
        }
        if rule.trigger_type is TriggerType.APPOINTMENT_CONFIRMATION:
            appointment = find_linked_appointment(entity, snapshot.appointments, now)
            if appointment is not None:
                context["appointment_date"] = appointment.date
                context["appointment_time"] = appointment.time or config.undefined_label
                context["address"] = appointment.address or entity.address or config.default_address
            else:
                context["appointment_date"] = entity.appointment_date or config.undefined_label
                context["appointment_time"] = entity.appointment_time or config.undefined_label
                context["address"] = entity.address or config.default_address
        return context

    if isinstance(entity, Appointment):
        return {
            "full_name": entity.client_name,
            "phone": entity.phone,
            "plate": entity.plate,
            "vehicle_model": entity.model,
            "appointment_date": entity.date,
            "appointment_time": entity.time,
            "address": entity.address,
        }

    if isinstance(entity, Client):
        context = {
            "full_name": entity.full_name,
            "phone": entity.phone,
            "email": entity.email,
            "password": entity.password,
            "address": entity.address,
        }
        if rule.trigger_type is TriggerType.BIRTHDAY and entity.birth_date is not None:
            context["age"] = today_of(now).year - entity.birth_date.year
        return context

    raise TypeError(f"Unsupported entity type: {type(entity).__name__}")


def subject_label(rule: TriggerRule, context: Mapping[str, Any]) -> str:
    """Return the short "<plate> - <label>" line shown next to a message."""

    if rule.trigger_type is TriggerType.BIRTHDAY and context.get("age") is not None:
        return f"{rule.label} ({context['age']} anni)"
    plate = context.get("plate")
    if plate:
        return f"{plate} - {rule.label}"
    return rule.label


def build_candidate(
    rule: TriggerRule,
    entity: Any,
    snapshot: Snapshot,
    now: datetime,
    config: ReminderConfig,
) -> CandidateEvent:
    return CandidateEvent(
        trigger_type=rule.trigger_type,
        subject_entity_id=entity.id,
        subject_entity_kind=rule.subject_kind,
        context_data=build_context(rule, entity, snapshot, now, config),
    )


def entities_for(kind: EntityKind, snapshot: Snapshot) -> list:
    if kind is EntityKind.QUOTE:
        return snapshot.quotes
    if kind is EntityKind.APPOINTMENT:
        return snapshot.appointments
    return snapshot.clients


def scan(
    snapshot: Snapshot,
    now: datetime,
    config: ReminderConfig,
    rules: Iterable[TriggerRule] = RULES,
) -> List[CandidateEvent]:
    """Return every candidate event that holds for the snapshot at ``now``.

    Rules are independent: one quote may satisfy several at once. A bad
    entity is logged and skipped so the rest of the sweep still runs.
    """

    candidates: List[CandidateEvent] = []
    for rule in rules:
        for entity in entities_for(rule.subject_kind, snapshot):
            try:
                if not rule.condition(entity, now, config):
                    continue
                candidates.append(build_candidate(rule, entity, snapshot, now, config))
            except Exception:
                LOGGER.exception(
                    "Skipping %s %s for %s",
                    rule.subject_kind.value,
                    getattr(entity, "id", "?"),
                    rule.trigger_type.value,
                )
    return candidates


def rules_by_type(rules: Iterable[TriggerRule]) -> dict[TriggerType, TriggerRule]:
    return {rule.trigger_type: rule for rule in rules}
