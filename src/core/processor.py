"""Reminder orchestration pipeline.

This module is storage-agnostic. It only relies on the gateway port and the
delivery ledger, and runs the same Scanner -> Resolver -> Compiler chain in
two modes:

1) Point mode: a known state transition maps straight to one trigger
2) Batch mode: a full sweep over every entity

Both modes derive message ids the same way, so the ledger deduplicates
across them without any coordination.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, TypeVar

from core.compiler import compile_message
from core.config import ReminderConfig
from core.dedup import build_message_id
from core.ledger import DeliveryLedger
from core.models import (
    CandidateEvent,
    CompiledMessage,
    EntityKind,
    MessageTemplate,
    SentMessageRecord,
    Snapshot,
    TriggerType,
    normalize_status,
)
from core.ports import GatewayPort
from core.rules_engine import (
    RULES,
    TriggerRule,
    build_candidate,
    rules_by_type,
    scan,
    subject_label,
    today_of,
)
from core.templates import resolve_template

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# New quote status -> trigger. The previous status only has to differ.
QUOTE_STATUS_TRIGGERS: dict[str, TriggerType] = {
    "sent": TriggerType.QUOTE_PROCESSED,
    "accepted": TriggerType.APPOINTMENT_CONFIRMATION,
    "completed": TriggerType.WORK_CLOSED,
}

EVENT_TRIGGERS: dict[str, TriggerType] = {
    "appointment_reminder_today": TriggerType.REMINDER_TODAY,
    "appointment_reminder_tomorrow": TriggerType.REMINDER_TOMORROW,
    "client_created": TriggerType.NEW_CLIENT_CREDENTIALS,
    "client_birthday": TriggerType.BIRTHDAY,
}

SUBJECT_KEYS: dict[EntityKind, str] = {
    EntityKind.QUOTE: "quote_id",
    EntityKind.APPOINTMENT: "appointment_id",
    EntityKind.CLIENT: "client_id",
}


def map_event_to_trigger(event_type: str, payload: Mapping[str, Any]) -> Optional[TriggerType]:
    """Return the trigger for a point event, or None if nothing applies."""

    if event_type == "quote_status_changed":
        previous = normalize_status(payload.get("previous_status"))
        new = normalize_status(payload.get("new_status"))
        if not new or previous == new:
            return None
        return QUOTE_STATUS_TRIGGERS.get(new)
    return EVENT_TRIGGERS.get(event_type)


def order_messages(messages: Iterable[CompiledMessage]) -> list[CompiledMessage]:
    """Pending first by priority; sent ones most recent first, undated last."""

    by_priority = sorted(messages, key=lambda message: message.priority.rank)
    pending = [message for message in by_priority if not message.sent]
    sent = [message for message in by_priority if message.sent]
    sent.sort(key=lambda message: (message.sent_at is None, -_timestamp(message.sent_at)))
    return pending + sent


def split_pending(messages: Iterable[CompiledMessage]) -> tuple[list[CompiledMessage], list[CompiledMessage]]:
    pending: list[CompiledMessage] = []
    sent: list[CompiledMessage] = []
    for message in messages:
        (sent if message.sent else pending).append(message)
    return pending, sent


def _timestamp(moment: Optional[datetime]) -> float:
    if moment is None:
        return 0.0
    if moment.tzinfo is not None:
        moment = moment.astimezone().replace(tzinfo=None)
    return (moment - datetime(1970, 1, 1)).total_seconds()


def with_ledger_state(message: CompiledMessage, record: Optional[SentMessageRecord]) -> CompiledMessage:
    """Attach sent flags without touching the compiled text."""

    if record is None:
        return replace(message, sent=False, sent_at=None, sent_by=None)
    return replace(message, sent=True, sent_at=record.sent_at, sent_by=record.sent_by)


class ReminderOrchestrator:
    """Orchestrates scanning, template resolution, compilation, and ledger state."""

    def __init__(
        self,
        gateway: GatewayPort,
        ledger: DeliveryLedger,
        config: Optional[ReminderConfig] = None,
        rules: Optional[Iterable[TriggerRule]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._gateway = gateway
        self._ledger = ledger
        self._config = config or ReminderConfig()
        self._rules = list(RULES if rules is None else rules)
        self._rules_by_type = rules_by_type(self._rules)
        self._clock = clock

    @property
    def ledger(self) -> DeliveryLedger:
        return self._ledger

    async def _fetch(self, source: str, call: Awaitable[T], default: T) -> T:
        # A failed source yields an empty result; the sweep keeps going.
        try:
            return await call
        except Exception:
            LOGGER.exception("Fetch failed for %s, continuing without it", source)
            return default

    async def sweep(self) -> list[CompiledMessage]:
        """Run a full scan and return the ordered list for presentation."""

        now = self._clock()
        today = today_of(now)
        gateway = self._gateway
        (
            clients,
            quotes,
            appointments,
            today_appointments,
            tomorrow_appointments,
            templates,
            sent_records,
        ) = await asyncio.gather(
            self._fetch("clients", gateway.list_clients(), []),
            self._fetch("quotes", gateway.list_quotes(), []),
            self._fetch("appointments", gateway.list_appointments(), []),
            self._fetch("appointments today", gateway.get_appointments_on(today), []),
            self._fetch("appointments tomorrow", gateway.get_appointments_on(today + timedelta(days=1)), []),
            self._fetch("templates", gateway.list_templates(), []),
            self._fetch("sent messages", self._ledger.sent_records(refresh=True), {}),
        )

        # The dated queries keep day reminders alive even if the full list fails.
        merged = {item.id: item for item in [*appointments, *today_appointments, *tomorrow_appointments]}
        snapshot = Snapshot(
            clients=clients,
            quotes=quotes,
            appointments=list(merged.values()),
            templates=templates,
        )

        candidates = scan(snapshot, now, self._config, self._rules)
        messages: list[CompiledMessage] = []
        for candidate in candidates:
            try:
                message = self._compile(candidate, templates, now)
            except Exception:
                LOGGER.exception(
                    "Dropping %s for %s", candidate.trigger_type.value, candidate.subject_entity_id
                )
                continue
            if message is None:
                continue
            messages.append(with_ledger_state(message, sent_records.get(message.id)))

        ordered = order_messages(messages)
        pending, sent = split_pending(ordered)
        LOGGER.info(
            "Sweep complete: candidates=%s, messages=%s, pending=%s, sent=%s",
            len(candidates),
            len(ordered),
            len(pending),
            len(sent),
        )
        return ordered

    async def handle_event(
        self, event_type: str, payload: Optional[Mapping[str, Any]] = None
    ) -> Optional[CompiledMessage]:
        """Compile the single message a known state transition calls for."""

        payload = payload or {}
        trigger = map_event_to_trigger(event_type, payload)
        if trigger is None:
            LOGGER.info("No reminder configured for event %s", event_type)
            return None
        rule = self._rules_by_type.get(trigger)
        if rule is None:
            LOGGER.info("Reminder %s is disabled", trigger.value)
            return None

        subject_id = payload.get(SUBJECT_KEYS[rule.subject_kind])
        if not subject_id:
            LOGGER.warning("Event %s is missing %s", event_type, SUBJECT_KEYS[rule.subject_kind])
            return None

        now = self._clock()
        snapshot = await self._point_snapshot(rule)
        entity = self._find_subject(rule.subject_kind, snapshot, str(subject_id))
        if entity is None:
            LOGGER.warning("%s %s not found for %s", rule.subject_kind.value, subject_id, trigger.value)
            return None

        try:
            message = self._compile(build_candidate(rule, entity, snapshot, now, self._config), snapshot.templates, now)
        except Exception:
            LOGGER.exception("Failed to compile %s for %s", trigger.value, subject_id)
            return None
        if message is None:
            return None

        records = await self._fetch("sent messages", self._ledger.sent_records(refresh=True), {})
        return with_ledger_state(message, records.get(message.id))

    async def toggle_sent(self, message_id: str, sent_by: Optional[str] = None) -> bool:
        """Operator action: flip the sent flag. Write failures propagate."""

        return await self._ledger.toggle(message_id, sent_by)

    async def _point_snapshot(self, rule: TriggerRule) -> Snapshot:
        gateway = self._gateway
        templates_call = self._fetch("templates", gateway.list_templates(), [])
        if rule.subject_kind is EntityKind.QUOTE:
            needs_appointments = rule.trigger_type is TriggerType.APPOINTMENT_CONFIRMATION
            appointments_call = (
                self._fetch("appointments", gateway.list_appointments(), [])
                if needs_appointments
                else _empty()
            )
            quotes, appointments, templates = await asyncio.gather(
                self._fetch("quotes", gateway.list_quotes(), []),
                appointments_call,
                templates_call,
            )
            return Snapshot(quotes=quotes, appointments=appointments, templates=templates)
        if rule.subject_kind is EntityKind.APPOINTMENT:
            appointments, templates = await asyncio.gather(
                self._fetch("appointments", gateway.list_appointments(), []),
                templates_call,
            )
            return Snapshot(appointments=appointments, templates=templates)
        clients, templates = await asyncio.gather(
            self._fetch("clients", gateway.list_clients(), []),
            templates_call,
        )
        return Snapshot(clients=clients, templates=templates)

    @staticmethod
    def _find_subject(kind: EntityKind, snapshot: Snapshot, subject_id: str) -> Any:
        pool: list = {
            EntityKind.QUOTE: snapshot.quotes,
            EntityKind.APPOINTMENT: snapshot.appointments,
            EntityKind.CLIENT: snapshot.clients,
        }[kind]
        return next((entity for entity in pool if entity.id == subject_id), None)

    def _compile(
        self,
        candidate: CandidateEvent,
        templates: list[MessageTemplate],
        now: datetime,
    ) -> Optional[CompiledMessage]:
        rule = self._rules_by_type[candidate.trigger_type]
        template = resolve_template(templates, rule.category, rule.primary_keywords, rule.fallback_keywords)
        if template is None:
            LOGGER.info(
                "Unresolved template for %s (category %s), skipping %s",
                rule.trigger_type.value,
                rule.category,
                candidate.subject_entity_id,
            )
            return None

        context = candidate.context_data
        return CompiledMessage(
            id=build_message_id(candidate.trigger_type, candidate.subject_entity_id),
            trigger_type=candidate.trigger_type,
            recipient_name=str(context.get("full_name") or ""),
            recipient_phone=str(context.get("phone") or ""),
            subject_label=subject_label(rule, context),
            template_title=template.title,
            text=compile_message(template.content, context, now, self._config),
            priority=rule.priority,
        )


async def _empty() -> list:
    return []
