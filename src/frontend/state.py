"""State container for the reminders panel."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from core.models import CompiledMessage


@dataclass
class PanelState:
    messages: list[CompiledMessage] = field(default_factory=list)
    last_update: datetime | None = None
    error: str | None = None

    def find(self, message_id: str) -> CompiledMessage | None:
        return next((message for message in self.messages if message.id == message_id), None)
