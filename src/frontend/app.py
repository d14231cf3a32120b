"""Main Textual app for the officina reminders panel."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import DataTable, Footer, Static

from adapters.notification_formatting import format_reminder, format_sent_state
from core.errors import LedgerWriteError
from core.processor import ReminderOrchestrator, order_messages, split_pending

from .constants import OFFICINA_ORANGE, PENDING_MARK, SENT_MARK
from .state import PanelState


class RemindersApp(App):
    """Lists compiled reminders and toggles their sent state."""

    CSS = """
    Screen {
        background: #16120e;
        color: #f2ece4;
    }

    #header {
        height: 4;
        padding: 0 2;
        border-bottom: solid #3a3027;
    }

    #body {
        height: 1fr;
    }

    #reminders {
        width: 3fr;
    }

    #preview {
        width: 2fr;
        padding: 0 1;
        border-left: solid #3a3027;
    }

    .status-error {
        color: #ff6b6b;
    }
    """

    BINDINGS = [
        ("r", "refresh", "Refresh"),
        ("space", "toggle_sent", "Toggle sent"),
        ("q", "quit", "Quit"),
    ]

    def __init__(self, orchestrator: ReminderOrchestrator, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._orchestrator = orchestrator
        self.panel_state = PanelState()

    def compose(self) -> ComposeResult:
        with Container(id="header"):
            yield Static(self._title_text(), id="title")
            yield Static("", id="header-status")
        with Horizontal(id="body"):
            yield DataTable(id="reminders", cursor_type="row")
            with Vertical(id="preview"):
                yield Static("", id="preview-body")
        yield Footer()

    async def on_mount(self) -> None:
        table = self.query_one("#reminders", DataTable)
        table.add_column("", key="state", width=2)
        table.add_column("priority", key="priority", width=8)
        table.add_column("client", key="client", width=22)
        table.add_column("subject", key="subject", width=30)
        table.add_column("status", key="status", width=24)
        table.zebra_stripes = True
        await self.action_refresh()

    async def action_refresh(self) -> None:
        try:
            messages = await self._orchestrator.sweep()
        except Exception as exc:
            self.panel_state.error = f"refresh failed: {exc}"
            self._refresh_header()
            return
        self.panel_state.messages = messages
        self.panel_state.last_update = datetime.now()
        self.panel_state.error = None
        self._render_table()

    async def action_toggle_sent(self) -> None:
        message_id = self._selected_id()
        if message_id is None:
            return
        current = self.panel_state.find(message_id)
        try:
            now_sent = await self._orchestrator.toggle_sent(message_id)
        except LedgerWriteError as exc:
            # Row stays as it was; the operator can retry.
            self.notify(f"{exc}. Please retry.", severity="error")
            return
        if current is not None:
            updated = replace(
                current,
                sent=now_sent,
                sent_at=datetime.now().astimezone() if now_sent else None,
                sent_by=None,
            )
            self.panel_state.messages = order_messages(
                updated if message.id == message_id else message for message in self.panel_state.messages
            )
        self.notify("Marked as sent" if now_sent else "Moved back to pending")
        self._render_table(select=message_id)

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        key = event.row_key.value if event.row_key is not None else None
        self._show_preview(key)

    def _selected_id(self) -> str | None:
        table = self.query_one("#reminders", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return row_key.value

    def _render_table(self, select: str | None = None) -> None:
        table = self.query_one("#reminders", DataTable)
        table.clear()
        for message in self.panel_state.messages:
            table.add_row(
                SENT_MARK if message.sent else PENDING_MARK,
                message.priority.value,
                message.recipient_name,
                message.subject_label,
                format_sent_state(message),
                key=message.id,
            )
        if select is not None:
            for index, message in enumerate(self.panel_state.messages):
                if message.id == select:
                    table.move_cursor(row=index)
                    break
        self._refresh_header()
        self._show_preview(self._selected_id())

    def _show_preview(self, message_id: str | None) -> None:
        body = self.query_one("#preview-body", Static)
        message = self.panel_state.find(message_id) if message_id else None
        if message is None:
            body.update("No reminder selected.")
            return
        body.update(Text.from_markup(format_reminder(message, mode="rich")))

    def _refresh_header(self) -> None:
        status = self.query_one("#header-status", Static)
        status.remove_class("status-error")
        if self.panel_state.error:
            status.update(self.panel_state.error)
            status.add_class("status-error")
            return
        pending, sent = split_pending(self.panel_state.messages)
        stamp = self.panel_state.last_update.strftime("%H:%M:%S") if self.panel_state.last_update else "-"
        status.update(f"{len(pending)} pending · {len(sent)} sent · updated {stamp}")

    @staticmethod
    def _title_text() -> Text:
        return Text.assemble(
            ("OFFICINA", OFFICINA_ORANGE),
            (" > Smart Reminders", "bold"),
        )
