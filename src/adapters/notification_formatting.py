"""Shared reminder formatting helpers.

Keeping formatting here prevents drift between the CLI and the panel and
keeps message cards consistent regardless of where they are shown.
"""

from __future__ import annotations

from rich.markup import escape

from core.models import CompiledMessage, Priority

PRIORITY_STYLES = {
    Priority.HIGH: "bold red",
    Priority.MEDIUM: "yellow",
    Priority.LOW: "dim",
}

DIVIDER = "──────────────"


def format_sent_state(message: CompiledMessage) -> str:
    """Return "pending" or the sent timestamp, in local time."""

    if not message.sent:
        return "pending"
    if message.sent_at is None:
        return "sent"
    stamp = message.sent_at.astimezone().strftime("%d-%m-%Y %H:%M")
    if message.sent_by:
        return f"sent {stamp} by {message.sent_by}"
    return f"sent {stamp}"


def _format_plain(message: CompiledMessage) -> str:
    lines = [
        f"[{message.priority.value.upper()}] {message.subject_label}",
        f"To:       {message.recipient_name} ({message.recipient_phone or 'no phone'})",
        f"Template: {message.template_title}",
        f"Id:       {message.id}",
        f"Status:   {format_sent_state(message)}",
        DIVIDER,
        message.text,
        DIVIDER,
    ]
    return "\n".join(lines)


def _format_rich(message: CompiledMessage) -> str:
    style = PRIORITY_STYLES[message.priority]
    state_style = "green" if message.sent else "cyan"
    lines = [
        f"[{style}]{message.priority.value.upper()}[/] [bold]{escape(message.subject_label)}[/]",
        f"[b]To:[/] {escape(message.recipient_name)} ({escape(message.recipient_phone or 'no phone')})",
        f"[b]Template:[/] {escape(message.template_title)}",
        f"[b]Id:[/] {escape(message.id)}",
        f"[b]Status:[/] [{state_style}]{escape(format_sent_state(message))}[/]",
        DIVIDER,
        escape(message.text),
        DIVIDER,
    ]
    return "\n".join(lines)


def format_reminder(message: CompiledMessage, mode: str = "plain") -> str:
    """Return the reminder card formatted for the requested mode."""

    if mode == "plain":
        return _format_plain(message)
    if mode == "rich":
        return _format_rich(message)
    raise ValueError(f"Unsupported reminder format: {mode}")
