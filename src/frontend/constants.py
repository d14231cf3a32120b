"""Shared constants for the Textual UI."""

from __future__ import annotations

OFFICINA_ORANGE = "#F28C28"
PENDING_MARK = "○"
SENT_MARK = "●"
