"""Time to Leave: leave-by guidance for calendar events."""

from __future__ import annotations

from .cli import main as main

__all__ = ["main"]
