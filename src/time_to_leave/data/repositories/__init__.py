"""Supabase repositories for calendar data."""

from __future__ import annotations

from .events import EventRepository

__all__ = ["EventRepository"]
