"""Domain models for leave-time guidance."""

from __future__ import annotations

from .enums import TimelineState
from .models import (
    Attendee,
    CalendarEvent,
    DateRange,
    EnrichedEvent,
    NotificationRequest,
    Timeline,
    TimelineEntry,
    events_needing_notifications,
    next_upcoming,
    today_events,
    tomorrow_events,
)

__all__ = [
    "Attendee",
    "CalendarEvent",
    "DateRange",
    "EnrichedEvent",
    "NotificationRequest",
    "Timeline",
    "TimelineEntry",
    "TimelineState",
    "events_needing_notifications",
    "next_upcoming",
    "today_events",
    "tomorrow_events",
]
