"""Pure leave-time arithmetic shared by the enriched model and the schedulers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Scheduled(Protocol):
    starts_at: datetime
    ends_at: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def leave_by_date(event: Scheduled, drive_minutes: Optional[int], buffer_minutes: int) -> Optional[datetime]:
    """Return ``event.starts_at - (drive + buffer)`` or ``None`` without a drive time."""

    if drive_minutes is None:
        return None
    return event.starts_at - timedelta(minutes=drive_minutes + buffer_minutes)


def minutes_until_leave(leave_by: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    if leave_by is None:
        return None
    current = now or utcnow()
    minutes = int((leave_by - current).total_seconds() / 60)
    return max(0, minutes)


def should_leave_now(event: Scheduled, leave_by: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if leave_by is None:
        return False
    current = now or utcnow()
    return leave_by <= current < event.starts_at


def has_started(event: Scheduled, now: Optional[datetime] = None) -> bool:
    return (now or utcnow()) >= event.starts_at


def has_ended(event: Scheduled, now: Optional[datetime] = None) -> bool:
    return (now or utcnow()) >= event.ends_at


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours} hr"
    return f"{hours} hr {remaining} min"


__all__ = [
    "format_duration",
    "has_ended",
    "has_started",
    "leave_by_date",
    "minutes_until_leave",
    "should_leave_now",
    "utcnow",
]
