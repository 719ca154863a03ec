from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from . import leave_time
from .enums import TimelineState


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported datetime value: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class DateRange:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Range end {self.end.isoformat()} precedes start {self.start.isoformat()}")

    def contains(self, other: "DateRange") -> bool:
        return self.start <= other.start and self.end >= other.end

    def includes(self, moment: datetime) -> bool:
        """Half-open membership, matching the backend's inclusive min / exclusive max."""

        return self.start <= moment < self.end

    @property
    def key(self) -> str:
        return f"{self.start.isoformat()}_{self.end.isoformat()}"


@dataclass(frozen=True, slots=True)
class Attendee:
    id: str
    name: str
    color: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Attendee":
        return cls(
            id=str(record["id"]),
            name=str(record.get("name") or record.get("label") or ""),
            color=record.get("color"),
            avatar_url=record.get("avatar_url"),
        )


@dataclass(frozen=True, slots=True)
class CalendarEvent:
    """An event as delivered by the calendar backend."""

    id: str
    title: str
    starts_at: datetime
    ends_at: datetime
    is_all_day: bool = False
    location: Optional[str] = None
    description: Optional[str] = None
    category_color: Optional[str] = None
    attendees: tuple[Attendee, ...] = ()

    @property
    def has_location(self) -> bool:
        return bool(self.location and self.location.strip())

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CalendarEvent":
        attendees = tuple(Attendee.from_record(item) for item in record.get("attendees") or [])
        return cls(
            id=str(record["id"]),
            title=str(record.get("title") or record.get("summary") or ""),
            starts_at=_parse_datetime(record["starts_at"]),
            ends_at=_parse_datetime(record["ends_at"]),
            is_all_day=bool(record.get("all_day") or record.get("is_all_day") or False),
            location=record.get("location"),
            description=record.get("description"),
            category_color=record.get("category_color"),
            attendees=attendees,
        )


@dataclass(frozen=True, slots=True)
class EnrichedEvent:
    """Calendar event augmented with the travel time and buffer used for its leave time."""

    id: str
    title: str
    starts_at: datetime
    ends_at: datetime
    location: Optional[str]
    is_all_day: bool
    drive_time_minutes: Optional[int]
    buffer_minutes: int
    category_color: Optional[str] = None
    attendee_names: tuple[str, ...] = ()

    @classmethod
    def from_event(
        cls, event: CalendarEvent, *, drive_time_minutes: Optional[int], buffer_minutes: int
    ) -> "EnrichedEvent":
        return cls(
            id=event.id,
            title=event.title,
            starts_at=event.starts_at,
            ends_at=event.ends_at,
            location=event.location,
            is_all_day=event.is_all_day,
            drive_time_minutes=drive_time_minutes,
            buffer_minutes=buffer_minutes,
            category_color=event.category_color,
            attendee_names=tuple(attendee.name for attendee in event.attendees),
        )

    def with_buffer(self, buffer_minutes: int) -> "EnrichedEvent":
        return replace(self, buffer_minutes=buffer_minutes)

    @property
    def leave_by(self) -> Optional[datetime]:
        return leave_time.leave_by_date(self, self.drive_time_minutes, self.buffer_minutes)

    def minutes_until_leave(self, now: Optional[datetime] = None) -> Optional[int]:
        return leave_time.minutes_until_leave(self.leave_by, now)

    def should_leave_now(self, now: Optional[datetime] = None) -> bool:
        return leave_time.should_leave_now(self, self.leave_by, now)

    def has_started(self, now: Optional[datetime] = None) -> bool:
        return leave_time.has_started(self, now)

    def has_ended(self, now: Optional[datetime] = None) -> bool:
        return leave_time.has_ended(self, now)

    @property
    def duration_minutes(self) -> int:
        return int((self.ends_at - self.starts_at).total_seconds() / 60)

    @property
    def attendees_display(self) -> Optional[str]:
        if not self.attendee_names:
            return None
        return ", ".join(self.attendee_names)

    @property
    def drive_time_display(self) -> Optional[str]:
        if self.drive_time_minutes is None:
            return None
        return f"{leave_time.format_duration(self.drive_time_minutes)} drive"

    @property
    def leave_by_display(self) -> Optional[str]:
        leave_by = self.leave_by
        if leave_by is None:
            return None
        return "Leave by " + leave_by.astimezone().strftime("%I:%M %p").lstrip("0")

    def leave_countdown_display(self, now: Optional[datetime] = None) -> Optional[str]:
        minutes = self.minutes_until_leave(now)
        if minutes is None:
            return None
        if minutes <= 0:
            return "Leave now!"
        return f"Leave in {leave_time.format_duration(minutes)}"

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "EnrichedEvent":
        drive = record.get("drive_time_minutes")
        return cls(
            id=str(record["id"]),
            title=str(record["title"]),
            starts_at=_parse_datetime(record["starts_at"]),
            ends_at=_parse_datetime(record["ends_at"]),
            location=record.get("location"),
            is_all_day=bool(record.get("is_all_day", False)),
            drive_time_minutes=int(drive) if drive is not None else None,
            buffer_minutes=int(record.get("buffer_minutes", 0)),
            category_color=record.get("category_color"),
            attendee_names=tuple(record.get("attendee_names") or ()),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "starts_at": self.starts_at.isoformat(),
            "ends_at": self.ends_at.isoformat(),
            "location": self.location,
            "is_all_day": self.is_all_day,
            "drive_time_minutes": self.drive_time_minutes,
            "buffer_minutes": self.buffer_minutes,
            "category_color": self.category_color,
            "attendee_names": list(self.attendee_names),
        }


@dataclass(frozen=True, slots=True)
class NotificationRequest:
    identifier: str
    fire_at: datetime
    title: str
    body: str
    category: str
    user_info: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "NotificationRequest":
        return cls(
            identifier=str(record["identifier"]),
            fire_at=_parse_datetime(record["fire_at"]),
            title=str(record.get("title") or ""),
            body=str(record.get("body") or ""),
            category=str(record.get("category") or ""),
            user_info=dict(record.get("user_info") or {}),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "fire_at": self.fire_at.isoformat(),
            "title": self.title,
            "body": self.body,
            "category": self.category,
            "user_info": self.user_info,
        }


@dataclass(frozen=True, slots=True)
class TimelineEntry:
    timestamp: datetime
    state: TimelineState
    event: Optional[EnrichedEvent] = None

    @property
    def event_id(self) -> Optional[str]:
        return self.event.id if self.event else None

    def to_record(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "state": self.state.value,
            "event_id": self.event_id,
        }


@dataclass(frozen=True, slots=True)
class Timeline:
    entries: tuple[TimelineEntry, ...]
    refresh_at: datetime

    def entry_at(self, when: datetime) -> Optional[TimelineEntry]:
        """Return the entry a surface should render at ``when``.

        Among entries sharing a timestamp the first wins, so the soonest event
        is shown.
        """

        current: Optional[TimelineEntry] = None
        for entry in self.entries:
            if entry.timestamp > when:
                break
            if current is None or entry.timestamp > current.timestamp:
                current = entry
        return current

    def next_wake(self, when: datetime) -> datetime:
        for entry in self.entries:
            if entry.timestamp > when:
                return entry.timestamp
        return self.refresh_at

    def to_record(self) -> Dict[str, Any]:
        return {
            "entries": [entry.to_record() for entry in self.entries],
            "refresh_at": self.refresh_at.isoformat(),
        }


def next_upcoming(events: Iterable[EnrichedEvent], now: Optional[datetime] = None) -> Optional[EnrichedEvent]:
    candidates = [event for event in events if not event.has_ended(now) and not event.is_all_day]
    candidates.sort(key=lambda item: item.starts_at)
    return candidates[0] if candidates else None


def _day_bounds(now: datetime, offset_days: int) -> tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=offset_days)
    return start, start + timedelta(days=1)


def today_events(events: Iterable[EnrichedEvent], now: Optional[datetime] = None) -> List[EnrichedEvent]:
    start, end = _day_bounds(now or leave_time.utcnow(), 0)
    return sorted((ev for ev in events if start <= ev.starts_at < end), key=lambda ev: ev.starts_at)


def tomorrow_events(events: Iterable[EnrichedEvent], now: Optional[datetime] = None) -> List[EnrichedEvent]:
    start, end = _day_bounds(now or leave_time.utcnow(), 1)
    return sorted(
        (ev for ev in events if start <= ev.starts_at < end and not ev.is_all_day),
        key=lambda ev: ev.starts_at,
    )


def events_needing_notifications(
    events: Iterable[EnrichedEvent], now: Optional[datetime] = None
) -> List[EnrichedEvent]:
    current = now or leave_time.utcnow()
    eligible = []
    for event in events:
        leave_by = event.leave_by
        if event.is_all_day or leave_by is None or leave_by <= current:
            continue
        eligible.append(event)
    return eligible
