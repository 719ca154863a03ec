from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ...domain import CalendarEvent, DateRange
from ...domain.leave_time import utcnow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CachedRange:
    range: DateRange
    fetched_at: datetime
    events: List[CalendarEvent]

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.fetched_at > ttl


@dataclass
class EventRangeCache:
    """Fetched event sets keyed by date range, reusable for any contained sub-range."""

    ttl: timedelta = timedelta(minutes=60)
    clock: Callable[[], datetime] = utcnow
    entries: Dict[DateRange, CachedRange] = field(default_factory=dict)

    def store(self, date_range: DateRange, events: List[CalendarEvent]) -> None:
        self.entries[date_range] = CachedRange(range=date_range, fetched_at=self.clock(), events=list(events))
        logger.debug("Cached %d events for %s", len(events), date_range.key)

    def query(self, date_range: DateRange) -> Optional[List[CalendarEvent]]:
        now = self.clock()
        exact = self.entries.get(date_range)
        if exact is not None and not exact.is_expired(now, self.ttl):
            return list(exact.events)

        for cached in self.entries.values():
            if cached.is_expired(now, self.ttl):
                continue
            if cached.range.contains(date_range):
                return [event for event in cached.events if date_range.includes(event.starts_at)]
        return None

    def upcoming_events(self, now: Optional[datetime] = None) -> List[CalendarEvent]:
        """Every future event across unexpired ranges, deduplicated by id."""

        current = now or self.clock()
        collected: Dict[str, CalendarEvent] = {}
        for cached in self.entries.values():
            if cached.is_expired(current, self.ttl):
                continue
            for event in cached.events:
                if event.starts_at > current:
                    collected[event.id] = event
        return sorted(collected.values(), key=lambda item: item.starts_at)

    def find(self, event_id: str) -> Optional[CalendarEvent]:
        now = self.clock()
        for cached in self.entries.values():
            if cached.is_expired(now, self.ttl):
                continue
            for event in cached.events:
                if event.id == event_id:
                    return event
        return None

    def invalidate_all(self) -> None:
        self.entries.clear()

    def cleanup_expired(self) -> int:
        now = self.clock()
        expired = [key for key, cached in self.entries.items() if cached.is_expired(now, self.ttl)]
        for key in expired:
            del self.entries[key]
        if expired:
            logger.debug("Removed %d expired range entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self.entries)
