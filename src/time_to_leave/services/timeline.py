from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from ..config.settings import TimelineSettings
from ..data.snapshot_store import SnapshotStore
from ..domain import EnrichedEvent, Timeline, TimelineEntry, TimelineState, next_upcoming
from ..domain.leave_time import utcnow

logger = logging.getLogger(__name__)


def event_transitions(event: EnrichedEvent, now: datetime) -> List[TimelineEntry]:
    """The fixed (timestamp, state) sequence one event contributes to a timeline."""

    if event.has_started(now):
        # The end entry forces a regeneration once the event closes.
        return [
            TimelineEntry(now, TimelineState.EVENT_STARTED, event),
            TimelineEntry(event.ends_at, TimelineState.EVENT_STARTED, event),
        ]

    leave_by = event.leave_by
    if leave_by is not None and leave_by > now:
        return [
            TimelineEntry(now, TimelineState.UPCOMING, event),
            TimelineEntry(leave_by, TimelineState.LEAVE_NOW, event),
            TimelineEntry(event.starts_at, TimelineState.EVENT_STARTED, event),
        ]
    if leave_by is not None:
        return [
            TimelineEntry(now, TimelineState.LEAVE_NOW, event),
            TimelineEntry(event.starts_at, TimelineState.EVENT_STARTED, event),
        ]
    return [
        TimelineEntry(now, TimelineState.UPCOMING, event),
        TimelineEntry(event.starts_at, TimelineState.EVENT_STARTED, event),
    ]


class TimelineGenerator:
    """Precomputes every display state change up to the surface's next wake-up."""

    def __init__(
        self,
        store: SnapshotStore,
        settings: TimelineSettings,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    @property
    def max_events(self) -> int:
        return self._settings.max_events

    def generate(self, now: Optional[datetime] = None) -> Timeline:
        current = now or self._clock()
        if not self._store.has_valid_data(self._settings.validity_window, now=current):
            logger.debug("Snapshot missing or stale; emitting noData timeline")
            return Timeline(
                entries=(TimelineEntry(current, TimelineState.NO_DATA),),
                refresh_at=current + self._settings.empty_refresh,
            )
        return self.build(self._store.read(), current)

    def build(self, events: Iterable[EnrichedEvent], now: datetime) -> Timeline:
        upcoming = sorted(
            (event for event in events if not event.has_started(now) and not event.is_all_day),
            key=lambda item: item.starts_at,
        )[: self._settings.max_events]

        entries: List[TimelineEntry] = []
        if not upcoming:
            entries.append(TimelineEntry(now, TimelineState.NO_UPCOMING))
        for event in upcoming:
            entries.extend(event_transitions(event, now))

        entries.sort(key=lambda item: item.timestamp)
        refresh_at = self._refresh_after(entries, now)
        logger.debug("Generated %d timeline entries; refresh at %s", len(entries), refresh_at.isoformat())
        return Timeline(entries=tuple(entries), refresh_at=refresh_at)

    def _refresh_after(self, entries: List[TimelineEntry], now: datetime) -> datetime:
        if not entries:
            return now + self._settings.empty_refresh
        return entries[-1].timestamp + self._settings.refresh_epsilon

    def current_state(self, events: Iterable[EnrichedEvent], now: Optional[datetime] = None) -> TimelineEntry:
        """Single-entry view of what to show right now, used for placeholders."""

        current = now or self._clock()
        event = next_upcoming(events, current)
        if event is None:
            return TimelineEntry(current, TimelineState.NO_UPCOMING)
        if event.has_started(current):
            return TimelineEntry(current, TimelineState.EVENT_STARTED, event)
        if event.should_leave_now(current):
            return TimelineEntry(current, TimelineState.LEAVE_NOW, event)
        return TimelineEntry(current, TimelineState.UPCOMING, event)


__all__ = ["TimelineGenerator", "event_transitions"]
