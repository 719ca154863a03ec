from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol

from ..data.cache import EventRangeCache
from ..domain import CalendarEvent, DateRange
from ..domain.leave_time import utcnow
from .orchestrator import DriveTimeOrchestrator

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    def fetch_window(self, date_range: DateRange) -> List[CalendarEvent]: ...


@dataclass
class CalendarService:
    """Loads calendar ranges through the range cache and feeds the orchestrator."""

    source: EventSource
    cache: EventRangeCache
    orchestrator: DriveTimeOrchestrator
    clock: Callable[[], datetime] = utcnow

    async def load_range(self, date_range: DateRange, *, force_refresh: bool = False) -> List[CalendarEvent]:
        """Return the events for ``date_range``, fetching only on a cache miss.

        Whatever the source of the events, every upcoming event across the
        unexpired cached ranges is then handed to the orchestrator so the
        snapshot covers more than the range on screen.
        """

        events: Optional[List[CalendarEvent]] = None
        if force_refresh:
            self.cache.invalidate_all()
        else:
            events = self.cache.query(date_range)

        if events is None:
            events = await asyncio.to_thread(self.source.fetch_window, date_range)
            self.cache.store(date_range, events)
            logger.info("Fetched %d events for %s", len(events), date_range.key)
        else:
            logger.debug("Serving %d events for %s from cache", len(events), date_range.key)

        await self.orchestrator.process_events(self.cache.upcoming_events(), force_refresh=force_refresh)
        return events

    async def load_upcoming(self, lookahead: timedelta, *, force_refresh: bool = False) -> List[CalendarEvent]:
        start = self.clock()
        return await self.load_range(DateRange(start, start + lookahead), force_refresh=force_refresh)

    async def find_event(self, event_id: str) -> Optional[CalendarEvent]:
        cached = self.cache.find(event_id)
        if cached is not None:
            return cached
        now = self.clock()
        window = DateRange(now - timedelta(days=30), now + timedelta(days=60))
        try:
            events = await asyncio.to_thread(self.source.fetch_window, window)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to look up event %s", event_id)
            return None
        return next((event for event in events if event.id == event_id), None)

    def invalidate(self) -> None:
        self.cache.invalidate_all()
        logger.debug("Event range cache cleared")
