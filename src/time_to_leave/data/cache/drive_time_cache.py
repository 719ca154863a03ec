from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional

from ...domain.leave_time import utcnow
from ...errors import TravelTimeUnavailable

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DriveTimeEntry:
    location: str
    minutes: int
    computed_at: datetime

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.computed_at > ttl


@dataclass
class DriveTimeCache:
    """Travel durations keyed by the raw destination string."""

    ttl: timedelta = timedelta(minutes=30)
    clock: Callable[[], datetime] = utcnow
    entries: Dict[str, DriveTimeEntry] = field(default_factory=dict)

    def get(self, location: str) -> Optional[int]:
        entry = self.entries.get(location)
        if entry is None or entry.is_expired(self.clock(), self.ttl):
            return None
        return entry.minutes

    def put(self, location: str, minutes: int) -> None:
        self.entries[location] = DriveTimeEntry(location=location, minutes=minutes, computed_at=self.clock())

    async def get_or_compute(
        self,
        location: str,
        compute: Callable[[str], Awaitable[int]],
        *,
        force_refresh: bool = False,
    ) -> Optional[int]:
        """Return a cached duration or compute, cache and return a fresh one.

        A failed computation is not cached and yields ``None`` so the caller can
        carry on with the remaining locations.
        """

        if not force_refresh:
            cached = self.get(location)
            if cached is not None:
                logger.debug("Using cached drive time for %r: %d min", location, cached)
                return cached

        try:
            minutes = await compute(location)
        except TravelTimeUnavailable as exc:
            logger.warning("Drive time unavailable for %r: %s", location, exc)
            return None
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected failure computing drive time for %r", location)
            return None

        self.put(location, minutes)
        logger.debug("Calculated drive time for %r: %d min", location, minutes)
        return minutes

    def clear(self) -> None:
        self.entries.clear()

    def cleanup_expired(self) -> int:
        now = self.clock()
        expired = [key for key, entry in self.entries.items() if entry.is_expired(now, self.ttl)]
        for key in expired:
            del self.entries[key]
        if expired:
            logger.debug("Removed %d expired drive time entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self.entries)
