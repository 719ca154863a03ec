"""In-memory TTL caches owned by the orchestration path."""

from __future__ import annotations

from .drive_time_cache import DriveTimeCache, DriveTimeEntry
from .event_range_cache import CachedRange, EventRangeCache

__all__ = ["CachedRange", "DriveTimeCache", "DriveTimeEntry", "EventRangeCache"]
