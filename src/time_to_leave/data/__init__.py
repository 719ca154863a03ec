"""Data access layer."""

from __future__ import annotations

from .cache import DriveTimeCache, EventRangeCache
from .snapshot_store import SnapshotStore
from .supabase import SupabaseGateway, SupabaseNotInitializedError, SupabaseSessionMissingError

__all__ = [
    "DriveTimeCache",
    "EventRangeCache",
    "SnapshotStore",
    "SupabaseGateway",
    "SupabaseNotInitializedError",
    "SupabaseSessionMissingError",
]
