from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from ..core.config import DATA_DIR

load_dotenv()


@dataclass(frozen=True)
class SupabaseSettings:
    url: Optional[str]
    anon_key: Optional[str]
    email: Optional[str] = None
    password: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)

    @property
    def has_credentials(self) -> bool:
        return bool(self.email and self.password)

    @property
    def missing_env_vars(self) -> list[str]:
        missing = []
        if not self.url:
            missing.append("SUPABASE_URL")
        if not self.anon_key:
            missing.append("SUPABASE_ANON_KEY")
        return missing


@dataclass(frozen=True)
class StorageSettings:
    events_table: str
    snapshot_file: Path
    notifications_file: Path


@dataclass(frozen=True)
class CacheSettings:
    range_ttl: timedelta
    drive_ttl: timedelta


@dataclass(frozen=True)
class RoutingSettings:
    origin_address: Optional[str]
    origin_lat: Optional[float]
    origin_lon: Optional[float]
    geocoder_url: str
    router_url: str
    user_agent: str
    timeout: timedelta
    max_concurrency: int

    @property
    def has_origin(self) -> bool:
        return bool(self.origin_address) or (self.origin_lat is not None and self.origin_lon is not None)


@dataclass(frozen=True)
class AlertSettings:
    default_buffer_minutes: int
    buffer_options: tuple[int, ...]
    enabled_by_default: bool
    identifier_prefix: str


@dataclass(frozen=True)
class TimelineSettings:
    max_events: int
    validity_window: timedelta
    refresh_epsilon: timedelta
    empty_refresh: timedelta


@dataclass(frozen=True)
class RefreshSettings:
    interval: timedelta
    lookahead: timedelta


@dataclass(frozen=True)
class AppSettings:
    supabase: SupabaseSettings
    storage: StorageSettings
    cache: CacheSettings
    routing: RoutingSettings
    alerts: AlertSettings
    timeline: TimelineSettings
    refresh: RefreshSettings


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_from_env(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _minutes_from_env(name: str, default_minutes: float) -> timedelta:
    raw = os.getenv(name)
    if not raw:
        return timedelta(minutes=default_minutes)
    try:
        minutes = float(raw)
    except ValueError:
        return timedelta(minutes=default_minutes)
    return timedelta(minutes=minutes)


def _seconds_from_env(name: str, default_seconds: float) -> timedelta:
    raw = os.getenv(name)
    if not raw:
        return timedelta(seconds=default_seconds)
    try:
        seconds = float(raw)
    except ValueError:
        return timedelta(seconds=default_seconds)
    return timedelta(seconds=seconds)


def _bool_from_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    supabase = SupabaseSettings(
        url=os.getenv("SUPABASE_URL"),
        anon_key=os.getenv("SUPABASE_ANON_KEY"),
        email=os.getenv("SUPABASE_EMAIL"),
        password=os.getenv("SUPABASE_PASSWORD"),
    )

    storage = StorageSettings(
        events_table=os.getenv("SUPABASE_EVENTS_TABLE", "calendar_events"),
        snapshot_file=Path(os.getenv("TTL_SNAPSHOT_FILE", DATA_DIR / "enriched_events.json")),
        notifications_file=Path(os.getenv("TTL_NOTIFICATIONS_FILE", DATA_DIR / "pending_notifications.json")),
    )

    cache = CacheSettings(
        range_ttl=_minutes_from_env("TTL_RANGE_CACHE_MINUTES", 60),
        drive_ttl=_minutes_from_env("TTL_DRIVE_CACHE_MINUTES", 30),
    )

    routing = RoutingSettings(
        origin_address=os.getenv("TTL_ORIGIN_ADDRESS"),
        origin_lat=_float_from_env("TTL_ORIGIN_LAT"),
        origin_lon=_float_from_env("TTL_ORIGIN_LON"),
        geocoder_url=os.getenv("TTL_GEOCODER_URL", "https://nominatim.openstreetmap.org/search"),
        router_url=os.getenv("TTL_ROUTER_URL", "https://router.project-osrm.org/route/v1/driving"),
        user_agent=os.getenv("TTL_USER_AGENT", "time-to-leave/0.1"),
        timeout=_seconds_from_env("TTL_ROUTING_TIMEOUT_SECONDS", 5),
        max_concurrency=max(1, _int_from_env("TTL_ROUTING_CONCURRENCY", 1)),
    )

    alerts = AlertSettings(
        default_buffer_minutes=_int_from_env("TTL_DEFAULT_BUFFER_MINUTES", 10),
        buffer_options=(5, 10, 15, 20, 30),
        enabled_by_default=_bool_from_env("TTL_ALERTS_ENABLED", False),
        identifier_prefix=os.getenv("TTL_ALERT_PREFIX", "timeToLeave_"),
    )

    timeline = TimelineSettings(
        max_events=_int_from_env("TTL_TIMELINE_MAX_EVENTS", 5),
        validity_window=_minutes_from_env("TTL_SNAPSHOT_VALIDITY_MINUTES", 24 * 60),
        refresh_epsilon=_seconds_from_env("TTL_TIMELINE_EPSILON_SECONDS", 60),
        empty_refresh=_minutes_from_env("TTL_TIMELINE_EMPTY_REFRESH_MINUTES", 60),
    )

    refresh = RefreshSettings(
        interval=_minutes_from_env("TTL_REFRESH_INTERVAL_MINUTES", 15),
        lookahead=timedelta(days=_int_from_env("TTL_REFRESH_LOOKAHEAD_DAYS", 7)),
    )

    return AppSettings(
        supabase=supabase,
        storage=storage,
        cache=cache,
        routing=routing,
        alerts=alerts,
        timeline=timeline,
        refresh=refresh,
    )
