"""Configuration models and helpers."""

from __future__ import annotations

from .settings import (
    AlertSettings,
    AppSettings,
    CacheSettings,
    RefreshSettings,
    RoutingSettings,
    StorageSettings,
    SupabaseSettings,
    TimelineSettings,
    get_settings,
)

__all__ = [
    "AlertSettings",
    "AppSettings",
    "CacheSettings",
    "RefreshSettings",
    "RoutingSettings",
    "StorageSettings",
    "SupabaseSettings",
    "TimelineSettings",
    "get_settings",
]
