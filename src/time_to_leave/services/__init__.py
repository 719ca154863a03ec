"""Application services orchestrating data access and leave-time logic."""

from __future__ import annotations

from .background import BackgroundRefresher
from .calendar import CalendarService
from .context import ServiceContext
from .notifications import LocalNotificationCenter, NotificationScheduler
from .orchestrator import DriveTimeOrchestrator, OrchestratorState
from .refresh import DisplayRefreshSignal
from .routing import RoutingService
from .timeline import TimelineGenerator

__all__ = [
    "BackgroundRefresher",
    "CalendarService",
    "DisplayRefreshSignal",
    "DriveTimeOrchestrator",
    "LocalNotificationCenter",
    "NotificationScheduler",
    "OrchestratorState",
    "RoutingService",
    "ServiceContext",
    "TimelineGenerator",
]
