from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..config import AppSettings, get_settings
from ..core import ensure_data_dir
from ..data import DriveTimeCache, EventRangeCache, SnapshotStore, SupabaseGateway
from ..data.repositories import EventRepository
from .background import BackgroundRefresher
from .calendar import CalendarService
from .notifications import LocalNotificationCenter, NotificationScheduler
from .orchestrator import DriveTimeOrchestrator
from .refresh import DisplayRefreshSignal
from .routing import RoutingService, TravelTimeSource
from .timeline import TimelineGenerator

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """Process-wide services built once at startup and handed to every consumer."""

    settings: AppSettings = field(default_factory=get_settings)
    travel_source: Optional[TravelTimeSource] = None
    gateway: SupabaseGateway = field(init=False)
    events: EventRepository = field(init=False)
    store: SnapshotStore = field(init=False)
    range_cache: EventRangeCache = field(init=False)
    drive_cache: DriveTimeCache = field(init=False)
    notification_center: LocalNotificationCenter = field(init=False)
    scheduler: NotificationScheduler = field(init=False)
    refresh_signal: DisplayRefreshSignal = field(init=False)
    orchestrator: DriveTimeOrchestrator = field(init=False)
    calendar: CalendarService = field(init=False)
    timeline: TimelineGenerator = field(init=False)
    background: BackgroundRefresher = field(init=False)

    def __post_init__(self) -> None:
        settings = self.settings
        ensure_data_dir(settings.storage.snapshot_file.parent)

        self.gateway = SupabaseGateway(settings.supabase)
        self.events = EventRepository(gateway=self.gateway, table_name=settings.storage.events_table)
        self.store = SnapshotStore(
            settings.storage.snapshot_file,
            default_buffer_minutes=settings.alerts.default_buffer_minutes,
            default_alerts_enabled=settings.alerts.enabled_by_default,
        )
        self.range_cache = EventRangeCache(ttl=settings.cache.range_ttl)
        self.drive_cache = DriveTimeCache(ttl=settings.cache.drive_ttl)
        if self.travel_source is None:
            self.travel_source = RoutingService(settings.routing)
        self.notification_center = LocalNotificationCenter(settings.storage.notifications_file)
        self.scheduler = NotificationScheduler(self.notification_center, prefix=settings.alerts.identifier_prefix)
        self.refresh_signal = DisplayRefreshSignal()
        self.orchestrator = DriveTimeOrchestrator(
            store=self.store,
            drive_cache=self.drive_cache,
            travel_source=self.travel_source,
            scheduler=self.scheduler,
            refresh_signal=self.refresh_signal,
            timeout=settings.routing.timeout,
            max_concurrency=settings.routing.max_concurrency,
        )
        self.calendar = CalendarService(source=self.events, cache=self.range_cache, orchestrator=self.orchestrator)
        self.timeline = TimelineGenerator(self.store, settings.timeline)
        self.background = BackgroundRefresher(
            self.calendar,
            interval=settings.refresh.interval,
            lookahead=settings.refresh.lookahead,
            notification_center=self.notification_center,
        )
        logger.debug("Service context ready; snapshot at %s", settings.storage.snapshot_file)

    def sign_in(self) -> bool:
        """Open a backend session from the configured credentials if none is active."""

        if self.gateway.is_ready():
            return True
        supabase = self.settings.supabase
        if not supabase.has_credentials:
            logger.warning("SUPABASE_EMAIL / SUPABASE_PASSWORD are not set; calendar fetches will fail")
            return False
        session = self.gateway.sign_in_with_password(supabase.email, supabase.password)
        if session is None:
            return False
        self.range_cache.invalidate_all()
        return True

    def sign_out(self) -> None:
        """Drop the backend session and everything derived from it."""

        try:
            self.gateway.sign_out()
        finally:
            self.range_cache.invalidate_all()
            self.drive_cache.clear()
            self.store.clear()
            self.refresh_signal.signal()

    async def aclose(self) -> None:
        self.background.stop()
        close = getattr(self.travel_source, "aclose", None)
        if close is not None:
            await close()
