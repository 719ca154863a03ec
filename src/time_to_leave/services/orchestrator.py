from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from ..data.cache import DriveTimeCache
from ..data.snapshot_store import SnapshotStore
from ..domain import CalendarEvent, EnrichedEvent
from ..domain.leave_time import utcnow
from ..errors import RoutingTimeout
from .notifications import NotificationScheduler
from .refresh import DisplayRefreshSignal
from .routing import TravelTimeSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestratorState:
    is_processing: bool
    last_error: Optional[BaseException]
    last_processed_count: int

    def to_record(self) -> dict:
        return {
            "is_processing": self.is_processing,
            "last_error": str(self.last_error) if self.last_error else None,
            "last_processed_count": self.last_processed_count,
        }


StateObserver = Callable[[OrchestratorState], None]


class DriveTimeOrchestrator:
    """Turns fetched events into the persisted enriched snapshot.

    Only one run may be active at a time; a trigger that arrives while a run is
    in flight is dropped rather than queued. Failures never escape a run: per
    location they degrade a single event, and systemic ones land in
    ``last_error``.
    """

    def __init__(
        self,
        *,
        store: SnapshotStore,
        drive_cache: DriveTimeCache,
        travel_source: TravelTimeSource,
        scheduler: NotificationScheduler,
        refresh_signal: DisplayRefreshSignal,
        timeout: timedelta = timedelta(seconds=5),
        max_concurrency: int = 1,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._drive_cache = drive_cache
        self._travel_source = travel_source
        self._scheduler = scheduler
        self._refresh_signal = refresh_signal
        self._timeout = timeout
        self._max_concurrency = max(1, max_concurrency)
        self._clock = clock
        self._busy = threading.Lock()
        self._observers: List[StateObserver] = []
        self._is_processing = False
        self._last_error: Optional[BaseException] = None
        self._last_processed_count = 0

    # Observable state

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    @property
    def last_processed_count(self) -> int:
        return self._last_processed_count

    @property
    def state(self) -> OrchestratorState:
        return OrchestratorState(
            is_processing=self._is_processing,
            last_error=self._last_error,
            last_processed_count=self._last_processed_count,
        )

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def _publish(self) -> None:
        snapshot = self.state
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Orchestrator state observer failed")

    def _record_error(self, exc: BaseException) -> None:
        self._last_error = exc
        self._publish()

    # Main processing

    async def process_events(self, events: Iterable[CalendarEvent], force_refresh: bool = False) -> bool:
        """Run the pipeline once. Returns False when dropped because a run is active."""

        if not self._busy.acquire(blocking=False):
            logger.info("Already processing, skipping")
            return False

        self._is_processing = True
        self._last_error = None
        self._publish()
        try:
            await self._run(list(events), force_refresh)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Drive time processing failed")
            self._last_error = exc
        finally:
            self._is_processing = False
            self._busy.release()
            self._publish()
        return True

    async def _run(self, events: List[CalendarEvent], force_refresh: bool) -> None:
        now = self._clock()
        upcoming = [event for event in events if event.starts_at > now]
        located = [event for event in upcoming if not event.is_all_day and event.has_location]
        located_ids = {event.id for event in located}
        unlocated = [event for event in upcoming if event.id not in located_ids]
        logger.info(
            "Processing %d events: %d upcoming with locations, %d without",
            len(events),
            len(located),
            len(unlocated),
        )

        buffer_minutes = self._store.buffer_minutes
        drive_times = await self._resolve_drive_times(located, force_refresh)

        enriched: List[EnrichedEvent] = [
            EnrichedEvent.from_event(
                event,
                drive_time_minutes=drive_times.get(event.location or ""),
                buffer_minutes=buffer_minutes,
            )
            for event in located
        ]
        enriched.extend(
            EnrichedEvent.from_event(event, drive_time_minutes=None, buffer_minutes=buffer_minutes)
            for event in unlocated
        )
        enriched.sort(key=lambda item: item.starts_at)

        await self._publish_snapshot(enriched, cancel_when_disabled=False)
        self._last_processed_count = len(enriched)
        logger.info("Finished processing; %d events saved", len(enriched))

    async def _resolve_drive_times(self, events: List[CalendarEvent], force_refresh: bool) -> Dict[str, Optional[int]]:
        locations = list(dict.fromkeys(event.location for event in events if event.location))
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _resolve(location: str) -> Optional[int]:
            async with semaphore:
                return await self._drive_cache.get_or_compute(location, self._compute, force_refresh=force_refresh)

        results = await asyncio.gather(*(_resolve(location) for location in locations))
        return dict(zip(locations, results))

    async def _compute(self, location: str) -> int:
        try:
            return await asyncio.wait_for(
                self._travel_source.compute_travel_minutes(location),
                timeout=self._timeout.total_seconds(),
            )
        except asyncio.TimeoutError as exc:
            raise RoutingTimeout(location) from exc

    async def _publish_snapshot(self, events: List[EnrichedEvent], *, cancel_when_disabled: bool) -> None:
        try:
            self._store.write(events)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to persist %d enriched events", len(events))
            self._record_error(exc)

        try:
            if self._store.alerts_enabled:
                await self._scheduler.schedule_all(events)
            elif cancel_when_disabled:
                await self._scheduler.cancel_all()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Notification scheduling failed")
            self._record_error(exc)

        self._refresh_signal.signal()

    # Settings changes

    async def on_settings_changed(self) -> None:
        """Re-derive the snapshot for a new buffer or alert toggle without refetching."""

        try:
            existing = self._store.read()
            if not existing:
                if not self._store.alerts_enabled:
                    await self._scheduler.cancel_all()
                return
            buffer_minutes = self._store.buffer_minutes
            logger.info("Settings changed, updating %d cached events", len(existing))
            updated = [event.with_buffer(buffer_minutes) for event in existing]
            await self._publish_snapshot(updated, cancel_when_disabled=True)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Applying settings change failed")
            self._record_error(exc)

    async def enable_alerts(self) -> bool:
        authorized = await self._scheduler.request_authorization()
        if not authorized:
            logger.info("Notification authorization denied; alerts stay disabled")
            return False
        try:
            self._store.alerts_enabled = True
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to enable alerts")
            self._record_error(exc)
            return False
        await self.on_settings_changed()
        return True

    async def disable_alerts(self) -> None:
        try:
            self._store.alerts_enabled = False
            await self._scheduler.cancel_all()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to disable alerts")
            self._record_error(exc)
        self._refresh_signal.signal()

    async def update_buffer_time(self, minutes: int) -> None:
        if minutes < 0:
            raise ValueError("Buffer minutes cannot be negative")
        try:
            self._store.buffer_minutes = minutes
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to store buffer time")
            self._record_error(exc)
            return
        await self.on_settings_changed()

    # Cache management

    def clear_cache(self) -> None:
        self._drive_cache.clear()
        logger.debug("Drive time cache cleared")

    def cleanup_expired_cache(self) -> int:
        return self._drive_cache.cleanup_expired()


__all__ = ["DriveTimeOrchestrator", "OrchestratorState"]
