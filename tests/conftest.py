"""Shared fixtures for the leave-time test suite."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from time_to_leave.config.settings import TimelineSettings
from time_to_leave.data import DriveTimeCache, SnapshotStore
from time_to_leave.domain import CalendarEvent, EnrichedEvent, NotificationRequest
from time_to_leave.errors import GeocodingFailed, SchedulingError
from time_to_leave.services import DisplayRefreshSignal, DriveTimeOrchestrator, NotificationScheduler

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeTravelSource:
    """Travel source answering from a lookup table and recording every call."""

    def __init__(self, minutes: Optional[Dict[str, int]] = None, default: int = 20) -> None:
        self.minutes = minutes or {}
        self.default = default
        self.calls: List[str] = []
        self.unreachable: set[str] = set()
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    async def compute_travel_minutes(self, address: str) -> int:
        self.calls.append(address)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if address in self.unreachable:
            raise GeocodingFailed(address)
        return self.minutes.get(address, self.default)


class FakeNotificationCenter:
    """In-memory notification center with optional per-identifier failures."""

    def __init__(self) -> None:
        self.requests: Dict[str, NotificationRequest] = {}
        self.authorized = True
        self.failing: set[str] = set()
        self.crashing: set[str] = set()
        self.schedule_calls = 0
        self.cancel_calls = 0

    async def request_authorization(self) -> bool:
        return self.authorized

    async def schedule(self, request: NotificationRequest) -> None:
        self.schedule_calls += 1
        if request.identifier in self.failing:
            raise SchedulingError(f"rejected {request.identifier}")
        if request.identifier in self.crashing:
            raise RuntimeError("notification service hiccup")
        self.requests[request.identifier] = request

    async def cancel(self, identifier: str) -> None:
        self.cancel_calls += 1
        self.requests.pop(identifier, None)

    async def cancel_all_with_prefix(self, prefix: str) -> int:
        doomed = [key for key in self.requests if key.startswith(prefix)]
        for key in doomed:
            del self.requests[key]
        return len(doomed)

    async def pending(self) -> List[NotificationRequest]:
        return sorted(self.requests.values(), key=lambda item: item.fire_at)


def make_event(
    event_id: str = "evt-1",
    *,
    starts_in: timedelta = timedelta(hours=1),
    duration: timedelta = timedelta(hours=1),
    location: Optional[str] = "1 Market St",
    all_day: bool = False,
    title: Optional[str] = None,
    now: datetime = NOW,
) -> CalendarEvent:
    start = now + starts_in
    return CalendarEvent(
        id=event_id,
        title=title or f"Event {event_id}",
        starts_at=start,
        ends_at=start + duration,
        is_all_day=all_day,
        location=location,
    )


def make_enriched(
    event_id: str = "evt-1",
    *,
    starts_in: timedelta = timedelta(hours=1),
    drive: Optional[int] = 30,
    buffer: int = 10,
    location: Optional[str] = "1 Market St",
    all_day: bool = False,
    title: Optional[str] = None,
    now: datetime = NOW,
) -> EnrichedEvent:
    event = make_event(event_id, starts_in=starts_in, location=location, all_day=all_day, title=title, now=now)
    return EnrichedEvent.from_event(event, drive_time_minutes=drive, buffer_minutes=buffer)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def travel() -> FakeTravelSource:
    return FakeTravelSource({"1 Market St": 30, "2 Harbor Way": 15})


@pytest.fixture
def center() -> FakeNotificationCenter:
    return FakeNotificationCenter()


@pytest.fixture
def store(tmp_path, clock) -> SnapshotStore:
    return SnapshotStore(tmp_path / "snapshot.json", clock=clock)


@pytest.fixture
def drive_cache(clock) -> DriveTimeCache:
    return DriveTimeCache(clock=clock)


@pytest.fixture
def scheduler(center, clock) -> NotificationScheduler:
    return NotificationScheduler(center, clock=clock)


@pytest.fixture
def refresh_signal(clock) -> DisplayRefreshSignal:
    return DisplayRefreshSignal(clock=clock)


@pytest.fixture
def orchestrator(store, drive_cache, travel, scheduler, refresh_signal, clock) -> DriveTimeOrchestrator:
    return DriveTimeOrchestrator(
        store=store,
        drive_cache=drive_cache,
        travel_source=travel,
        scheduler=scheduler,
        refresh_signal=refresh_signal,
        clock=clock,
    )


@pytest.fixture
def timeline_settings() -> TimelineSettings:
    return TimelineSettings(
        max_events=5,
        validity_window=timedelta(hours=24),
        refresh_epsilon=timedelta(seconds=60),
        empty_refresh=timedelta(hours=1),
    )
