from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol

import orjson

from ..domain import EnrichedEvent, NotificationRequest, events_needing_notifications
from ..domain.leave_time import utcnow
from ..errors import SchedulingError

logger = logging.getLogger(__name__)

TIME_TO_LEAVE_CATEGORY = "TIME_TO_LEAVE_CATEGORY"
DEEP_LINK_SCHEME = "skylight"
MAX_LOCATION_LENGTH = 40


def event_deep_link(event_id: str) -> str:
    return f"{DEEP_LINK_SCHEME}://event/{event_id}"


class NotificationCenter(Protocol):
    async def request_authorization(self) -> bool: ...

    async def schedule(self, request: NotificationRequest) -> None: ...

    async def cancel(self, identifier: str) -> None: ...

    async def cancel_all_with_prefix(self, prefix: str) -> int: ...

    async def pending(self) -> List[NotificationRequest]: ...


class LocalNotificationCenter:
    """Pending alerts persisted to a JSON file and delivered by a polling loop."""

    def __init__(
        self,
        path: Path,
        *,
        deliver: Optional[Callable[[NotificationRequest], None]] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._path = path
        self._deliver = deliver or _log_delivery
        self._clock = clock
        self._lock = asyncio.Lock()

    def _load(self) -> Dict[str, NotificationRequest]:
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_bytes()
            records = orjson.loads(raw) if raw else []
        except (OSError, orjson.JSONDecodeError):
            logger.exception("Pending notifications at %s are unreadable; starting empty", self._path)
            return {}
        if not isinstance(records, list):
            logger.warning("Pending notifications at %s have an unexpected shape; starting empty", self._path)
            return {}
        pending: Dict[str, NotificationRequest] = {}
        for record in records:
            try:
                request = NotificationRequest.from_record(record)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed pending notification: %r", record)
                continue
            pending[request.identifier] = request
        return pending

    def _persist(self, pending: Dict[str, NotificationRequest]) -> None:
        records = sorted((req.to_record() for req in pending.values()), key=lambda item: item["fire_at"])
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(orjson.dumps(records, option=orjson.OPT_INDENT_2) + b"\n")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise SchedulingError(f"Failed to write pending notifications: {exc}") from exc

    async def request_authorization(self) -> bool:
        return True

    async def schedule(self, request: NotificationRequest) -> None:
        async with self._lock:
            pending = self._load()
            pending[request.identifier] = request
            self._persist(pending)

    async def cancel(self, identifier: str) -> None:
        async with self._lock:
            pending = self._load()
            if pending.pop(identifier, None) is not None:
                self._persist(pending)

    async def cancel_all_with_prefix(self, prefix: str) -> int:
        async with self._lock:
            pending = self._load()
            doomed = [identifier for identifier in pending if identifier.startswith(prefix)]
            for identifier in doomed:
                del pending[identifier]
            if doomed:
                self._persist(pending)
            return len(doomed)

    async def pending(self) -> List[NotificationRequest]:
        async with self._lock:
            return sorted(self._load().values(), key=lambda item: item.fire_at)

    async def deliver_due(self, now: Optional[datetime] = None) -> List[NotificationRequest]:
        current = now or self._clock()
        async with self._lock:
            pending = self._load()
            due = [request for request in pending.values() if request.fire_at <= current]
            for request in due:
                del pending[request.identifier]
            if due:
                self._persist(pending)
        for request in sorted(due, key=lambda item: item.fire_at):
            self._deliver(request)
        return due


def _log_delivery(request: NotificationRequest) -> None:
    logger.info("%s: %s", request.title, request.body.replace("\n", " | "))


class NotificationScheduler:
    """Namespaced time-to-leave alerts, recreated wholesale on every resync."""

    def __init__(
        self,
        center: NotificationCenter,
        *,
        prefix: str = "timeToLeave_",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._center = center
        self._prefix = prefix
        self._clock = clock

    @property
    def prefix(self) -> str:
        return self._prefix

    def identifier_for(self, event_id: str) -> str:
        return f"{self._prefix}{event_id}"

    def build_request(self, event: EnrichedEvent) -> Optional[NotificationRequest]:
        leave_by = event.leave_by
        if leave_by is None:
            return None
        return NotificationRequest(
            identifier=self.identifier_for(event.id),
            fire_at=leave_by,
            title="Time to Leave",
            body=notification_body(event),
            category=TIME_TO_LEAVE_CATEGORY,
            user_info={
                "eventId": event.id,
                "eventTitle": event.title,
                "deepLink": event_deep_link(event.id),
            },
        )

    async def schedule(self, event: EnrichedEvent) -> bool:
        """Schedule a single alert, replacing any pending one for the same event.

        Returns False when the event is ineligible or the call fails.
        """

        return await self._submit(event, replace_existing=True)

    async def _submit(self, event: EnrichedEvent, *, replace_existing: bool) -> bool:
        request = self.build_request(event)
        if request is None:
            logger.debug("No leave time for event %s; nothing to schedule", event.id)
            return False
        if event.is_all_day or request.fire_at <= self._clock():
            logger.debug("Leave time for event %s is in the past; not scheduling", event.id)
            return False
        try:
            if replace_existing:
                await self._center.cancel(request.identifier)
            await self._center.schedule(request)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to schedule notification for event %s", event.id)
            return False
        logger.debug("Scheduled notification for %r at %s", event.title, request.fire_at.isoformat())
        return True

    async def schedule_all(self, events: Iterable[EnrichedEvent]) -> int:
        """Cancel every namespaced alert, then schedule one per eligible event.

        Raises ``SchedulingError`` only when the bulk cancel itself fails.
        """

        events = list(events)
        await self.cancel_all()
        eligible = events_needing_notifications(events, self._clock())
        scheduled = 0
        for event in eligible:
            if await self._submit(event, replace_existing=False):
                scheduled += 1
        logger.info("Scheduled %d of %d notifications", scheduled, len(eligible))
        return scheduled

    async def cancel(self, event_id: str) -> None:
        await self._center.cancel(self.identifier_for(event_id))
        logger.debug("Cancelled notification for event %s", event_id)

    async def cancel_all(self) -> int:
        removed = await self._center.cancel_all_with_prefix(self._prefix)
        logger.debug("Cancelled %d time to leave notifications", removed)
        return removed

    async def request_authorization(self) -> bool:
        try:
            return await self._center.request_authorization()
        except SchedulingError:
            logger.exception("Notification authorization request failed")
            return False


def notification_body(event: EnrichedEvent) -> str:
    body = f"Leave now for {event.title}"
    drive = event.drive_time_display
    if drive:
        body += f" ({drive})"
    if event.location and event.location.strip():
        location = event.location
        if len(location) > MAX_LOCATION_LENGTH:
            location = location[: MAX_LOCATION_LENGTH - 3] + "..."
        body += f"\n{location}"
    return body


__all__ = [
    "LocalNotificationCenter",
    "NotificationCenter",
    "NotificationScheduler",
    "TIME_TO_LEAVE_CATEGORY",
    "event_deep_link",
    "notification_body",
]
