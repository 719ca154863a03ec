from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from .calendar import CalendarService
from .notifications import LocalNotificationCenter

logger = logging.getLogger(__name__)


class BackgroundRefresher:
    """Periodic wake-up that refetches the lookahead window and delivers due alerts."""

    def __init__(
        self,
        calendar: CalendarService,
        *,
        interval: timedelta = timedelta(minutes=15),
        lookahead: timedelta = timedelta(days=7),
        notification_center: Optional[LocalNotificationCenter] = None,
    ) -> None:
        self._calendar = calendar
        self._interval = interval
        self._lookahead = lookahead
        self._center = notification_center
        self._stopped = asyncio.Event()

    async def run_once(self) -> bool:
        """One refresh cycle; returns False when the fetch failed."""

        logger.info("Starting background refresh")
        success = True
        try:
            events = await self._calendar.load_upcoming(self._lookahead)
            logger.info("Background refresh fetched %d events", len(events))
        except Exception:  # noqa: BLE001
            logger.exception("Background refresh failed")
            success = False
        self._calendar.cache.cleanup_expired()
        self._calendar.orchestrator.cleanup_expired_cache()
        if self._center is not None:
            try:
                delivered = await self._center.deliver_due()
            except Exception:  # noqa: BLE001
                logger.exception("Delivering due notifications failed")
                success = False
            else:
                if delivered:
                    logger.info("Delivered %d due notifications", len(delivered))
        return success

    async def run_forever(self) -> None:
        while not self._stopped.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self._interval.total_seconds())
            except asyncio.TimeoutError:
                continue
        logger.info("Background refresher stopped")

    def stop(self) -> None:
        self._stopped.set()
