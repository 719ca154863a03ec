from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from ..domain.leave_time import utcnow

logger = logging.getLogger(__name__)

RefreshListener = Callable[[int], None]


class DisplayRefreshSignal:
    """One-way "persisted data changed" broadcast to display surfaces."""

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._listeners: List[RefreshListener] = []
        self._clock = clock
        self.generation = 0
        self.last_signaled_at: Optional[datetime] = None

    def subscribe(self, listener: RefreshListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def signal(self) -> None:
        self.generation += 1
        self.last_signaled_at = self._clock()
        for listener in list(self._listeners):
            try:
                listener(self.generation)
            except Exception:  # noqa: BLE001
                logger.exception("Display refresh listener failed")
        logger.debug("Triggered display refresh (generation %d)", self.generation)
