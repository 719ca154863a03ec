from __future__ import annotations

import logging
import os
from copy import deepcopy
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import orjson

from ..domain import EnrichedEvent
from ..domain.leave_time import utcnow
from ..errors import PersistenceError

logger = logging.getLogger(__name__)


DEFAULT_SNAPSHOT: Dict[str, Any] = {
    "events": [],
    "last_update": None,
    "settings": {
        "alerts_enabled": None,
        "buffer_minutes": None,
    },
}


class SnapshotStore:
    """File-backed store shared by the orchestrator and the display surface.

    Every read goes back to disk so readers in other processes see the latest
    snapshot. Every write replaces the whole document atomically.
    """

    def __init__(
        self,
        path: Path,
        *,
        default_buffer_minutes: int = 10,
        default_alerts_enabled: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._path = path
        self._default_buffer = default_buffer_minutes
        self._default_alerts = default_alerts_enabled
        self._clock = clock
        self._write_failed = False

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return deepcopy(DEFAULT_SNAPSHOT)
        try:
            raw = self._path.read_bytes()
            state = orjson.loads(raw) if raw else {}
        except (OSError, orjson.JSONDecodeError):
            logger.exception("Snapshot at %s is unreadable; treating it as empty", self._path)
            return deepcopy(DEFAULT_SNAPSHOT)
        if not isinstance(state, dict):
            logger.warning("Snapshot at %s has an unexpected shape; treating it as empty", self._path)
            return deepcopy(DEFAULT_SNAPSHOT)
        # Backfill missing keys when upgrading.
        for key, value in DEFAULT_SNAPSHOT.items():
            if key not in state:
                state[key] = deepcopy(value)
        return state

    def _persist(self, state: Dict[str, Any]) -> None:
        payload = orjson.dumps(state, option=orjson.OPT_INDENT_2)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(payload + b"\n")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise PersistenceError(f"Failed to write snapshot to {self._path}: {exc}") from exc

    def mutate(self, callback: Callable[[Dict[str, Any]], Any]) -> Any:
        state = self._load()
        result = callback(state)
        self._persist(state)
        return result

    # Events

    def write(self, events: Iterable[EnrichedEvent]) -> None:
        records = [event.to_record() for event in events]
        timestamp = self._clock().isoformat()

        def _replace(state: Dict[str, Any]) -> None:
            state["events"] = records
            state["last_update"] = timestamp

        try:
            self.mutate(_replace)
        except PersistenceError:
            self._mark_write_failed()
            raise
        self._clear_write_failure()
        logger.debug("Saved %d events to %s", len(records), self._path)

    @property
    def failure_marker(self) -> Path:
        return self._path.with_name(self._path.name + ".failed")

    def _mark_write_failed(self) -> None:
        # Visible to readers in other processes.
        self._write_failed = True
        try:
            self.failure_marker.write_text(self._clock().isoformat())
        except OSError:
            logger.warning("Could not record snapshot write failure at %s", self.failure_marker)

    def _clear_write_failure(self) -> None:
        self._write_failed = False
        try:
            self.failure_marker.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove snapshot failure marker at %s", self.failure_marker)

    @property
    def write_failed(self) -> bool:
        """True while the most recent event write has not succeeded."""

        return self._write_failed or self.failure_marker.exists()

    def read(self) -> List[EnrichedEvent]:
        events: List[EnrichedEvent] = []
        for record in self._load().get("events") or []:
            try:
                events.append(EnrichedEvent.from_record(record))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed snapshot record: %r", record)
        return events

    def clear(self) -> None:
        def _clear(state: Dict[str, Any]) -> None:
            state["events"] = []
            state["last_update"] = None

        self.mutate(_clear)

    @property
    def last_update(self) -> Optional[datetime]:
        raw = self._load().get("last_update")
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except (TypeError, ValueError):
            return None

    def has_valid_data(self, validity: timedelta = timedelta(hours=24), now: Optional[datetime] = None) -> bool:
        if self.write_failed:
            return False
        timestamp = self.last_update
        if timestamp is None:
            return False
        return (now or self._clock()) - timestamp < validity

    # Settings

    def _setting(self, name: str) -> Any:
        return (self._load().get("settings") or {}).get(name)

    def _set_setting(self, name: str, value: Any) -> None:
        def _apply(state: Dict[str, Any]) -> None:
            state.setdefault("settings", {})[name] = value

        self.mutate(_apply)

    @property
    def alerts_enabled(self) -> bool:
        value = self._setting("alerts_enabled")
        return self._default_alerts if value is None else bool(value)

    @alerts_enabled.setter
    def alerts_enabled(self, value: bool) -> None:
        self._set_setting("alerts_enabled", bool(value))

    @property
    def buffer_minutes(self) -> int:
        value = self._setting("buffer_minutes")
        if value is None:
            return self._default_buffer
        return int(value)

    @buffer_minutes.setter
    def buffer_minutes(self, value: int) -> None:
        if value < 0:
            raise ValueError("Buffer minutes cannot be negative")
        self._set_setting("buffer_minutes", int(value))


__all__ = ["DEFAULT_SNAPSHOT", "SnapshotStore"]
