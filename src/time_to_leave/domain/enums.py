from __future__ import annotations

from enum import Enum


class TimelineState(str, Enum):
    NO_DATA = "noData"
    NO_UPCOMING = "noUpcoming"
    UPCOMING = "upcoming"
    LEAVE_NOW = "leaveNow"
    EVENT_STARTED = "eventStarted"
