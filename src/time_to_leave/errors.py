"""Exception hierarchy for the leave-time engine."""

from __future__ import annotations


class TimeToLeaveError(Exception):
    """Base class for every error raised by this package."""


class TravelTimeUnavailable(TimeToLeaveError):
    """A travel duration could not be computed for one location."""

    def __init__(self, location: str, message: str | None = None) -> None:
        self.location = location
        super().__init__(message or f"Travel time unavailable for {location!r}")


class LocationPermissionDenied(TravelTimeUnavailable):
    """No origin is available to route from."""


class GeocodingFailed(TravelTimeUnavailable):
    """The destination address did not resolve to coordinates."""


class NoRouteFound(TravelTimeUnavailable):
    """The router returned no driving route."""


class DirectionsUnavailable(TravelTimeUnavailable):
    """The router failed for a reason other than a missing route."""


class RoutingTimeout(TravelTimeUnavailable):
    """The routing call exceeded its per-location time budget."""


class PersistenceError(TimeToLeaveError):
    """The enriched snapshot could not be read or written."""


class SchedulingError(TimeToLeaveError):
    """The notification service rejected a request."""
