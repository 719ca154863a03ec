from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol, Tuple

import httpx

from ..config.settings import RoutingSettings
from ..errors import (
    DirectionsUnavailable,
    GeocodingFailed,
    LocationPermissionDenied,
    NoRouteFound,
    RoutingTimeout,
)

logger = logging.getLogger(__name__)

Coordinate = Tuple[float, float]


class TravelTimeSource(Protocol):
    async def compute_travel_minutes(self, address: str) -> int: ...


class RoutingService:
    """Driving time from the configured origin to an address.

    Geocoding goes through a Nominatim-compatible search endpoint and routing
    through an OSRM-compatible driving endpoint.
    """

    def __init__(self, settings: RoutingSettings, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(headers={"User-Agent": settings.user_agent})
        self._owns_client = client is None
        self._origin: Optional[Coordinate] = None
        if settings.origin_lat is not None and settings.origin_lon is not None:
            self._origin = (settings.origin_lat, settings.origin_lon)
        self._geocoded: Dict[str, Coordinate] = {}

    async def compute_travel_minutes(self, address: str) -> int:
        origin = await self._resolve_origin()
        destination = await self.geocode(address)
        return await self.driving_minutes(origin, destination, label=address)

    async def _resolve_origin(self) -> Coordinate:
        if self._origin is not None:
            return self._origin
        if not self._settings.origin_address:
            raise LocationPermissionDenied("origin", "No origin configured; set TTL_ORIGIN_ADDRESS or TTL_ORIGIN_LAT/LON")
        self._origin = await self.geocode(self._settings.origin_address)
        return self._origin

    async def geocode(self, address: str) -> Coordinate:
        if address in self._geocoded:
            return self._geocoded[address]
        try:
            response = await self._client.get(
                self._settings.geocoder_url,
                params={"q": address, "format": "json", "limit": 1},
                timeout=self._settings.timeout.total_seconds(),
            )
            response.raise_for_status()
            results = response.json()
        except httpx.TimeoutException as exc:
            raise RoutingTimeout(address, f"Geocoding timed out for {address!r}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise GeocodingFailed(address, f"Geocoding request failed for {address!r}: {exc}") from exc

        if not results:
            raise GeocodingFailed(address)
        try:
            coordinate = (float(results[0]["lat"]), float(results[0]["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingFailed(address, f"Malformed geocoding result for {address!r}") from exc
        self._geocoded[address] = coordinate
        return coordinate

    async def driving_minutes(self, origin: Coordinate, destination: Coordinate, *, label: str = "") -> int:
        origin_lat, origin_lon = origin
        dest_lat, dest_lon = destination
        url = f"{self._settings.router_url}/{origin_lon},{origin_lat};{dest_lon},{dest_lat}"
        try:
            response = await self._client.get(
                url,
                params={"overview": "false", "alternatives": "false"},
                timeout=self._settings.timeout.total_seconds(),
            )
            payload = response.json()
        except httpx.TimeoutException as exc:
            raise RoutingTimeout(label, f"Routing timed out for {label!r}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise DirectionsUnavailable(label, f"Routing request failed for {label!r}: {exc}") from exc

        code = payload.get("code")
        routes = payload.get("routes") or []
        if code in {"NoRoute", "NoSegment"} or (code == "Ok" and not routes):
            raise NoRouteFound(label)
        if response.is_error or code != "Ok":
            raise DirectionsUnavailable(label, f"Router answered {response.status_code} / {code!r} for {label!r}")

        seconds = float(routes[0].get("duration", 0))
        minutes = int(seconds / 60)
        logger.debug("Route to %r takes %d min", label, minutes)
        return minutes

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["RoutingService", "TravelTimeSource"]
