"""
Where was the photo taken?

Location is optional everywhere: `locate()` never raises, it returns a
LocationFix that either holds a Location or says why there is none.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 10.0


class GeolocationError(Exception):
    pass


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class LocationFix:
    location: Optional[Location] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.location is not None


class Geolocation(ABC):
    @abstractmethod
    async def current_position(self, high_accuracy: bool = True) -> Location:
        """Raise GeolocationError when no position can be determined."""


class StaticGeolocation(Geolocation):
    """Fixed position, e.g. a kiosk whose coordinates are known (--lat/--lon)."""

    def __init__(self, latitude: float, longitude: float):
        self.location = Location(latitude, longitude)

    async def current_position(self, high_accuracy: bool = True) -> Location:
        return self.location


class IPGeolocation(Geolocation):
    """
    Coarse position from an IP lookup service.
    Understands the common response shapes:
      {"lat": .., "lon": ..}  {"latitude": .., "longitude": ..}  {"loc": "lat,lon"}
    high_accuracy cannot be honoured here and is ignored.
    """

    def __init__(self, url: str = "https://ipinfo.io/json", timeout: float = DEFAULT_TIMEOUT_SEC,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    async def current_position(self, high_accuracy: bool = True) -> Location:
        return await asyncio.to_thread(self._lookup)

    def _lookup(self) -> Location:
        try:
            r = self.session.get(self.url, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise GeolocationError(f"lookup via {self.url} failed: {e}")
        return parse_position(data)


def parse_position(data) -> Location:
    if not isinstance(data, dict):
        raise GeolocationError("unexpected geolocation response")
    try:
        if "loc" in data:
            lat, lon = str(data["loc"]).split(",")
        elif "lat" in data:
            lat, lon = data["lat"], data["lon"]
        else:
            lat, lon = data["latitude"], data["longitude"]
        return Location(float(lat), float(lon))
    except (KeyError, TypeError, ValueError):
        raise GeolocationError("geolocation response has no usable coordinates")


async def locate(provider: Optional[Geolocation], timeout: float = DEFAULT_TIMEOUT_SEC,
                 high_accuracy: bool = True) -> LocationFix:
    """Bounded, never-failing position request. No provider means "not supported"."""
    if provider is None:
        log.info("[geo] geolocation not supported")
        return LocationFix(error="not supported")
    try:
        loc = await asyncio.wait_for(provider.current_position(high_accuracy), timeout)
    except asyncio.TimeoutError:
        log.info("[geo] no position within %.1fs", timeout)
        return LocationFix(error="timeout")
    except Exception as e:
        log.info("[geo] location unavailable: %s", e)
        return LocationFix(error=str(e) or type(e).__name__)
    return LocationFix(location=loc)
