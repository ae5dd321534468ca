from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from ..common.datetime_utils import utcnow
from ..common.validators import require_latitude, require_longitude
from ..core.constants import DEFAULT_LOCATION_MAX_AGE_SECONDS, DEFAULT_LOCATION_TIMEOUT_SECONDS
from ..core.exceptions import ValidationError
from ..entries.model import Location

log = logging.getLogger(__name__)


class LocationProvider(Protocol):
    async def current_position(self) -> Optional[Location]:
        raise NotImplementedError


class StaticLocationProvider(LocationProvider):
    """Fixed position, for kiosks and desktops configured with their site coordinates."""

    def __init__(self, lat: float, lng: float, accuracy: Optional[float] = None):
        self._location = Location(lat=require_latitude(lat), lng=require_longitude(lng), accuracy=accuracy)

    async def current_position(self) -> Optional[Location]:
        return self._location


class LocationService:
    """Best-effort position lookup used to annotate clock-ins.

    Lookups are bounded by ``timeout`` and a fix is reused for ``max_age``. Every failure
    yields ``None``; clocking in proceeds without a location.
    """

    def __init__(
        self,
        provider: Optional[LocationProvider] = None,
        *,
        timeout: timedelta = timedelta(seconds=DEFAULT_LOCATION_TIMEOUT_SECONDS),
        max_age: timedelta = timedelta(seconds=DEFAULT_LOCATION_MAX_AGE_SECONDS),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._provider = provider
        self._timeout = timeout
        self._max_age = max_age
        self._clock = clock
        self._cached: Optional[Location] = None
        self._cached_at: Optional[datetime] = None

    @property
    def available(self) -> bool:
        return self._provider is not None

    async def get_location(self) -> Optional[Location]:
        if self._provider is None:
            return None

        now = self._clock()
        if self._cached is not None and self._cached_at is not None and now - self._cached_at <= self._max_age:
            return self._cached

        try:
            location = await asyncio.wait_for(self._provider.current_position(), self._timeout.total_seconds())
        except asyncio.TimeoutError:
            log.info("Location lookup timed out after %s.", self._timeout)
            return None
        except Exception:
            log.info("Location lookup failed.", exc_info=True)
            return None

        if location is None:
            return None
        try:
            require_latitude(location.lat)
            require_longitude(location.lng)
        except ValidationError as exc:
            log.info("Ignoring invalid position: %s", exc)
            return None

        self._cached = location
        self._cached_at = now
        return location
