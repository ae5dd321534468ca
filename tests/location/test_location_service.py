from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from timeclock.core.exceptions import ValidationError
from timeclock.entries.model import Location
from timeclock.location.service import LocationService, StaticLocationProvider

from conftest import T0, FakeClock


class CountingProvider:
    def __init__(self, location=None, error=None, delay=0.0):
        self.location = location
        self.error = error
        self.delay = delay
        self.calls = 0

    async def current_position(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.location


def test_no_provider_means_no_location():
    service = LocationService()
    assert service.available is False
    assert asyncio.run(service.get_location()) is None


def test_fix_is_reused_within_max_age():
    clock = FakeClock(T0)
    provider = CountingProvider(Location(lat=21.0285, lng=105.8542))
    service = LocationService(provider, clock=clock)

    first = asyncio.run(service.get_location())
    clock.advance(minutes=4)
    second = asyncio.run(service.get_location())
    clock.advance(minutes=2)
    asyncio.run(service.get_location())

    assert first == second
    assert provider.calls == 2


def test_timeout_yields_none():
    provider = CountingProvider(Location(lat=1, lng=1), delay=1.0)
    service = LocationService(provider, timeout=timedelta(milliseconds=10))

    assert asyncio.run(service.get_location()) is None


def test_provider_errors_yield_none():
    service = LocationService(CountingProvider(error=PermissionError("denied")))
    assert asyncio.run(service.get_location()) is None


def test_out_of_range_fix_is_ignored():
    service = LocationService(CountingProvider(Location(lat=123.0, lng=0.0)))
    assert asyncio.run(service.get_location()) is None


def test_static_provider_validates_coordinates():
    with pytest.raises(ValidationError):
        StaticLocationProvider(10.0, 200.0)
