from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from timeclock.core.enums import EntryType
from timeclock.entries.model import TimeEvent
from timeclock.session.machine import SessionStateMachine
from timeclock.session.reconciliation import ReconciliationEngine
from timeclock.session.runtime import TimeClockRuntime
from timeclock.session.service import TimeClockService
from timeclock.storage.local_store import MemoryLocalStore
from timeclock.storage.snapshot import SnapshotStore
from timeclock.users.model import CurrentUser

T0 = datetime(2024, 3, 4, 8, 0, tzinfo=timezone.utc)
USER_ID = 7
COMPANY_ID = 3


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class InMemoryTimeEvents:
    def __init__(self, events=()):
        self.events: list[TimeEvent] = []
        self.appended: list[TimeEvent] = []
        self.fail_append: Optional[Exception] = None
        self.fail_query: Optional[Exception] = None
        self.queries = 0
        self._id = 0
        for event in events:
            self._store(event)

    def _store(self, event: TimeEvent) -> TimeEvent:
        self._id += 1
        saved = event.with_id(self._id)
        self.events.append(saved)
        return saved

    def add(self, entry_type: EntryType, at: datetime, *, user_id=USER_ID, company_id=COMPANY_ID) -> TimeEvent:
        return self._store(TimeEvent(user_id=user_id, company_id=company_id, entry_type=entry_type, entry_time=at))

    async def append_event(self, event: TimeEvent) -> TimeEvent:
        if self.fail_append is not None:
            raise self.fail_append
        saved = self._store(event)
        self.appended.append(saved)
        return saved

    async def query_latest_by_type(self, user_id, company_id, entry_type, *, since=None, before=None):
        self.queries += 1
        if self.fail_query is not None:
            raise self.fail_query
        matches = [
            e
            for e in self.events
            if e.user_id == user_id
            and e.company_id == company_id
            and e.entry_type == entry_type
            and (since is None or e.entry_time >= since)
            and (before is None or e.entry_time < before)
        ]
        return max(matches, key=lambda e: (e.entry_time, e.event_id), default=None)

    async def list_events(self, user_id, company_id, *, since=None):
        return sorted(
            (
                e
                for e in self.events
                if e.user_id == user_id and e.company_id == company_id and (since is None or e.entry_time >= since)
            ),
            key=lambda e: (e.entry_time, e.event_id),
        )


class FakeIdentity:
    def __init__(self, current: Optional[CurrentUser] = CurrentUser(user_id=USER_ID, company_id=COMPANY_ID)):
        self.current = current

    async def get_current_user(self) -> Optional[CurrentUser]:
        return self.current


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def local_store():
    return MemoryLocalStore()


@pytest.fixture
def snapshots(local_store):
    return SnapshotStore(local_store)


@pytest.fixture
def events():
    return InMemoryTimeEvents()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def machine(snapshots, clock):
    return SessionStateMachine(snapshots, clock=clock)


@pytest.fixture
def service(machine, events, identity, clock):
    return TimeClockService(machine, events, identity, clock=clock)


@pytest.fixture
def engine(machine, events, identity, clock):
    return ReconciliationEngine(machine, events, identity, clock=clock)


@pytest.fixture
def runtime(machine, service, engine, identity, clock):
    return TimeClockRuntime(
        machine,
        service,
        engine,
        identity=identity,
        clock=clock,
        tick_seconds=3600,
        sync_interval_seconds=3600,
        initial_sync_delay_seconds=3600,
    )
