from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from timeclock.core.enums import ClockState, EntryType
from timeclock.core.exceptions import (
    InvalidTransition,
    NoActiveSession,
    NoCompanyContext,
    NotAuthenticated,
    RemoteWriteError,
)
from timeclock.entries.model import Location
from timeclock.session.service import TimeClockService
from timeclock.timesheet import summarize_session
from timeclock.users.model import CurrentUser

from conftest import COMPANY_ID, T0, USER_ID


def test_happy_path_records_each_transition(service, machine, events, clock):
    asyncio.run(service.start())
    state = machine.state
    assert state.clock_state == ClockState.WORKING
    assert state.start_time == T0
    assert state.location is None

    clock.advance(hours=1)
    asyncio.run(service.pause())
    state = machine.state
    assert state.clock_state == ClockState.PAUSED
    assert state.total_paused_time == timedelta(0)
    assert state.pause_start_time == T0 + timedelta(hours=1)

    clock.advance(minutes=15)
    asyncio.run(service.resume())
    state = machine.state
    assert state.clock_state == ClockState.WORKING
    assert state.total_paused_time == timedelta(minutes=15)

    clock.advance(hours=7, minutes=45)
    asyncio.run(service.end())
    assert machine.clock_state == ClockState.OUT

    assert [e.entry_type for e in events.appended] == [
        EntryType.CLOCK_IN,
        EntryType.BREAK_START,
        EntryType.BREAK_END,
        EntryType.CLOCK_OUT,
    ]
    assert all(e.user_id == USER_ID and e.company_id == COMPANY_ID for e in events.appended)

    summary = summarize_session(events.events)
    assert summary.net == timedelta(hours=8, minutes=45)


def test_start_records_location(service, machine, events):
    location = Location(lat=10.762622, lng=106.660172, accuracy=12.0)

    saved = asyncio.run(service.start(location))

    assert saved.location == location
    assert saved.event_id is not None
    assert machine.state.location == location
    assert machine.state.company_id == COMPANY_ID


def test_failed_append_leaves_state_and_snapshot_untouched(service, machine, events, local_store, clock):
    asyncio.run(service.start())
    before = local_store.as_dict()
    events.fail_append = ConnectionError("network unreachable")

    clock.advance(hours=1)
    with pytest.raises(RemoteWriteError, match="network unreachable") as excinfo:
        asyncio.run(service.pause())

    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert machine.clock_state == ClockState.WORKING
    assert local_store.as_dict() == before
    assert service.busy is False


def test_invalid_transition_is_rejected_before_any_remote_call(service, events):
    with pytest.raises(InvalidTransition):
        asyncio.run(service.pause())
    with pytest.raises(InvalidTransition):
        asyncio.run(service.end())
    assert events.events == []


def test_end_while_paused_is_rejected(service, machine, events):
    asyncio.run(service.start())
    asyncio.run(service.pause())

    with pytest.raises(InvalidTransition):
        asyncio.run(service.end())
    assert machine.clock_state == ClockState.PAUSED
    assert len(events.appended) == 2


def test_actions_require_a_signed_in_user(service, identity, events):
    identity.current = None

    with pytest.raises(NotAuthenticated):
        asyncio.run(service.start())
    assert events.events == []


def test_actions_require_a_company(service, identity, machine):
    identity.current = CurrentUser(user_id=USER_ID, company_id=None)

    with pytest.raises(NoCompanyContext):
        asyncio.run(service.start())
    assert machine.clock_state == ClockState.OUT


def test_end_without_remote_clock_in_fails(service, machine, events, clock):
    machine.apply_start(T0)
    clock.advance(hours=2)

    with pytest.raises(NoActiveSession):
        asyncio.run(service.end())
    assert machine.clock_state == ClockState.WORKING
    assert events.appended == []


def test_end_when_remote_session_already_closed_fails(service, machine, events, clock):
    asyncio.run(service.start())
    events.add(EntryType.CLOCK_OUT, T0 + timedelta(hours=1))
    clock.advance(hours=2)

    with pytest.raises(NoActiveSession, match="already closed"):
        asyncio.run(service.end())
    assert machine.clock_state == ClockState.WORKING


def test_busy_while_append_is_in_flight(machine, identity, clock):
    gate = None
    seen = []

    class SlowEvents:
        async def append_event(self, event):
            seen.append(service.busy)
            await gate.wait()
            return event.with_id(1)

    service = TimeClockService(machine, SlowEvents(), identity, clock=clock)

    async def scenario():
        nonlocal gate
        gate = asyncio.Event()
        task = asyncio.create_task(service.start())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert service.busy is True
        gate.set()
        await task

    asyncio.run(scenario())
    assert seen == [True]
    assert service.busy is False
