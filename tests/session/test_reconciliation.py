from __future__ import annotations

import asyncio
from datetime import timedelta

from timeclock.core.enums import ClockState, EntryType, SyncOutcome, SyncTrigger
from timeclock.entries.model import Location
from timeclock.session.machine import SessionStateMachine
from timeclock.session.reconciliation import ReconciliationEngine

from conftest import T0, FakeClock, InMemoryTimeEvents


def test_remote_clock_out_after_local_start_clears_local_state(engine, machine, events, local_store, clock):
    machine.apply_start(T0)
    events.add(EntryType.CLOCK_IN, T0)
    events.add(EntryType.CLOCK_OUT, T0 + timedelta(hours=2))
    clock.advance(hours=3)

    assert asyncio.run(engine.reconcile(SyncTrigger.PERIODIC)) == SyncOutcome.REMOTE_CLOSED
    assert machine.clock_state == ClockState.OUT
    assert local_store.as_dict() == {}


def test_empty_remote_log_is_healed_from_local_start(engine, machine, events, clock):
    location = Location(lat=45.5, lng=-73.56)
    machine.apply_start(T0, location=location, company_id=3)
    clock.advance(hours=1)

    assert asyncio.run(engine.reconcile()) == SyncOutcome.HEALED

    assert len(events.appended) == 1
    healed = events.appended[0]
    assert healed.entry_type == EntryType.CLOCK_IN
    assert healed.entry_time == T0
    assert healed.location == location
    assert machine.state.last_sync_time == T0 + timedelta(hours=1)
    assert machine.clock_state == ClockState.WORKING


def test_back_to_back_runs_do_not_heal_twice(engine, machine, events, clock):
    machine.apply_start(T0)
    clock.advance(minutes=30)

    asyncio.run(engine.reconcile())
    first = machine.state
    assert asyncio.run(engine.reconcile()) == SyncOutcome.IN_SYNC
    second = machine.state

    assert first == second
    assert len(events.appended) == 1


def test_reconnect_restores_snapshot_and_heals(snapshots, events, identity):
    SessionStateMachine(snapshots, clock=FakeClock(T0)).apply_start(T0)

    clock = FakeClock(T0 + timedelta(hours=2))
    machine = SessionStateMachine(snapshots, clock=clock)
    engine = ReconciliationEngine(machine, events, identity, clock=clock)

    assert asyncio.run(engine.reconcile(SyncTrigger.ONLINE)) == SyncOutcome.HEALED
    assert [(e.entry_type, e.entry_time) for e in events.appended] == [(EntryType.CLOCK_IN, T0)]
    assert machine.clock_state == ClockState.WORKING
    assert machine.state.elapsed_time == timedelta(hours=2)


def test_heals_when_remote_only_has_an_older_closed_session(engine, machine, events, clock):
    events.add(EntryType.CLOCK_IN, T0 - timedelta(days=1))
    events.add(EntryType.CLOCK_OUT, T0 - timedelta(hours=16))
    machine.apply_start(T0)
    clock.advance(minutes=10)

    assert asyncio.run(engine.reconcile()) == SyncOutcome.HEALED
    assert events.appended[0].entry_time == T0


def test_large_start_time_drift_adopts_remote_start(engine, machine, events, clock):
    events.add(EntryType.CLOCK_IN, T0 - timedelta(minutes=20))
    machine.apply_start(T0)
    clock.advance(hours=1)

    assert asyncio.run(engine.reconcile()) == SyncOutcome.CORRECTED
    assert machine.state.start_time == T0 - timedelta(minutes=20)
    assert machine.state.elapsed_time == timedelta(hours=1, minutes=20)
    assert events.appended == []


def test_small_start_time_drift_is_tolerated(engine, machine, events, clock):
    events.add(EntryType.CLOCK_IN, T0 - timedelta(minutes=5))
    machine.apply_start(T0)
    clock.advance(hours=1)

    assert asyncio.run(engine.reconcile()) == SyncOutcome.IN_SYNC
    assert machine.state.start_time == T0
    assert machine.state.last_sync_time == clock()


def test_drift_threshold_is_configurable(machine, events, identity, clock):
    engine = ReconciliationEngine(machine, events, identity, clock=clock, drift_threshold=timedelta(minutes=2))
    events.add(EntryType.CLOCK_IN, T0 - timedelta(minutes=5))
    machine.apply_start(T0)

    assert asyncio.run(engine.reconcile()) == SyncOutcome.CORRECTED


def test_nothing_to_do_without_a_persisted_session(engine, events):
    assert asyncio.run(engine.reconcile()) == SyncOutcome.NOT_ACTIVE
    assert events.queries == 0


def test_no_identity_leaves_state_alone(engine, machine, identity, events):
    machine.apply_start(T0)
    identity.current = None

    assert asyncio.run(engine.reconcile()) == SyncOutcome.NO_IDENTITY
    assert machine.clock_state == ClockState.WORKING
    assert events.queries == 0


def test_failures_are_swallowed(engine, machine, events, clock):
    machine.apply_start(T0)
    events.fail_query = ConnectionError("offline")
    before = machine.state

    assert asyncio.run(engine.reconcile()) == SyncOutcome.FAILED
    assert machine.state == before
    assert engine.in_progress is False
    assert engine.last_attempt_at == clock()


def test_overlapping_runs_are_skipped(machine, identity, clock):
    class SlowEvents(InMemoryTimeEvents):
        async def query_latest_by_type(self, *args, **kwargs):
            await gate.wait()
            return await super().query_latest_by_type(*args, **kwargs)

    events = SlowEvents()
    events.add(EntryType.CLOCK_IN, T0)
    engine = ReconciliationEngine(machine, events, identity, clock=clock)
    machine.apply_start(T0)
    gate = None

    async def scenario():
        nonlocal gate
        gate = asyncio.Event()
        first = asyncio.create_task(engine.reconcile(SyncTrigger.PERIODIC))
        await asyncio.sleep(0)
        assert engine.in_progress is True
        second = await engine.reconcile(SyncTrigger.VISIBILITY)
        gate.set()
        return await first, second

    assert asyncio.run(scenario()) == (SyncOutcome.IN_SYNC, SyncOutcome.SKIPPED_BUSY)
    assert engine.in_progress is False


def test_local_change_during_network_wait_wins(machine, identity, clock):
    class EndingEvents(InMemoryTimeEvents):
        async def query_latest_by_type(self, *args, **kwargs):
            result = await super().query_latest_by_type(*args, **kwargs)
            machine.apply_end(clock())
            return result

    events = EndingEvents()
    engine = ReconciliationEngine(machine, events, identity, clock=clock)
    machine.apply_start(T0)

    assert asyncio.run(engine.reconcile()) == SyncOutcome.STATE_CHANGED
    assert events.appended == []
    assert machine.clock_state == ClockState.OUT
