from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..common.datetime_utils import utcnow
from ..core.constants import DEFAULT_SESSION_MAX_AGE_HOURS, DEFAULT_SNAPSHOT_INTERVAL_SECONDS
from ..core.enums import ClockAction, ClockState
from ..core.exceptions import InvalidTransition
from ..entries.model import Location
from ..storage.snapshot import SnapshotStore
from .model import SessionState

log = logging.getLogger(__name__)

# (from, action) -> to. Anything missing is rejected.
TRANSITIONS = {
    (ClockState.OUT, ClockAction.START): ClockState.WORKING,
    (ClockState.WORKING, ClockAction.PAUSE): ClockState.PAUSED,
    (ClockState.PAUSED, ClockAction.RESUME): ClockState.WORKING,
    (ClockState.WORKING, ClockAction.END): ClockState.OUT,
}

_REJECTIONS = {
    (ClockState.WORKING, ClockAction.START): "Already clocked in",
    (ClockState.PAUSED, ClockAction.START): "Already clocked in",
    (ClockState.OUT, ClockAction.PAUSE): "Not clocked in",
    (ClockState.PAUSED, ClockAction.PAUSE): "Break already in progress",
    (ClockState.OUT, ClockAction.RESUME): "Not clocked in",
    (ClockState.WORKING, ClockAction.RESUME): "No active break",
    (ClockState.OUT, ClockAction.END): "Not clocked in",
    (ClockState.PAUSED, ClockAction.END): "Cannot clock out while on break, resume first",
}


class SessionStateMachine:
    """Sole owner of ``SessionState``.

    Mutations come from the action façade (after the remote store accepted the event) and
    from the reconciliation engine. Every mutation writes a snapshot to the local store;
    the one-second tick only writes one every ``snapshot_interval``.
    """

    def __init__(
        self,
        snapshots: SnapshotStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        snapshot_interval: timedelta = timedelta(seconds=DEFAULT_SNAPSHOT_INTERVAL_SECONDS),
        max_session_age: timedelta = timedelta(hours=DEFAULT_SESSION_MAX_AGE_HOURS),
    ):
        self._snapshots = snapshots
        self._clock = clock
        self._snapshot_interval = snapshot_interval
        self._max_session_age = max_session_age
        self._state = SessionState()
        self._last_snapshot_at: Optional[datetime] = None

    @property
    def state(self) -> SessionState:
        """A copy; callers cannot mutate the machine through it."""
        return self._state.copy()

    @property
    def clock_state(self) -> ClockState:
        return self._state.clock_state

    def has_persisted_session(self) -> bool:
        return self._snapshots.has_active_session()

    def ensure_can(self, action: ClockAction) -> ClockState:
        current = self._state.clock_state
        target = TRANSITIONS.get((current, action))
        if target is None:
            raise InvalidTransition(_REJECTIONS.get((current, action), f"Cannot {action.value} from {current.value}"))
        return target

    def restore(self) -> bool:
        """Load the local snapshot; returns whether an active session was restored.

        Snapshots whose session began more than ``max_session_age`` ago are discarded.
        """
        snapshot = self._snapshots.load()
        if snapshot is None:
            if self._snapshots.has_active_session():
                self._snapshots.clear()
            return False

        now = self._clock()
        if now - snapshot.start_time > self._max_session_age:
            log.warning(
                "Discarding session snapshot started at %s (older than %s).",
                snapshot.start_time.isoformat(),
                self._max_session_age,
            )
            self.clear()
            return False

        snapshot.elapsed_time = snapshot.compute_elapsed(now)
        self._state = snapshot
        self._last_snapshot_at = now
        log.info("Restored %s session started at %s.", snapshot.clock_state.value, snapshot.start_time.isoformat())
        return True

    def _accept(self, action: ClockAction) -> bool:
        # Remote writes can finish after another trigger moved the state on.
        if (self._state.clock_state, action) not in TRANSITIONS:
            log.warning("Ignoring %s accepted remotely while %s.", action.value, self._state.clock_state.value)
            return False
        return True

    def apply_start(
        self,
        start_time: datetime,
        *,
        location: Optional[Location] = None,
        company_id: Optional[int] = None,
    ) -> bool:
        if not self._accept(ClockAction.START):
            return False
        self._state = SessionState(
            is_active=True,
            start_time=start_time,
            location=location,
            company_id=company_id,
        )
        log.info("Clocked in at %s.", start_time.isoformat())
        self._persist(start_time)
        return True

    def apply_pause(self, at: datetime) -> bool:
        if not self._accept(ClockAction.PAUSE):
            return False
        self._state.is_paused = True
        self._state.pause_start_time = at
        self._state.elapsed_time = self._state.compute_elapsed(at)
        log.info("Paused at %s.", at.isoformat())
        self._persist(at)
        return True

    def apply_resume(self, at: datetime) -> bool:
        if not self._accept(ClockAction.RESUME):
            return False
        if self._state.pause_start_time is not None:
            self._state.total_paused_time += max(at - self._state.pause_start_time, timedelta(0))
        self._state.pause_start_time = None
        self._state.is_paused = False
        self._state.elapsed_time = self._state.compute_elapsed(at)
        log.info("Resumed at %s (paused %s in total).", at.isoformat(), self._state.total_paused_time)
        self._persist(at)
        return True

    def apply_end(self, at: datetime) -> bool:
        if not self._accept(ClockAction.END):
            return False
        log.info("Clocked out at %s after %s.", at.isoformat(), self._state.compute_elapsed(at))
        self.clear()
        return True

    def tick(self, now: Optional[datetime] = None) -> timedelta:
        now = now or self._clock()
        if not self._state.is_active:
            return timedelta(0)
        self._state.elapsed_time = self._state.compute_elapsed(now)
        if self._last_snapshot_at is None or now - self._last_snapshot_at >= self._snapshot_interval:
            self._persist(now)
        return self._state.elapsed_time

    def adopt_start_time(self, start_time: datetime, now: Optional[datetime] = None) -> None:
        now = now or self._clock()
        log.info(
            "Correcting start time %s -> %s from the remote log.",
            self._state.start_time.isoformat() if self._state.start_time else None,
            start_time.isoformat(),
        )
        self._state.start_time = start_time
        self._state.elapsed_time = self._state.compute_elapsed(now)
        self._persist(now)

    def mark_synced(self, at: datetime) -> None:
        self._state.last_sync_time = at
        self._persist(at)

    def save_snapshot(self) -> None:
        if self._state.is_active:
            now = self._clock()
            self._state.elapsed_time = self._state.compute_elapsed(now)
            self._persist(now)

    def clear(self) -> None:
        self._state = SessionState()
        self._last_snapshot_at = None
        try:
            self._snapshots.clear()
        except OSError:
            log.warning("Could not clear the local session snapshot.", exc_info=True)

    def _persist(self, now: datetime) -> None:
        try:
            self._snapshots.save(self._state)
        except OSError:
            log.warning("Could not write the local session snapshot.", exc_info=True)
            return
        self._last_snapshot_at = now
        log.debug("Snapshot written (%s, elapsed %s).", self._state.clock_state.value, self._state.elapsed_time)
