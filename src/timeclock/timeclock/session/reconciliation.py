from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..common.datetime_utils import utcnow
from ..core.constants import DEFAULT_START_TIME_DRIFT_MINUTES
from ..core.enums import EntryType, SyncOutcome, SyncTrigger
from ..core.exceptions import ReconciliationError
from ..entries.model import TimeEvent
from ..entries.repository import TimeEventRepository
from ..users.service import IdentityProvider
from .machine import SessionStateMachine

log = logging.getLogger(__name__)


class ReconciliationEngine:
    """Compares the local session against the remote time entry log and resolves drift.

    The remote log wins, except when it has no record of a locally open session: then the
    missing clock-in is re-inserted from the local start time. Runs are best effort: every
    failure is logged and reported as ``SyncOutcome.FAILED``, never raised. A run that
    starts while another is awaiting the network is skipped.
    """

    def __init__(
        self,
        machine: SessionStateMachine,
        events: TimeEventRepository,
        identity: IdentityProvider,
        *,
        clock: Callable[[], datetime] = utcnow,
        drift_threshold: timedelta = timedelta(minutes=DEFAULT_START_TIME_DRIFT_MINUTES),
    ):
        self._machine = machine
        self._events = events
        self._identity = identity
        self._clock = clock
        self._drift_threshold = drift_threshold
        self._in_progress = False
        self._last_attempt_at: Optional[datetime] = None

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def last_attempt_at(self) -> Optional[datetime]:
        return self._last_attempt_at

    async def reconcile(self, trigger: SyncTrigger = SyncTrigger.MANUAL) -> SyncOutcome:
        if self._in_progress:
            log.debug("Reconciliation already running, skipping %s trigger.", trigger.value)
            return SyncOutcome.SKIPPED_BUSY

        self._in_progress = True
        self._last_attempt_at = self._clock()
        try:
            outcome = await self._reconcile()
        except Exception as exc:
            error = ReconciliationError(f"Reconciliation after {trigger.value} failed: {exc}")
            log.warning("%s", error, exc_info=True)
            return SyncOutcome.FAILED
        finally:
            self._in_progress = False

        log.info("Reconciliation after %s: %s", trigger.value, outcome.value)
        return outcome

    async def _reconcile(self) -> SyncOutcome:
        if not self._machine.has_persisted_session():
            return SyncOutcome.NOT_ACTIVE

        current = await self._identity.get_current_user()
        if current is None or current.company_id is None:
            return SyncOutcome.NO_IDENTITY

        local = self._machine.state
        if not local.is_active and not self._machine.restore():
            return SyncOutcome.NOT_ACTIVE
        local = self._machine.state
        session_start = local.start_time

        opening = await self._events.query_latest_by_type(current.user_id, current.company_id, EntryType.CLOCK_IN)
        closing = None
        if opening is not None:
            closing = await self._events.query_latest_by_type(
                current.user_id, current.company_id, EntryType.CLOCK_OUT, since=opening.entry_time
            )

        if self._session_changed(session_start):
            return SyncOutcome.STATE_CHANGED

        now = self._clock()

        # The remote log either has no clock-in at all, or its latest session closed
        # before ours began: it never heard of this session.
        if opening is None or (closing is not None and closing.entry_time < session_start):
            await self._events.append_event(
                TimeEvent(
                    user_id=current.user_id,
                    company_id=current.company_id,
                    entry_type=EntryType.CLOCK_IN,
                    entry_time=session_start,
                    location=local.location,
                )
            )
            if self._session_changed(session_start):
                return SyncOutcome.STATE_CHANGED
            self._machine.mark_synced(now)
            return SyncOutcome.HEALED

        if closing is not None:
            self._machine.clear()
            return SyncOutcome.REMOTE_CLOSED

        outcome = SyncOutcome.IN_SYNC
        if abs(opening.entry_time - session_start) > self._drift_threshold:
            self._machine.adopt_start_time(opening.entry_time, now)
            outcome = SyncOutcome.CORRECTED
        self._machine.mark_synced(now)
        return outcome

    def _session_changed(self, session_start: Optional[datetime]) -> bool:
        state = self._machine.state
        return not state.is_active or state.start_time != session_start
