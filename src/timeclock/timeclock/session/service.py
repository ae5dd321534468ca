from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Awaitable, Callable, Iterator, Optional, TypeVar

from ..common.datetime_utils import utcnow
from ..core.enums import ClockAction, EntryType
from ..core.exceptions import (
    DomainError,
    NoActiveSession,
    NoCompanyContext,
    NotAuthenticated,
    RemoteReadError,
    RemoteWriteError,
)
from ..entries.model import Location, TimeEvent
from ..entries.repository import TimeEventRepository
from ..users.model import CurrentUser
from ..users.service import IdentityProvider
from .machine import SessionStateMachine

log = logging.getLogger(__name__)

T = TypeVar("T")


class TimeClockService:
    """The only entry points that change the clock state from user intent.

    Each action checks its transition guard, appends exactly one event to the remote
    store and only then updates local state. A failed append leaves state untouched and
    the error propagates to the caller; there is no retry here.

    Actions are not deduplicated: calling ``start`` twice concurrently records two
    clock-ins. Callers should disable their controls while ``busy``.
    """

    def __init__(
        self,
        machine: SessionStateMachine,
        events: TimeEventRepository,
        identity: IdentityProvider,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._machine = machine
        self._events = events
        self._identity = identity
        self._clock = clock
        self._in_flight = 0

    @property
    def busy(self) -> bool:
        return self._in_flight > 0

    @contextmanager
    def _tracking(self) -> Iterator[None]:
        self._in_flight += 1
        try:
            yield
        finally:
            self._in_flight -= 1

    async def start(self, location: Optional[Location] = None) -> TimeEvent:
        self._machine.ensure_can(ClockAction.START)
        with self._tracking():
            current = await self._require_identity()
            now = self._clock()
            saved = await self._append(
                TimeEvent(
                    user_id=current.user_id,
                    company_id=current.company_id,
                    entry_type=EntryType.CLOCK_IN,
                    entry_time=now,
                    location=location,
                )
            )
            self._machine.apply_start(now, location=location, company_id=current.company_id)
            return saved

    async def pause(self) -> TimeEvent:
        self._machine.ensure_can(ClockAction.PAUSE)
        with self._tracking():
            current = await self._require_identity()
            now = self._clock()
            saved = await self._append(self._event(current, EntryType.BREAK_START, now))
            self._machine.apply_pause(now)
            return saved

    async def resume(self) -> TimeEvent:
        self._machine.ensure_can(ClockAction.RESUME)
        with self._tracking():
            current = await self._require_identity()
            now = self._clock()
            saved = await self._append(self._event(current, EntryType.BREAK_END, now))
            self._machine.apply_resume(now)
            return saved

    async def end(self) -> TimeEvent:
        self._machine.ensure_can(ClockAction.END)
        with self._tracking():
            current = await self._require_identity()

            # Trust the remote log, not local state, for whether a session is open.
            opening = await self._read(
                self._events.query_latest_by_type(current.user_id, current.company_id, EntryType.CLOCK_IN)
            )
            if opening is None:
                raise NoActiveSession("No open clock-in found")
            closing = await self._read(
                self._events.query_latest_by_type(
                    current.user_id, current.company_id, EntryType.CLOCK_OUT, since=opening.entry_time
                )
            )
            if closing is not None:
                raise NoActiveSession("The latest clock-in is already closed")

            now = self._clock()
            saved = await self._append(self._event(current, EntryType.CLOCK_OUT, now))
            self._machine.apply_end(now)
            return saved

    async def _require_identity(self) -> CurrentUser:
        current = await self._identity.get_current_user()
        if current is None:
            raise NotAuthenticated("Sign in to use the time clock")
        if current.company_id is None:
            raise NoCompanyContext("No active company membership")
        return current

    @staticmethod
    def _event(current: CurrentUser, entry_type: EntryType, at: datetime) -> TimeEvent:
        return TimeEvent(
            user_id=current.user_id,
            company_id=current.company_id,
            entry_type=entry_type,
            entry_time=at,
        )

    async def _append(self, event: TimeEvent) -> TimeEvent:
        try:
            return await self._events.append_event(event)
        except DomainError:
            raise
        except Exception as exc:
            log.warning("Appending %s failed: %s", event.entry_type.value, exc)
            raise RemoteWriteError(f"Could not record {event.entry_type.value}: {exc}") from exc

    async def _read(self, query: Awaitable[T]) -> T:
        try:
            return await query
        except DomainError:
            raise
        except Exception as exc:
            log.warning("Querying the time entry log failed: %s", exc)
            raise RemoteReadError(f"Could not read time entries: {exc}") from exc
