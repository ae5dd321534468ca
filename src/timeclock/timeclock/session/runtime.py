from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Coroutine, Optional, Set

from ..common.datetime_utils import format_time, utcnow
from ..core.constants import (
    DEFAULT_INITIAL_SYNC_DELAY_SECONDS,
    DEFAULT_SYNC_INTERVAL_SECONDS,
    DEFAULT_TICK_SECONDS,
    DEFAULT_VISIBILITY_SYNC_THROTTLE_SECONDS,
)
from ..core.enums import ClockState, SyncOutcome, SyncTrigger
from ..entries.model import Location, TimeEvent
from ..entries.repository import ChangeFeed
from ..location.service import LocationService
from ..users.service import IdentityProvider
from .machine import SessionStateMachine
from .model import SessionState
from .reconciliation import ReconciliationEngine
from .service import TimeClockService

log = logging.getLogger(__name__)


class TimeClockRuntime:
    """Explicitly constructed container the UI layer mounts at its root.

    ``mount()`` restores the local snapshot and starts the trigger sources: the
    elapsed-time tick, the periodic reconciliation, and a delayed load-time reconciliation
    when a session was restored. Visibility, connectivity and remote change events are
    pushed in by the host through the ``on_*`` methods. All trigger sources call the
    same ``ReconciliationEngine.reconcile``; its in-progress flag absorbs overlaps.

    Everything runs on one event loop; in-flight remote calls are not cancelled on
    ``unmount()`` and apply their effect when they return.
    """

    def __init__(
        self,
        machine: SessionStateMachine,
        service: TimeClockService,
        engine: ReconciliationEngine,
        *,
        identity: Optional[IdentityProvider] = None,
        location: Optional[LocationService] = None,
        change_feed: Optional[ChangeFeed] = None,
        clock: Callable[[], datetime] = utcnow,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        sync_interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
        visibility_throttle_seconds: float = DEFAULT_VISIBILITY_SYNC_THROTTLE_SECONDS,
        initial_sync_delay_seconds: float = DEFAULT_INITIAL_SYNC_DELAY_SECONDS,
    ):
        self._machine = machine
        self._service = service
        self._engine = engine
        self._identity = identity
        self._location = location
        self._change_feed = change_feed
        self._clock = clock
        self._tick_seconds = tick_seconds
        self._sync_interval_seconds = sync_interval_seconds
        self._visibility_throttle = timedelta(seconds=visibility_throttle_seconds)
        self._initial_sync_delay_seconds = initial_sync_delay_seconds

        self._loops: list[asyncio.Task] = []
        self._pending: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._is_online = True
        self._mounted = False

    # -- read side ---------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._machine.state

    @property
    def clock_state(self) -> ClockState:
        return self._machine.clock_state

    @property
    def is_online(self) -> bool:
        return self._is_online

    @property
    def busy(self) -> bool:
        return self._service.busy

    @property
    def mounted(self) -> bool:
        return self._mounted

    @staticmethod
    def format_time(duration) -> str:
        return format_time(duration)

    # -- lifecycle ---------------------------------------------------------

    async def mount(self, *, background: bool = True) -> bool:
        """Restore local state and start triggers; returns whether a session was restored.

        With ``background=False`` no loops are started and the load-time reconciliation
        runs inline, which suits one-shot command line use.
        """
        restored = self._machine.restore()
        await self._subscribe()

        if background:
            loop = asyncio.get_running_loop()
            self._loops = [
                loop.create_task(self._tick_loop()),
                loop.create_task(self._periodic_sync_loop()),
            ]
            if restored:
                self._loops.append(loop.create_task(self._initial_sync()))
        elif restored:
            await self._engine.reconcile(SyncTrigger.LOAD)

        self._mounted = True
        return restored

    async def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        for task in self._loops:
            task.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []

        self._machine.save_snapshot()
        self._mounted = False

    async def __aenter__(self) -> "TimeClockRuntime":
        await self.mount()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unmount()

    # -- actions -------------------------------------------------------------

    async def start(self, location: Optional[Location] = None) -> TimeEvent:
        if location is None and self._location is not None:
            location = await self._location.get_location()
        return await self._service.start(location)

    async def pause(self) -> TimeEvent:
        return await self._service.pause()

    async def resume(self) -> TimeEvent:
        return await self._service.resume()

    async def end(self) -> TimeEvent:
        return await self._service.end()

    async def force_sync(self) -> SyncOutcome:
        return await self._engine.reconcile(SyncTrigger.MANUAL)

    async def manual_sync(self) -> SyncOutcome:
        if not self._machine.has_persisted_session():
            log.info("No active session to synchronize.")
            return SyncOutcome.NOT_ACTIVE
        return await self._engine.reconcile(SyncTrigger.MANUAL)

    # -- trigger sources -------------------------------------------------------

    def on_visibility_change(self, visible: bool) -> Optional[asyncio.Task]:
        if not visible or not self._machine.state.is_active:
            return None
        last = self._engine.last_attempt_at
        if last is not None and self._clock() - last < self._visibility_throttle:
            log.debug("Synchronized recently, skipping visibility trigger.")
            return None
        return self._spawn(self._engine.reconcile(SyncTrigger.VISIBILITY))

    def on_connectivity_change(self, online: bool) -> Optional[asyncio.Task]:
        was_online = self._is_online
        self._is_online = online
        if not online:
            log.info("Connection lost; local state keeps being saved.")
            return None
        if not was_online:
            log.info("Connection restored.")
        if not self._machine.has_persisted_session():
            return None
        return self._spawn(self._engine.reconcile(SyncTrigger.ONLINE))

    def on_remote_change(self, event: Optional[TimeEvent] = None) -> Optional[asyncio.Task]:
        """Change feed callback; must be called on the runtime's event loop."""
        if not self._machine.has_persisted_session():
            return None
        return self._spawn(self._engine.reconcile(SyncTrigger.REMOTE_CHANGE))

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _subscribe(self) -> None:
        if self._change_feed is None or self._identity is None or self._unsubscribe is not None:
            return
        current = await self._identity.get_current_user()
        if current is not None:
            self._unsubscribe = self._change_feed.subscribe(current.user_id, self.on_remote_change)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._tick_seconds)
            if self._machine.state.is_active:
                self._machine.tick()

    async def _periodic_sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sync_interval_seconds)
            if self._machine.state.is_active:
                await self._engine.reconcile(SyncTrigger.PERIODIC)

    async def _initial_sync(self) -> None:
        await asyncio.sleep(self._initial_sync_delay_seconds)
        if self._machine.has_persisted_session():
            await self._engine.reconcile(SyncTrigger.LOAD)
