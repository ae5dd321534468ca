from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional

from ..core.enums import ClockState
from ..entries.model import Location


@dataclass
class SessionState:
    """In-memory picture of the current work session.

    ``total_paused_time`` excludes a pause still in progress. ``elapsed_time`` is derived
    and only refreshed by the state machine's tick.
    """

    is_active: bool = False
    is_paused: bool = False
    start_time: Optional[datetime] = None
    pause_start_time: Optional[datetime] = None
    total_paused_time: timedelta = field(default_factory=timedelta)
    elapsed_time: timedelta = field(default_factory=timedelta)
    last_sync_time: Optional[datetime] = None
    location: Optional[Location] = None
    company_id: Optional[int] = None

    @property
    def clock_state(self) -> ClockState:
        if not self.is_active:
            return ClockState.OUT
        if self.is_paused:
            return ClockState.PAUSED
        return ClockState.WORKING

    def compute_elapsed(self, now: datetime) -> timedelta:
        """``now - start - total_paused - current pause``, never negative."""
        if not self.is_active or self.start_time is None:
            return timedelta(0)
        paused = self.total_paused_time
        if self.is_paused and self.pause_start_time is not None:
            paused += now - self.pause_start_time
        return max(now - self.start_time - paused, timedelta(0))

    def copy(self) -> "SessionState":
        return replace(self)
