from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from ..core.enums import ClockState, EntryType
from ..entries.model import TimeEvent

_STATUS_AFTER = {
    EntryType.CLOCK_IN: ClockState.WORKING,
    EntryType.BREAK_END: ClockState.WORKING,
    EntryType.BREAK_START: ClockState.PAUSED,
    EntryType.CLOCK_OUT: ClockState.OUT,
}


@dataclass(frozen=True)
class SessionSummary:
    started_at: datetime
    ended_at: Optional[datetime]
    gross: timedelta
    paused: timedelta

    @property
    def net(self) -> timedelta:
        return max(self.gross - self.paused, timedelta(0))

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


def _ordered(events: Iterable[TimeEvent]) -> list[TimeEvent]:
    return sorted(events, key=lambda e: (e.entry_time, e.event_id or 0))


def derive_status(events: Iterable[TimeEvent]) -> ClockState:
    """Clock state implied by the latest event in the log."""
    ordered = _ordered(events)
    if not ordered:
        return ClockState.OUT
    return _STATUS_AFTER[ordered[-1].entry_type]


def summarize_session(events: Iterable[TimeEvent], *, now: Optional[datetime] = None) -> Optional[SessionSummary]:
    """Standard rule for the latest session: (out - in) - breaks, not below 0.

    The session is the latest clock-in and what follows it up to the first clock-out.
    An open session or an open break runs until ``now``. Unmatched break ends are
    ignored. Returns ``None`` when there is no clock-in.
    """
    ordered = _ordered(events)
    start_idx = None
    for idx, event in enumerate(ordered):
        if event.entry_type == EntryType.CLOCK_IN:
            start_idx = idx
    if start_idx is None:
        return None

    started_at = ordered[start_idx].entry_time
    ended_at: Optional[datetime] = None
    paused = timedelta(0)
    break_started: Optional[datetime] = None

    for event in ordered[start_idx + 1:]:
        if event.entry_type == EntryType.CLOCK_OUT:
            ended_at = event.entry_time
            break
        if event.entry_type == EntryType.BREAK_START and break_started is None:
            break_started = event.entry_time
        elif event.entry_type == EntryType.BREAK_END and break_started is not None:
            paused += event.entry_time - break_started
            break_started = None

    until = ended_at or now or started_at
    if break_started is not None:
        paused += max(until - break_started, timedelta(0))

    return SessionSummary(
        started_at=started_at,
        ended_at=ended_at,
        gross=max(until - started_at, timedelta(0)),
        paused=paused,
    )
