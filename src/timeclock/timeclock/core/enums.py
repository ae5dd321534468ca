from __future__ import annotations

from enum import Enum


class EntryType(str, Enum):
    """Kinds of rows appended to the remote time entry log."""

    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"
    BREAK_START = "break_start"
    BREAK_END = "break_end"


class ClockState(str, Enum):
    """Where the current work session stands."""

    OUT = "OUT"
    WORKING = "WORKING"
    PAUSED = "PAUSED"


class ClockAction(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    END = "end"


class SyncTrigger(str, Enum):
    """What asked the reconciliation engine to run."""

    LOAD = "load"
    VISIBILITY = "visibility"
    ONLINE = "online"
    PERIODIC = "periodic"
    REMOTE_CHANGE = "remote_change"
    MANUAL = "manual"


class SyncOutcome(str, Enum):
    SKIPPED_BUSY = "SKIPPED_BUSY"
    NOT_ACTIVE = "NOT_ACTIVE"
    NO_IDENTITY = "NO_IDENTITY"
    IN_SYNC = "IN_SYNC"
    CORRECTED = "CORRECTED"
    HEALED = "HEALED"
    REMOTE_CLOSED = "REMOTE_CLOSED"
    STATE_CHANGED = "STATE_CHANGED"
    FAILED = "FAILED"
