from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Protocol, Sequence

from ..core.enums import EntryType
from .model import TimeEvent


class TimeEventRepository(Protocol):
    """Remote record store for time events.

    All methods are coroutines: implementations talk to the network. The store does not
    enforce session ordering; callers must tolerate out-of-order or unmatched rows.
    """

    async def append_event(self, event: TimeEvent) -> TimeEvent:
        raise NotImplementedError

    async def query_latest_by_type(
        self,
        user_id: int,
        company_id: int,
        entry_type: EntryType,
        *,
        since: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> Optional[TimeEvent]:
        """Latest event of ``entry_type``; ``since`` is inclusive, ``before`` exclusive."""

        raise NotImplementedError

    async def list_events(
        self,
        user_id: int,
        company_id: int,
        *,
        since: Optional[datetime] = None,
    ) -> Sequence[TimeEvent]:
        """Events in ascending ``entry_time`` order."""

        raise NotImplementedError


class ChangeFeed(Protocol):
    """Optional realtime push of remote changes for one user."""

    def subscribe(self, user_id: int, on_change: Callable[[TimeEvent], None]) -> Callable[[], None]:
        """Register ``on_change``; returns a callable that unsubscribes."""

        raise NotImplementedError
