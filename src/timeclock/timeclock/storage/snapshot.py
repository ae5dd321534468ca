"""Serialization of ``SessionState`` into the durable local store.

Values are stored as strings under a fixed set of keys: timestamps and durations as
integer epoch milliseconds, flags as ``"true"``/``"false"``, location as JSON.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from enum import Enum
from typing import Optional

from ..common.datetime_utils import duration_ms, from_epoch_ms, to_epoch_ms
from ..core.constants import DEFAULT_STORAGE_NAMESPACE
from ..entries.model import Location
from ..session.model import SessionState
from .local_store import LocalStore

log = logging.getLogger(__name__)


class StorageKey(str, Enum):
    ACTIVE_SESSION = "active_session"
    START_TIME = "start_time"
    ELAPSED_TIME = "elapsed_time"
    IS_PAUSED = "is_paused"
    PAUSE_START_TIME = "pause_start_time"
    TOTAL_PAUSED_TIME = "total_paused_time"
    LAST_SYNC = "last_sync"
    LOCATION = "location"
    COMPANY_ID = "company_id"


def _flag(value: bool) -> str:
    return "true" if value else "false"


class SnapshotStore:
    """Reads and writes the session snapshot; the snapshot is never a source of truth."""

    def __init__(self, store: LocalStore, *, namespace: str = DEFAULT_STORAGE_NAMESPACE):
        self._store = store
        self._namespace = namespace

    def key(self, key: StorageKey) -> str:
        return f"{self._namespace}{key.value}"

    def _get(self, key: StorageKey) -> Optional[str]:
        return self._store.get(self.key(key))

    def has_active_session(self) -> bool:
        return self._get(StorageKey.ACTIVE_SESSION) == "true"

    def save(self, state: SessionState) -> None:
        """Write the whole snapshot in one store update."""
        values = {
            StorageKey.ACTIVE_SESSION: _flag(state.is_active),
            StorageKey.START_TIME: str(to_epoch_ms(state.start_time)) if state.start_time else None,
            StorageKey.ELAPSED_TIME: str(duration_ms(state.elapsed_time)),
            StorageKey.IS_PAUSED: _flag(state.is_paused),
            StorageKey.PAUSE_START_TIME: (
                str(to_epoch_ms(state.pause_start_time)) if state.pause_start_time else None
            ),
            StorageKey.TOTAL_PAUSED_TIME: str(duration_ms(state.total_paused_time)),
            StorageKey.LAST_SYNC: str(to_epoch_ms(state.last_sync_time)) if state.last_sync_time else None,
            StorageKey.LOCATION: json.dumps(state.location.to_dict()) if state.location else None,
            StorageKey.COMPANY_ID: str(state.company_id) if state.company_id is not None else None,
        }
        self._store.update({self.key(k): v for k, v in values.items()})

    def load(self) -> Optional[SessionState]:
        """Rebuild an active session from the snapshot, or ``None`` if there is none.

        A snapshot that cannot be parsed, or that is paused without a break start, is
        treated as absent.
        """
        start_raw = self._get(StorageKey.START_TIME)
        if not self.has_active_session() or not start_raw:
            return None

        pause_raw = self._get(StorageKey.PAUSE_START_TIME)
        is_paused = self._get(StorageKey.IS_PAUSED) == "true"
        if is_paused and not pause_raw:
            log.warning("Discarding paused session snapshot without a break start.")
            return None

        try:
            last_sync_raw = self._get(StorageKey.LAST_SYNC)
            location_raw = self._get(StorageKey.LOCATION)
            company_raw = self._get(StorageKey.COMPANY_ID)

            return SessionState(
                is_active=True,
                is_paused=is_paused,
                start_time=from_epoch_ms(start_raw),
                pause_start_time=from_epoch_ms(pause_raw) if is_paused else None,
                total_paused_time=timedelta(milliseconds=int(self._get(StorageKey.TOTAL_PAUSED_TIME) or 0)),
                elapsed_time=timedelta(milliseconds=int(self._get(StorageKey.ELAPSED_TIME) or 0)),
                last_sync_time=from_epoch_ms(last_sync_raw) if last_sync_raw else None,
                location=Location.from_dict(json.loads(location_raw)) if location_raw else None,
                company_id=int(company_raw) if company_raw else None,
            )
        except (ValueError, TypeError, KeyError, OverflowError):
            log.warning("Discarding unreadable session snapshot.", exc_info=True)
            return None

    def clear(self) -> None:
        self._store.update({self.key(k): None for k in StorageKey})
