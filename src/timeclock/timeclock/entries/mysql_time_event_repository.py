from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional, Sequence

from ..core.enums import EntryType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_mysql_datetime, to_mysql_datetime
from .model import Location, TimeEvent
from .repository import TimeEventRepository

_COLUMNS = "entry_id, user_id, company_id, entry_type, entry_time, location_lat, location_lng"


def _row_to_event(r: dict) -> TimeEvent:
    location = None
    if r.get("location_lat") is not None and r.get("location_lng") is not None:
        location = Location(lat=float(r["location_lat"]), lng=float(r["location_lng"]))
    return TimeEvent(
        event_id=int(r["entry_id"]),
        user_id=int(r["user_id"]),
        company_id=int(r["company_id"]),
        entry_type=EntryType(r["entry_type"]),
        entry_time=from_mysql_datetime(r["entry_time"]),
        location=location,
    )


class MySQLTimeEventRepository(TimeEventRepository):
    """``time_entries`` table; driver calls run in a worker thread."""

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    async def append_event(self, event: TimeEvent) -> TimeEvent:
        return await asyncio.to_thread(self._append_event, event)

    async def query_latest_by_type(
        self,
        user_id: int,
        company_id: int,
        entry_type: EntryType,
        *,
        since: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> Optional[TimeEvent]:
        return await asyncio.to_thread(
            self._query_latest_by_type, user_id, company_id, entry_type, since, before
        )

    async def list_events(
        self,
        user_id: int,
        company_id: int,
        *,
        since: Optional[datetime] = None,
    ) -> Sequence[TimeEvent]:
        return await asyncio.to_thread(self._list_events, user_id, company_id, since)

    def _append_event(self, event: TimeEvent) -> TimeEvent:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO time_entries(user_id, company_id, entry_type, entry_time, location_lat, location_lng)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    event.user_id,
                    event.company_id,
                    event.entry_type.value,
                    to_mysql_datetime(event.entry_time),
                    event.location.lat if event.location else None,
                    event.location.lng if event.location else None,
                ),
            )
            return event.with_id(int(cur.lastrowid))

    def _query_latest_by_type(
        self,
        user_id: int,
        company_id: int,
        entry_type: EntryType,
        since: Optional[datetime],
        before: Optional[datetime],
    ) -> Optional[TimeEvent]:
        clauses = ["user_id=%s", "company_id=%s", "entry_type=%s"]
        params: list[object] = [int(user_id), int(company_id), entry_type.value]
        if since is not None:
            clauses.append("entry_time >= %s")
            params.append(to_mysql_datetime(since))
        if before is not None:
            clauses.append("entry_time < %s")
            params.append(to_mysql_datetime(before))

        where = " AND ".join(clauses)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM time_entries
                WHERE {where}
                ORDER BY entry_time DESC, entry_id DESC
                LIMIT 1
                """,
                tuple(params),
            )
            r = fetchone(cur)
            return _row_to_event(r) if r else None

    def _list_events(self, user_id: int, company_id: int, since: Optional[datetime]) -> Sequence[TimeEvent]:
        clauses = ["user_id=%s", "company_id=%s"]
        params: list[object] = [int(user_id), int(company_id)]
        if since is not None:
            clauses.append("entry_time >= %s")
            params.append(to_mysql_datetime(since))

        where = " AND ".join(clauses)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM time_entries
                WHERE {where}
                ORDER BY entry_time ASC, entry_id ASC
                """,
                tuple(params),
            )
            return [_row_to_event(r) for r in fetchall(cur)]
