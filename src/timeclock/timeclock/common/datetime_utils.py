from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Current time as an aware UTC datetime.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string (trailing ``Z`` accepted) into an aware UTC datetime."""
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(s))


def to_epoch_ms(dt: datetime) -> int:
    return int(round(ensure_utc(dt).timestamp() * 1000))


def from_epoch_ms(value: Union[int, float, str]) -> datetime:
    return datetime.fromtimestamp(int(float(value)) / 1000, tz=timezone.utc)


def duration_ms(value: timedelta) -> int:
    return int(value.total_seconds() * 1000)


def format_time(value: Union[timedelta, int, float]) -> str:
    """Render a duration as ``HH:MM:SS``.

    Accepts a ``timedelta`` or a number of milliseconds. Negative durations render as
    zero; hours are not wrapped at 24.
    """
    if isinstance(value, timedelta):
        total_ms = value.total_seconds() * 1000
    else:
        total_ms = float(value)
    total_seconds = max(int(total_ms // 1000), 0)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
