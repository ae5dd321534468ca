from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from ..core.enums import EntryType


@dataclass(frozen=True)
class Location:
    """Position captured when an event was recorded."""

    lat: float
    lng: float
    accuracy: Optional[float] = None

    def to_dict(self) -> dict:
        data = {"lat": self.lat, "lng": self.lng}
        if self.accuracy is not None:
            data["accuracy"] = self.accuracy
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Location":
        accuracy = data.get("accuracy")
        return cls(
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            accuracy=float(accuracy) if accuracy is not None else None,
        )


@dataclass(frozen=True)
class TimeEvent:
    """One row of the append-only remote time entry log.

    ``entry_time`` is always an aware UTC datetime and is the authoritative moment of the
    event. ``event_id`` is assigned by the record store on append.
    """

    user_id: int
    company_id: int
    entry_type: EntryType
    entry_time: datetime
    location: Optional[Location] = None
    event_id: Optional[int] = None

    def with_id(self, event_id: int) -> "TimeEvent":
        return replace(self, event_id=event_id)
