from __future__ import annotations

from ..core.exceptions import ValidationError


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def require_latitude(value: float) -> float:
    value = float(value)
    if not -90 <= value <= 90:
        raise ValidationError("Latitude must be between -90 and 90")
    return value


def require_longitude(value: float) -> float:
    value = float(value)
    if not -180 <= value <= 180:
        raise ValidationError("Longitude must be between -180 and 180")
    return value
