from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class User:
    """Domain entity: an employee account.

    Note: Plain data object (no database access code).
    """

    user_id: int
    full_name: str
    username: str
    password_hash: str
    is_active: bool = True


@dataclass(frozen=True)
class CurrentUser:
    """Resolved identity handed to the time clock: who, and for which tenant."""

    user_id: int
    company_id: Optional[int]
