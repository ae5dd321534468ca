from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from werkzeug.security import check_password_hash

from ..common.validators import require_non_empty
from ..core.exceptions import AuthenticationError
from .model import CurrentUser, User
from .repository import UserRepository

log = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    async def get_current_user(self) -> Optional[CurrentUser]:
        """Signed-in user and active company, or ``None``. Never raises."""

        raise NotImplementedError


class AuthService:
    """Use case: authenticate user (login)."""

    def __init__(self, users: UserRepository):
        self._users = users

    def authenticate(self, username: str, password: str) -> User:
        username = require_non_empty(username, "Username")
        user = self._users.get_by_username(username)
        if not user or not user.is_active:
            raise AuthenticationError("Invalid username or password")

        try:
            ok = check_password_hash(user.password_hash, password or "")
        except (TypeError, ValueError):
            # e.g. placeholder hashes like 'CHANGE_ME' or corrupted values
            ok = False

        if not ok:
            raise AuthenticationError("Invalid username or password")
        return user


class SessionIdentityProvider(IdentityProvider):
    """Holds the signed-in user for this client and resolves their company.

    The membership lookup is repeated on every call so a revoked membership takes effect
    immediately. Any failure resolves to "not authenticated".
    """

    def __init__(self, users: UserRepository, *, user_id: Optional[int] = None):
        self._users = users
        self._user_id = user_id

    @property
    def user_id(self) -> Optional[int]:
        return self._user_id

    def sign_in(self, user: User) -> None:
        self._user_id = user.user_id
        log.info("Signed in user %s", user.user_id)

    def sign_out(self) -> None:
        self._user_id = None

    async def get_current_user(self) -> Optional[CurrentUser]:
        if self._user_id is None:
            return None
        try:
            return await asyncio.to_thread(self._resolve, self._user_id)
        except Exception:
            log.warning("Identity lookup failed, treating as signed out", exc_info=True)
            return None

    def _resolve(self, user_id: int) -> Optional[CurrentUser]:
        user = self._users.get_by_id(user_id)
        if not user or not user.is_active:
            return None
        return CurrentUser(user_id=user.user_id, company_id=self._users.get_active_company_id(user.user_id))
