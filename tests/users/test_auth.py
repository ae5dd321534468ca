from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import pytest
from werkzeug.security import generate_password_hash

from timeclock.core.exceptions import AuthenticationError, ValidationError
from timeclock.users.model import CurrentUser, User
from timeclock.users.service import AuthService, SessionIdentityProvider


@dataclass
class InMemoryUsers:
    users: dict[int, User]
    companies: dict[int, int] = field(default_factory=dict)
    broken: bool = False

    def get_by_id(self, user_id: int) -> Optional[User]:
        if self.broken:
            raise ConnectionError("database unavailable")
        return self.users.get(user_id)

    def get_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.username == username), None)

    def get_active_company_id(self, user_id: int) -> Optional[int]:
        return self.companies.get(user_id)


def _user(user_id=1, username="an", password="right", is_active=True) -> User:
    return User(
        user_id=user_id,
        full_name="Tran Thi An",
        username=username,
        password_hash=generate_password_hash(password),
        is_active=is_active,
    )


def test_authenticate_returns_user():
    user = _user()
    auth = AuthService(InMemoryUsers({1: user}))

    assert auth.authenticate("  an ", "right") == user


def test_auth_wrong_password_raises():
    auth = AuthService(InMemoryUsers({1: _user()}))

    with pytest.raises(AuthenticationError):
        auth.authenticate("an", "wrong")


def test_auth_inactive_user_raises():
    auth = AuthService(InMemoryUsers({1: _user(is_active=False)}))

    with pytest.raises(AuthenticationError):
        auth.authenticate("an", "right")


def test_auth_placeholder_hash_is_rejected():
    user = User(user_id=1, full_name="X", username="x", password_hash="CHANGE_ME")
    auth = AuthService(InMemoryUsers({1: user}))

    with pytest.raises(AuthenticationError):
        auth.authenticate("x", "CHANGE_ME")


def test_auth_requires_username():
    with pytest.raises(ValidationError):
        AuthService(InMemoryUsers({})).authenticate("   ", "pw")


def test_identity_resolves_company_per_call():
    users = InMemoryUsers({1: _user()}, companies={1: 3})
    identity = SessionIdentityProvider(users)
    assert asyncio.run(identity.get_current_user()) is None

    identity.sign_in(users.users[1])
    assert asyncio.run(identity.get_current_user()) == CurrentUser(user_id=1, company_id=3)

    users.companies.clear()
    assert asyncio.run(identity.get_current_user()) == CurrentUser(user_id=1, company_id=None)

    identity.sign_out()
    assert asyncio.run(identity.get_current_user()) is None


def test_identity_fails_closed():
    users = InMemoryUsers({1: _user()}, companies={1: 3}, broken=True)
    identity = SessionIdentityProvider(users, user_id=1)

    assert asyncio.run(identity.get_current_user()) is None


def test_deactivated_user_is_signed_out():
    users = InMemoryUsers({1: _user(is_active=False)}, companies={1: 3})
    identity = SessionIdentityProvider(users, user_id=1)

    assert asyncio.run(identity.get_current_user()) is None
