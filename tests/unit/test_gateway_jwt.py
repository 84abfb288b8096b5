"""Unit tests for JWT verification and the auth dependencies."""

from datetime import timedelta

import pytest
from jose import jwt

from config.settings import settings
from src.ft_common.errors import ForbiddenError, InvalidCredentialsError
from src.ft_gateway.auth.dependencies import require_admin, require_vendor_or_admin
from src.ft_gateway.auth.jwt_handler import CurrentUser, create_access_token, verify_token


def test_access_token_contains_role_and_subject() -> None:
    payload = jwt.get_unverified_claims(create_access_token("user-123", "vendor"))
    assert payload["sub"] == "user-123"
    assert payload["role"] == "vendor"
    assert payload["type"] == "access"


def test_verify_returns_current_user() -> None:
    user = verify_token(create_access_token("user-abc", "admin"))
    assert user == CurrentUser(user_id="user-abc", role="admin")
    assert user.is_admin
    assert not user.is_vendor


def test_expired_token_rejected() -> None:
    token = create_access_token("user-abc", expires_in=timedelta(seconds=-1))
    with pytest.raises(InvalidCredentialsError):
        verify_token(token)


def test_wrong_secret_rejected() -> None:
    token = jwt.encode({"sub": "u", "type": "access"}, "other-secret", algorithm="HS256")
    with pytest.raises(InvalidCredentialsError):
        verify_token(token)


def test_unknown_role_rejected() -> None:
    token = jwt.encode(
        {"sub": "u", "type": "access", "role": "superuser"},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(InvalidCredentialsError):
        verify_token(token)


def test_missing_subject_rejected() -> None:
    token = jwt.encode({"type": "access"}, settings.JWT_SECRET, algorithm="HS256")
    with pytest.raises(InvalidCredentialsError):
        verify_token(token)


async def test_require_admin() -> None:
    admin = CurrentUser("a-1", "admin")
    assert await require_admin(admin) is admin
    with pytest.raises(ForbiddenError):
        await require_admin(CurrentUser("b-1", "buyer"))


async def test_require_vendor_or_admin() -> None:
    vendor = CurrentUser("v-1", "vendor")
    assert await require_vendor_or_admin(vendor) is vendor
    with pytest.raises(ForbiddenError):
        await require_vendor_or_admin(CurrentUser("b-1", "buyer"))
