"""Unit tests for JWT handler and the bearer dependency."""

from datetime import timedelta

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from config.settings import settings
from src.am_common.errors import InvalidCredentialsError
from src.am_gateway.auth.dependencies import get_current_user_id
from src.am_gateway.auth.jwt_handler import create_access_token, decode_token


def test_access_token_contains_correct_claims() -> None:
    token = create_access_token("user-123")
    payload = jwt.get_unverified_claims(token)
    assert payload["sub"] == "user-123"
    assert payload["type"] == "access"


def test_decode_valid_token() -> None:
    payload = decode_token(create_access_token("user-abc"))
    assert payload["sub"] == "user-abc"


def test_expired_token_raises() -> None:
    token = create_access_token("user-abc", expires_in=timedelta(seconds=-1))
    with pytest.raises(InvalidCredentialsError):
        decode_token(token)


def test_tampered_token_raises() -> None:
    token = create_access_token("user-abc")
    with pytest.raises(InvalidCredentialsError):
        decode_token(token[:-2] + ("AA" if token[-2:] != "AA" else "BB"))


def test_wrong_secret_raises() -> None:
    token = jwt.encode({"sub": "x", "type": "access"}, "other-secret", algorithm="HS256")
    with pytest.raises(InvalidCredentialsError):
        decode_token(token)


def test_refresh_type_rejected() -> None:
    token = jwt.encode(
        {"sub": "x", "type": "refresh"}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM
    )
    with pytest.raises(InvalidCredentialsError):
        decode_token(token)


def test_missing_subject_rejected() -> None:
    token = jwt.encode({"type": "access"}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(InvalidCredentialsError):
        decode_token(token)


class TestGetCurrentUserId:
    async def test_returns_subject(self) -> None:
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials=create_access_token("u-1"))
        assert await get_current_user_id(creds) == "u-1"

    async def test_missing_header_is_401(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user_id(None)
        assert exc_info.value.status_code == 401

    async def test_bad_token_is_401(self) -> None:
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="not-a-jwt")
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user_id(creds)
        assert exc_info.value.status_code == 401


def test_subject_longer_than_user_id_column_rejected() -> None:
    with pytest.raises(InvalidCredentialsError):
        decode_token(create_access_token("u" * 65))
    assert decode_token(create_access_token("u" * 64))["sub"] == "u" * 64
