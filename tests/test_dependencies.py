"""Tests for token verification."""

import time

import jwt
import pytest
from fastapi import HTTPException, WebSocketException
from fastapi.security import HTTPAuthorizationCredentials

from directchat.core import config
from directchat.core.dependencies import (
    get_current_user_id,
    get_websocket_user_id,
    verify_token,
)

SECRET = "test-secret-with-enough-length-for-hs256"
SUPABASE_URL = "https://project.supabase.co"


@pytest.fixture(autouse=True)
def jwt_config(monkeypatch):
    monkeypatch.setattr(config, "JWT_SIGN_KEY", SECRET)
    monkeypatch.setattr(config, "SUPABASE_URL", SUPABASE_URL)


def make_token(sub="user-1", expires_in=3600, secret=SECRET):
    claims = {
        "sub": sub,
        "iss": f"{SUPABASE_URL}/auth/v1",
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def bearer(token):
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_valid_token():
    payload = verify_token(bearer(make_token()))
    assert get_current_user_id(payload) == "user-1"


def test_expired_token():
    with pytest.raises(HTTPException) as exc:
        verify_token(bearer(make_token(expires_in=-3600)))
    assert exc.value.status_code == 401
    assert exc.value.detail == "Token expired"


def test_token_signed_with_other_secret():
    with pytest.raises(HTTPException) as exc:
        verify_token(bearer(make_token(secret="another-secret-with-enough-length!!")))
    assert exc.value.detail == "Invalid token"


def test_token_without_subject():
    with pytest.raises(HTTPException) as exc:
        get_current_user_id({"iss": "x"})
    assert exc.value.status_code == 401


def test_websocket_token():
    assert get_websocket_user_id(make_token(sub="user-2")) == "user-2"

    with pytest.raises(WebSocketException):
        get_websocket_user_id("not-a-jwt")
