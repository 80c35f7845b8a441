"""
Unit tests for middleware/auth_middleware.py.

Runs inside a bare request context; no database is touched.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from flask import g

from hive import create_app
from hive.errors import AppError, ErrorCode
from hive.middleware.auth_middleware import _authenticate_request, decode_access_token


@pytest.fixture(scope="module")
def app():
    return create_app("testing")


def _token(app, sub="user-1", expires_in=timedelta(minutes=5), secret=None, **claims) -> str:
    payload = {"sub": sub, "exp": datetime.now(timezone.utc) + expires_in, **claims}
    if sub is None:
        payload.pop("sub")
    return jwt.encode(payload, secret or app.config["JWT_SECRET_KEY"], algorithm="HS256")


def _authenticate(app, header: str | None):
    headers = {"Authorization": header} if header is not None else {}
    with app.test_request_context(headers=headers):
        _authenticate_request()
        return g.user_id


def _error_code(app, header: str | None) -> str:
    with pytest.raises(AppError) as exc_info:
        _authenticate(app, header)
    assert exc_info.value.http_status == 401
    return exc_info.value.code


def test_valid_token_sets_user_id(app):
    assert _authenticate(app, f"Bearer {_token(app)}") == "user-1"


def test_bearer_scheme_is_case_insensitive(app):
    assert _authenticate(app, f"bearer {_token(app)}") == "user-1"


def test_missing_header_raises_token_missing(app):
    assert _error_code(app, None) == ErrorCode.TOKEN_MISSING


def test_wrong_scheme_raises_token_invalid(app):
    assert _error_code(app, f"Token {_token(app)}") == ErrorCode.TOKEN_INVALID


def test_expired_token_raises_token_expired(app):
    token = _token(app, expires_in=timedelta(minutes=-1))
    assert _error_code(app, f"Bearer {token}") == ErrorCode.TOKEN_EXPIRED


def test_foreign_signature_raises_token_invalid(app):
    token = _token(app, secret="some-other-secret-that-is-long-enough")
    assert _error_code(app, f"Bearer {token}") == ErrorCode.TOKEN_INVALID


def test_token_without_sub_raises_token_invalid(app):
    token = _token(app, sub=None)
    assert _error_code(app, f"Bearer {token}") == ErrorCode.TOKEN_INVALID


def test_overlong_sub_raises_token_invalid(app):
    token = _token(app, sub="x" * 65)
    assert _error_code(app, f"Bearer {token}") == ErrorCode.TOKEN_INVALID


def test_audience_is_checked_when_configured(app):
    app.config["JWT_AUDIENCE"] = "authenticated"
    try:
        with app.app_context():
            good = decode_access_token(_token(app, aud="authenticated"))
            assert good["sub"] == "user-1"
            with pytest.raises(AppError) as exc_info:
                decode_access_token(_token(app, aud="anon"))
            assert exc_info.value.code == ErrorCode.TOKEN_INVALID
    finally:
        app.config["JWT_AUDIENCE"] = ""
