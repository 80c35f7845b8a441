"""
middleware/auth_middleware.py — Bearer-token authentication decorator.

Access tokens are issued by the external identity provider and signed with
the shared JWT_SECRET_KEY. This API never issues tokens; it only verifies
them.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Verifies signature and expiry (and audience when JWT_AUDIENCE is set)
  3. Attaches the `sub` claim (user id, str) to flask.g.user_id
  4. Raises the appropriate 401 AppError if any step fails

Responsibility boundary:
  - Middleware = authentication (401). It never checks membership or roles.
  - Services = authorization (403). They receive user_id as a plain string.
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from hive.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces bearer-token authentication.

    Usage:
        @servers_bp.route("/")
        @require_auth
        def list_servers():
            user_id = g.user_id  # always a non-empty str when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def decode_access_token(raw_token: str) -> dict:
    """
    Verifies a raw JWT against the app config and returns its payload.

    Raises AppError(TOKEN_EXPIRED | TOKEN_INVALID, 401).
    """
    audience = current_app.config.get("JWT_AUDIENCE") or None
    try:
        return jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            audience=audience,
            options={"verify_aud": audience is not None, "require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Sign in again to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        # Bad signature, malformed token, wrong audience, missing claims.
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )


def _authenticate_request() -> None:
    """
    Performs the full authentication sequence and sets flask.g.user_id.

    Separate from the decorator so tests can call it inside a request context.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    payload = decode_access_token(parts[1])

    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub.strip() or len(sub) > 64:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
            401,
        )

    g.user_id = sub
