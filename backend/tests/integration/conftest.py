"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"). By
    default that is an in-memory SQLite database; set TEST_DATABASE_URL to
    run the same suite against PostgreSQL.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Users are external identities: a "user" here is just a signed access
    token whose `sub` claim is the user id.

Helper functions (not fixtures) are provided for common operations:
  - token_for(app, uid)          → signed access token
  - auth_headers(token)          → {"Authorization": "Bearer <token>"}
  - make_server(client, ...)     → server dict
  - join(client, ...)            → HTTP response
  - set_role(client, ...)        → HTTP response
  - send_message(client, ...)    → HTTP response
  - grant_platform_admin(app, uid)

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from hive import create_app
from hive.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test
    session, creates all tables, and drops them at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order.

    Messages before memberships before servers; platform_admins has no FKs.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("UPDATE server_messages SET parent_message_id = NULL"))
            conn.execute(text("DELETE FROM server_messages"))
            conn.execute(text("DELETE FROM server_members"))
            conn.execute(text("DELETE FROM platform_admins"))
            conn.execute(text("DELETE FROM servers"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def token_for(app, uid: str, expires_in: timedelta = timedelta(minutes=15)) -> str:
    """Signs an access token for `uid` the way the identity provider would."""
    payload = {"sub": uid, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, app.config["JWT_SECRET_KEY"], algorithm="HS256")


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def headers_for(app, uid: str) -> dict:
    return auth_headers(token_for(app, uid))


def make_server(
    client,
    app,
    owner: str = "owner",
    name: str = "Test Server",
    is_public: bool = True,
) -> dict:
    """
    Creates a server and returns the server data dict.
    `owner` becomes the server owner and first member.
    """
    resp = client.post(
        "/api/v1/servers/",
        json={"name": name, "is_public": is_public},
        headers=headers_for(app, owner),
    )
    assert resp.status_code == 201, f"make_server failed: {resp.get_json()}"
    return resp.get_json()["data"]


def join(client, app, server_id: int, uid: str):
    """Joins `uid` to a server. Returns the HTTP response."""
    return client.post(
        f"/api/v1/servers/{server_id}/join",
        headers=headers_for(app, uid),
    )


def set_role(client, app, server_id: int, target: str, role: str, by: str = "owner"):
    """Changes `target`'s role. Returns the HTTP response."""
    return client.patch(
        f"/api/v1/servers/{server_id}/members/{target}",
        json={"role": role},
        headers=headers_for(app, by),
    )


def send_message(client, app, server_id: int, uid: str, content: str = "hello", **extra):
    """Posts a message as `uid`. Returns the HTTP response."""
    return client.post(
        f"/api/v1/servers/{server_id}/messages",
        json={"content": content, **extra},
        headers=headers_for(app, uid),
    )


def delete_message(client, app, message_id: int, uid: str):
    return client.delete(
        f"/api/v1/messages/{message_id}",
        headers=headers_for(app, uid),
    )


def grant_platform_admin(app, uid: str) -> None:
    """Inserts a platform_admins row; there is no HTTP surface for this."""
    from hive.models.platform_admin import PlatformAdmin

    with app.app_context():
        _db.session.add(PlatformAdmin(user_id=uid))
        _db.session.commit()
