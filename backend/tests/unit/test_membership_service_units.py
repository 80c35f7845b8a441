"""
Unit tests for membership_service: role lookups, role changes, removals.

These tests run DB-free with mocked session/query behavior. The conditional
UPDATE/DELETE is simulated through the rowcount of the mocked result.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from hive.errors import AppError, ErrorCode
from hive.models.membership import MemberRole
from hive.services import membership_service

TS = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _server(owner_id: str = "owner", is_public: bool = True) -> SimpleNamespace:
    return SimpleNamespace(id=1, owner_id=owner_id, is_public=is_public)


def _membership(user_id: str, role: MemberRole, server_id: int = 1) -> SimpleNamespace:
    return SimpleNamespace(server_id=server_id, user_id=user_id, role=role, joined_at=TS)


def _result(rowcount: int = 1) -> MagicMock:
    result = MagicMock()
    result.rowcount = rowcount
    return result


# ═══════════════════════════════════════════════════════════════════════════
# Lookups
# ═══════════════════════════════════════════════════════════════════════════

def test_get_server_or_404_raises_when_server_missing():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        membership_service._get_server_or_404(server_id=404, session=session)

    err = exc_info.value
    assert err.code == ErrorCode.SERVER_NOT_FOUND
    assert err.http_status == 404


def test_get_role_returns_role_from_store():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = MemberRole.MODERATOR

    role = membership_service.get_role(1, "u1", session)

    assert role is MemberRole.MODERATOR
    session.execute.assert_called_once()


def test_get_role_returns_none_for_non_member():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    assert membership_service.get_role(1, "stranger", session) is None


def test_get_role_for_update_locks_the_row():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = MemberRole.MEMBER

    membership_service.get_role(1, "u1", session, for_update=True)

    stmt = session.execute.call_args.args[0]
    assert stmt._for_update_arg is not None


def test_get_role_reads_fresh_on_every_call():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.side_effect = [
        MemberRole.MEMBER,
        MemberRole.MODERATOR,
    ]

    assert membership_service.get_role(1, "u1", session) is MemberRole.MEMBER
    assert membership_service.get_role(1, "u1", session) is MemberRole.MODERATOR
    assert session.execute.call_count == 2


def test_is_platform_admin_true_when_row_exists():
    session = MagicMock()
    session.get.return_value = object()

    assert membership_service.is_platform_admin("admin", session) is True


def test_is_platform_admin_false_when_row_missing():
    session = MagicMock()
    session.get.return_value = None

    assert membership_service.is_platform_admin("u1", session) is False


def test_require_member_returns_role():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = MemberRole.OWNER

    assert membership_service.require_member(1, "owner", session) is MemberRole.OWNER


def test_require_member_raises_forbidden_when_missing():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        membership_service.require_member(1, "stranger", session)

    err = exc_info.value
    assert err.code == ErrorCode.FORBIDDEN
    assert err.http_status == 403


# ═══════════════════════════════════════════════════════════════════════════
# list_members
# ═══════════════════════════════════════════════════════════════════════════

@patch("hive.services.membership_service._get_server_or_404")
def test_list_members_orders_owner_then_moderators_then_members(mock_get_server):
    session = MagicMock()
    mock_get_server.return_value = _server()
    # Join order as returned by the query.
    session.execute.return_value.scalars.return_value.all.return_value = [
        _membership("owner", MemberRole.OWNER),
        _membership("alice", MemberRole.MEMBER),
        _membership("mod1", MemberRole.MODERATOR),
        _membership("bob", MemberRole.MEMBER),
        _membership("mod2", MemberRole.MODERATOR),
    ]

    result = membership_service.list_members(1, "alice", session)

    assert [m["user_id"] for m in result] == ["owner", "mod1", "mod2", "alice", "bob"]
    assert result[0] == {
        "server_id": 1,
        "user_id": "owner",
        "role": "owner",
        "joined_at": TS.isoformat(),
    }


@patch("hive.services.membership_service.require_member")
@patch("hive.services.membership_service._get_server_or_404")
def test_list_members_private_server_requires_membership(mock_get_server, mock_require_member):
    session = MagicMock()
    mock_get_server.return_value = _server(is_public=False)
    mock_require_member.side_effect = AppError(ErrorCode.FORBIDDEN, "no", 403)

    with pytest.raises(AppError) as exc_info:
        membership_service.list_members(1, "stranger", session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.execute.assert_not_called()


# ═══════════════════════════════════════════════════════════════════════════
# set_role
# ═══════════════════════════════════════════════════════════════════════════

@patch("hive.services.membership_service._get_server_or_404")
def test_set_role_non_owner_raises_forbidden(mock_get_server):
    session = MagicMock()
    mock_get_server.return_value = _server()

    with pytest.raises(AppError) as exc_info:
        membership_service.set_role(1, "alice", MemberRole.MODERATOR, "mod1", session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.execute.assert_not_called()


@patch("hive.services.membership_service._get_server_or_404")
def test_set_role_on_owner_raises_forbidden(mock_get_server):
    session = MagicMock()
    mock_get_server.return_value = _server()

    with pytest.raises(AppError) as exc_info:
        membership_service.set_role(1, "owner", MemberRole.MEMBER, "owner", session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.execute.assert_not_called()


@patch("hive.services.membership_service._get_server_or_404")
def test_set_role_to_owner_raises_forbidden(mock_get_server):
    session = MagicMock()
    mock_get_server.return_value = _server()

    with pytest.raises(AppError) as exc_info:
        membership_service.set_role(1, "alice", MemberRole.OWNER, "owner", session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.execute.assert_not_called()


@pytest.mark.parametrize("requester_id", ["owner", "alice"])
@patch("hive.services.membership_service._get_server_or_404")
def test_set_owner_role_on_owner_raises_forbidden(mock_get_server, requester_id):
    session = MagicMock()
    mock_get_server.return_value = _server()

    with pytest.raises(AppError) as exc_info:
        membership_service.set_role(1, "owner", MemberRole.OWNER, requester_id, session)

    err = exc_info.value
    assert err.code == ErrorCode.FORBIDDEN
    assert err.http_status == 403
    session.execute.assert_not_called()


@patch("hive.services.membership_service._get_server_or_404")
def test_set_role_unknown_target_raises_member_not_found(mock_get_server):
    session = MagicMock()
    mock_get_server.return_value = _server()
    session.execute.return_value = _result(rowcount=0)

    with pytest.raises(AppError) as exc_info:
        membership_service.set_role(1, "ghost", MemberRole.MODERATOR, "owner", session)

    err = exc_info.value
    assert err.code == ErrorCode.MEMBER_NOT_FOUND
    assert err.http_status == 404


@patch("hive.services.membership_service._get_server_or_404")
def test_set_role_promotes_member(mock_get_server):
    session = MagicMock()
    mock_get_server.return_value = _server()
    reread = MagicMock()
    reread.scalar_one.return_value = _membership("alice", MemberRole.MODERATOR)
    session.execute.side_effect = [_result(rowcount=1), reread]

    result = membership_service.set_role(1, "alice", MemberRole.MODERATOR, "owner", session)

    assert result["user_id"] == "alice"
    assert result["role"] == "moderator"
    assert session.execute.call_count == 2


# ═══════════════════════════════════════════════════════════════════════════
# remove_member / leave_server
# ═══════════════════════════════════════════════════════════════════════════

@patch("hive.services.membership_service._get_server_or_404")
def test_remove_member_non_owner_raises_forbidden(mock_get_server):
    session = MagicMock()
    mock_get_server.return_value = _server()

    with pytest.raises(AppError) as exc_info:
        membership_service.remove_member(1, "alice", "mod1", session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.execute.assert_not_called()


@patch("hive.services.membership_service._get_server_or_404")
def test_owner_cannot_remove_self(mock_get_server):
    session = MagicMock()
    mock_get_server.return_value = _server()

    with pytest.raises(AppError) as exc_info:
        membership_service.remove_member(1, "owner", "owner", session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.execute.assert_not_called()


@patch("hive.services.membership_service.count_members")
@patch("hive.services.membership_service._get_server_or_404")
def test_remove_member_success_returns_new_count(mock_get_server, mock_count):
    session = MagicMock()
    mock_get_server.return_value = _server()
    session.execute.return_value = _result(rowcount=1)
    mock_count.return_value = 2

    result = membership_service.remove_member(1, "alice", "owner", session)

    assert result == {
        "removed": True,
        "server_id": 1,
        "user_id": "alice",
        "member_count": 2,
    }
    session.flush.assert_called_once()


@patch("hive.services.membership_service._get_server_or_404")
def test_remove_member_not_a_member_raises_member_not_found(mock_get_server):
    session = MagicMock()
    mock_get_server.return_value = _server()
    session.execute.return_value = _result(rowcount=0)

    with pytest.raises(AppError) as exc_info:
        membership_service.remove_member(1, "ghost", "owner", session)

    assert exc_info.value.code == ErrorCode.MEMBER_NOT_FOUND
    session.flush.assert_not_called()


@patch("hive.services.membership_service._get_server_or_404")
def test_owner_cannot_leave(mock_get_server):
    session = MagicMock()
    mock_get_server.return_value = _server()

    with pytest.raises(AppError) as exc_info:
        membership_service.leave_server(1, "owner", session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN


@patch("hive.services.membership_service.count_members")
@patch("hive.services.membership_service._get_server_or_404")
def test_leave_server_success(mock_get_server, mock_count):
    session = MagicMock()
    mock_get_server.return_value = _server()
    session.execute.return_value = _result(rowcount=1)
    mock_count.return_value = 1

    result = membership_service.leave_server(1, "alice", session)

    assert result == {"left": True, "server_id": 1, "user_id": "alice", "member_count": 1}
