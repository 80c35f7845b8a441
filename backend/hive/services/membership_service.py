"""
services/membership_service.py — Membership directory: roles per server.

Authorization rules:
  - Changing a role:   server owner only; the owner's own role is immutable
  - Removing a member: server owner only; the owner can never be removed
  - Leaving:           any member except the owner
  - Listing members:   anyone for public servers, members for private ones

Roles are always read from the store, never cached, so a promotion or
demotion applies to the very next decision. Writes are conditional
(WHERE role != 'owner') so a racing request can never touch the owner row.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility; only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from hive.errors import AppError, ErrorCode, forbidden, server_not_found
from hive.models.membership import ASSIGNABLE_ROLES, MemberRole, ServerMember
from hive.models.platform_admin import PlatformAdmin
from hive.models.server import Server

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_server_or_404(server_id: int, session: Session) -> Server:
    """Returns the Server or raises SERVER_NOT_FOUND (404)."""
    server = session.get(Server, server_id)
    if server is None:
        raise server_not_found(server_id)
    return server


def _require_owner(server: Server, requester_id: str, action: str) -> None:
    if requester_id != server.owner_id:
        raise forbidden(f"Only the server owner may {action}.")


def _member_not_found(server_id: int, user_id: str) -> AppError:
    return AppError(
        ErrorCode.MEMBER_NOT_FOUND,
        f"User {user_id} is not a member of server {server_id}.",
        404,
    )


def _build_member_dict(membership: ServerMember) -> dict:
    return {
        "server_id": membership.server_id,
        "user_id": membership.user_id,
        "role": membership.role.value,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }


# ── Directory lookups ──────────────────────────────────────────────────────

def get_role(
        server_id: int,
        user_id: str,
        session: Session,
        for_update: bool = False,
) -> MemberRole | None:
    """
    Returns user_id's role in server_id, or None if not a member.

    for_update=True locks the membership row until the caller's transaction
    ends, so a check made here stays valid for the write that follows.
    """
    stmt = select(ServerMember.role).where(
        ServerMember.server_id == server_id,
        ServerMember.user_id == user_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def is_platform_admin(user_id: str, session: Session) -> bool:
    return session.get(PlatformAdmin, user_id) is not None


def count_members(server_id: int, session: Session) -> int:
    return session.execute(
        select(func.count())
        .select_from(ServerMember)
        .where(ServerMember.server_id == server_id)
    ).scalar_one()


def require_member(server_id: int, user_id: str, session: Session) -> MemberRole:
    """Returns the caller's role, or raises FORBIDDEN (403) for non-members."""
    role = get_role(server_id, user_id, session)
    if role is None:
        raise forbidden(f"You are not a member of server {server_id}.")
    return role


# ── Public service functions ───────────────────────────────────────────────

def list_members(server_id: int, caller_id: str, session: Session) -> list[dict]:
    """
    Returns the member list: owner first, then moderators, then members,
    each tier in join order.

    Raises:
      AppError(SERVER_NOT_FOUND, 404) — server does not exist
      AppError(FORBIDDEN, 403)        — private server and caller not a member
    """
    server = _get_server_or_404(server_id, session)
    if not server.is_public:
        require_member(server_id, caller_id, session)

    memberships = session.execute(
        select(ServerMember)
        .where(ServerMember.server_id == server_id)
        .order_by(ServerMember.joined_at.asc(), ServerMember.id.asc())
    ).scalars().all()

    ordered = sorted(memberships, key=lambda m: -m.role.rank)
    return [_build_member_dict(m) for m in ordered]


def set_role(
        server_id: int,
        target_user_id: str,
        new_role: MemberRole,
        requester_id: str,
        session: Session,
) -> dict:
    """
    Changes a member's role. Only the owner may call this.

    Raises:
      AppError(SERVER_NOT_FOUND, 404) — server does not exist
      AppError(FORBIDDEN, 403)        — requester is not the owner, the target
                                        is the owner, or new_role is owner
      AppError(MEMBER_NOT_FOUND, 404) — target is not a member

    Returns: the updated membership dict.
    """
    server = _get_server_or_404(server_id, session)
    _require_owner(server, requester_id, "change member roles")

    if target_user_id == server.owner_id:
        raise forbidden("The server owner's role cannot be changed.")

    if new_role not in ASSIGNABLE_ROLES:
        raise forbidden("Server ownership cannot be assigned or transferred.")

    # Compare-and-set: never matches the owner row, even under a race.
    result = session.execute(
        update(ServerMember)
        .where(
            ServerMember.server_id == server_id,
            ServerMember.user_id == target_user_id,
            ServerMember.role != MemberRole.OWNER,
        )
        .values(role=new_role)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise _member_not_found(server_id, target_user_id)

    membership = session.execute(
        select(ServerMember)
        .where(
            ServerMember.server_id == server_id,
            ServerMember.user_id == target_user_id,
        )
        .execution_options(populate_existing=True)
    ).scalar_one()

    logger.info(
        "role change: server=%s user=%s role=%s by=%s",
        server_id, target_user_id, new_role.value, requester_id,
    )
    return _build_member_dict(membership)


def remove_member(
        server_id: int,
        target_user_id: str,
        requester_id: str,
        session: Session,
) -> dict:
    """
    Removes a member from a server. Only the owner may call this.

    Raises:
      AppError(SERVER_NOT_FOUND, 404) — server does not exist
      AppError(FORBIDDEN, 403)        — requester is not the owner, or the
                                        target is the owner
      AppError(MEMBER_NOT_FOUND, 404) — target is not a member

    Returns: the removal summary including the refreshed member_count.
    """
    server = _get_server_or_404(server_id, session)
    _require_owner(server, requester_id, "remove members")

    if target_user_id == server.owner_id:
        raise forbidden("The server owner cannot be removed.")

    _delete_membership(server_id, target_user_id, session)

    logger.info(
        "member removed: server=%s user=%s by=%s",
        server_id, target_user_id, requester_id,
    )
    return {
        "removed": True,
        "server_id": server_id,
        "user_id": target_user_id,
        "member_count": count_members(server_id, session),
    }


def leave_server(server_id: int, user_id: str, session: Session) -> dict:
    """
    Removes the caller's own membership.

    Raises:
      AppError(SERVER_NOT_FOUND, 404) — server does not exist
      AppError(FORBIDDEN, 403)        — caller is the owner
      AppError(MEMBER_NOT_FOUND, 404) — caller is not a member
    """
    server = _get_server_or_404(server_id, session)

    if user_id == server.owner_id:
        raise forbidden("The server owner cannot leave their own server.")

    _delete_membership(server_id, user_id, session)

    return {
        "left": True,
        "server_id": server_id,
        "user_id": user_id,
        "member_count": count_members(server_id, session),
    }


def _delete_membership(server_id: int, user_id: str, session: Session) -> None:
    result = session.execute(
        delete(ServerMember)
        .where(
            ServerMember.server_id == server_id,
            ServerMember.user_id == user_id,
            ServerMember.role != MemberRole.OWNER,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise _member_not_found(server_id, user_id)
    session.flush()
