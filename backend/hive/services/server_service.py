"""
services/server_service.py — Server lifecycle: create, join, update, delete.

Invariants enforced here:
  - A server and its owner membership are created in the same flush; if
    either insert fails the route's transaction rolls both back.
  - owner_id is never updated (no ownership transfer).
  - Deleting a server removes its messages and memberships in the same
    transaction, so no orphaned rows are ever committed.

Authorization rules:
  - Creating:  any authenticated user (becomes owner)
  - Joining:   public servers only; private servers are invisible to this path
  - Updating:  owner only
  - Deleting:  owner or platform admin (moderation.decide_server_delete)

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility; only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hive.errors import AppError, ErrorCode, forbidden, server_not_found
from hive.models.membership import MemberRole, ServerMember
from hive.models.message import ServerMessage
from hive.models.server import Server
from hive.services import membership_service, moderation

logger = logging.getLogger(__name__)

# Fields an owner may change through PATCH /servers/:id.
_UPDATABLE_FIELDS = ("name", "description", "image_url", "is_public")


# ── Private helpers ────────────────────────────────────────────────────────

def _get_server_or_404(server_id: int, session: Session) -> Server:
    """Returns the Server or raises SERVER_NOT_FOUND (404)."""
    server = session.get(Server, server_id)
    if server is None:
        raise server_not_found(server_id)
    return server


def _build_server_dict(
        server: Server,
        member_count: int | None = None,
        my_role: MemberRole | None = None,
) -> dict:
    """Serialises a Server to a plain dict."""
    payload = {
        "id": server.id,
        "name": server.name,
        "description": server.description,
        "image_url": server.image_url,
        "owner_id": server.owner_id,
        "is_public": server.is_public,
        "created_at": server.created_at.isoformat() if server.created_at else None,
    }
    if member_count is not None:
        payload["member_count"] = member_count
    if my_role is not None:
        payload["my_role"] = my_role.value
    return payload


def _member_counts(server_ids: list[int], session: Session) -> dict[int, int]:
    if not server_ids:
        return {}
    rows = session.execute(
        select(ServerMember.server_id, func.count())
        .where(ServerMember.server_id.in_(server_ids))
        .group_by(ServerMember.server_id)
    ).all()
    return {server_id: count for server_id, count in rows}


# ── Public service functions ───────────────────────────────────────────────

def create_server(
        name: str,
        owner_id: str,
        session: Session,
        description: str = "",
        is_public: bool = True,
        image_url: str | None = None,
) -> dict:
    """
    Creates a server. The creator becomes its owner and first member.

    Returns: server dict with member_count=1 and my_role="owner".
    """
    server = Server(
        name=name,
        description=description,
        owner_id=owner_id,
        is_public=is_public,
        image_url=image_url,
    )
    session.add(server)
    session.flush()  # populate server.id before creating the owner membership

    membership = ServerMember(
        server_id=server.id,
        user_id=owner_id,
        role=MemberRole.OWNER,
    )
    session.add(membership)
    session.flush()

    logger.info("server created: server=%s owner=%s", server.id, owner_id)
    return _build_server_dict(server, member_count=1, my_role=MemberRole.OWNER)


def join_server(server_id: int, user_id: str, session: Session) -> dict:
    """
    Adds the caller to a public server as a plain member.

    Private servers answer SERVER_NOT_FOUND so their existence is not
    revealed through this path.

    Raises:
      AppError(SERVER_NOT_FOUND, 404) — missing or private server
      AppError(ALREADY_MEMBER, 409)   — caller already belongs to the server
    """
    server = _get_server_or_404(server_id, session)
    if not server.is_public:
        raise server_not_found(server_id)

    if membership_service.get_role(server_id, user_id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"You are already a member of server {server_id}.",
            409,
        )

    membership = ServerMember(
        server_id=server_id,
        user_id=user_id,
        role=MemberRole.MEMBER,
    )
    session.add(membership)
    try:
        session.flush()
    except IntegrityError:
        # Lost a race with a concurrent join on uq_server_members_server_user.
        # The error handler rolls the session back.
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"You are already a member of server {server_id}.",
            409,
        )

    return {
        "server_id": server_id,
        "user_id": user_id,
        "role": MemberRole.MEMBER.value,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
        "member_count": membership_service.count_members(server_id, session),
    }


def get_server(server_id: int, caller_id: str, session: Session) -> dict:
    """
    Returns server details with member_count and the caller's role.

    Public servers are readable by any authenticated user; private servers
    only by their members (FORBIDDEN otherwise).
    """
    server = _get_server_or_404(server_id, session)
    my_role = membership_service.get_role(server_id, caller_id, session)

    if not server.is_public and my_role is None:
        raise forbidden(f"You are not a member of server {server_id}.")

    return _build_server_dict(
        server,
        member_count=membership_service.count_members(server_id, session),
        my_role=my_role,
    )


def list_public_servers(session: Session) -> list[dict]:
    """Public servers, newest first, each with its member_count."""
    servers = session.execute(
        select(Server)
        .where(Server.is_public.is_(True))
        .order_by(Server.created_at.desc(), Server.id.desc())
    ).scalars().all()

    counts = _member_counts([s.id for s in servers], session)
    return [_build_server_dict(s, member_count=counts.get(s.id, 0)) for s in servers]


def list_user_servers(user_id: str, session: Session) -> list[dict]:
    """Servers the user belongs to, in join order, with the user's role in each."""
    rows = session.execute(
        select(Server, ServerMember.role)
        .join(ServerMember, Server.id == ServerMember.server_id)
        .where(ServerMember.user_id == user_id)
        .order_by(ServerMember.joined_at.asc(), ServerMember.id.asc())
    ).all()

    counts = _member_counts([server.id for server, _ in rows], session)
    return [
        _build_server_dict(server, member_count=counts.get(server.id, 0), my_role=role)
        for server, role in rows
    ]


def update_server(
        server_id: int,
        requester_id: str,
        changes: dict,
        session: Session,
) -> dict:
    """
    Applies name/description/image_url/is_public changes. Owner only.

    Unknown keys in `changes` are ignored; owner_id is never updatable.
    """
    server = _get_server_or_404(server_id, session)
    if requester_id != server.owner_id:
        raise forbidden("Only the server owner may edit server settings.")

    for field_name in _UPDATABLE_FIELDS:
        if field_name in changes:
            setattr(server, field_name, changes[field_name])

    session.flush()
    return _build_server_dict(
        server,
        member_count=membership_service.count_members(server_id, session),
        my_role=MemberRole.OWNER,
    )


def delete_server(server_id: int, requester_id: str, session: Session) -> None:
    """
    Deletes a server together with all of its messages and memberships.

    Raises:
      AppError(SERVER_NOT_FOUND, 404) — server does not exist
      AppError(FORBIDDEN, 403)        — requester is neither owner nor platform admin
    """
    server = _get_server_or_404(server_id, session)

    decision = moderation.decide_server_delete(
        requester_id,
        server.owner_id,
        membership_service.is_platform_admin(requester_id, session),
    )
    if not decision.allowed:
        logger.info(
            "server delete denied: server=%s by=%s reason=%s",
            server_id, requester_id, decision.reason,
        )
        raise forbidden("Only the server owner may delete this server.")

    # Replies point at other messages of the same server; clear those links
    # first so the bulk delete does not trip the self-referencing FK.
    session.execute(
        update(ServerMessage)
        .where(ServerMessage.server_id == server_id)
        .values(parent_message_id=None)
        .execution_options(synchronize_session=False)
    )
    session.execute(
        delete(ServerMessage)
        .where(ServerMessage.server_id == server_id)
        .execution_options(synchronize_session=False)
    )
    session.execute(
        delete(ServerMember)
        .where(ServerMember.server_id == server_id)
        .execution_options(synchronize_session=False)
    )
    session.delete(server)
    session.flush()

    logger.info(
        "server deleted: server=%s by=%s reason=%s",
        server_id, requester_id, decision.reason,
    )
