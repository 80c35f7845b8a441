"""
services/message_service.py — Server chat messages: send, edit, list, delete.

Authorization rules:
  - Sending:  members only
  - Listing:  members only
  - Editing:  the author only
  - Deleting: moderation.decide_message_delete (author, owner, moderator over
              plain members, platform admin)

Delete is check-then-act inside ONE transaction: the message row and both
membership rows are read with SELECT ... FOR UPDATE, the decision is made on
that fresh state, and the delete is flushed before the route commits. A
concurrent demotion or removal either commits before our locks (and we see
it) or waits until we are done.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility; only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from hive.errors import AppError, ErrorCode, forbidden, server_not_found
from hive.models.membership import MemberRole, ServerMember
from hive.models.message import MediaType, ServerMessage
from hive.models.server import Server
from hive.services import membership_service, moderation

logger = logging.getLogger(__name__)

# Length of the quoted parent text shown above a reply.
PARENT_PREVIEW_CHARS = 120


# ── Private helpers ────────────────────────────────────────────────────────

def _get_server_or_404(server_id: int, session: Session) -> Server:
    """Returns the Server or raises SERVER_NOT_FOUND (404)."""
    server = session.get(Server, server_id)
    if server is None:
        raise server_not_found(server_id)
    return server


def _message_not_found(message_id: int, field: str | None = None) -> AppError:
    return AppError(
        ErrorCode.MESSAGE_NOT_FOUND,
        f"Message {message_id} does not exist.",
        404,
        field=field,
    )


def _get_message_or_404(
        message_id: int,
        session: Session,
        for_update: bool = False,
) -> ServerMessage:
    stmt = select(ServerMessage).where(ServerMessage.id == message_id)
    if for_update:
        stmt = stmt.with_for_update()
    message = session.execute(stmt).scalar_one_or_none()
    if message is None:
        raise _message_not_found(message_id)
    return message


def _roles_by_user(server_id: int, session: Session) -> dict[str, MemberRole]:
    rows = session.execute(
        select(ServerMember.user_id, ServerMember.role)
        .where(ServerMember.server_id == server_id)
    ).all()
    return {user_id: role for user_id, role in rows}


def _parent_preview(parent: ServerMessage | None) -> dict | None:
    if parent is None:
        return None
    return {
        "id": parent.id,
        "user_id": parent.user_id,
        "content": (parent.content or "")[:PARENT_PREVIEW_CHARS],
    }


def _build_message_dict(message: ServerMessage, can_delete: bool | None = None) -> dict:
    """Serialises a ServerMessage to a plain dict."""
    payload = {
        "id": message.id,
        "server_id": message.server_id,
        "user_id": message.user_id,
        "content": message.content,
        "media_url": message.media_url,
        "media_type": message.media_type.value if message.media_type else None,
        "parent_message_id": message.parent_message_id,
        "created_at": message.created_at.isoformat() if message.created_at else None,
        "updated_at": message.updated_at.isoformat() if message.updated_at else None,
        "is_edited": message.updated_at is not None,
    }
    if can_delete is not None:
        payload["can_delete"] = can_delete
    return payload


# ── Public service functions ───────────────────────────────────────────────

def send_message(
        server_id: int,
        author_id: str,
        content: str,
        session: Session,
        media_url: str | None = None,
        media_type: MediaType | None = None,
        parent_message_id: int | None = None,
) -> dict:
    """
    Posts a message to a server.

    Raises:
      AppError(SERVER_NOT_FOUND, 404)  — server does not exist
      AppError(FORBIDDEN, 403)         — author is not a member
      AppError(MESSAGE_NOT_FOUND, 404) — parent missing or in another server
    """
    _get_server_or_404(server_id, session)
    membership_service.require_member(server_id, author_id, session)

    parent = None
    if parent_message_id is not None:
        parent = session.get(ServerMessage, parent_message_id)
        if parent is None or parent.server_id != server_id:
            raise _message_not_found(parent_message_id, field="parent_message_id")

    message = ServerMessage(
        server_id=server_id,
        user_id=author_id,
        content=content,
        media_url=media_url,
        media_type=media_type,
        parent_message_id=parent_message_id,
    )
    session.add(message)
    session.flush()

    payload = _build_message_dict(message, can_delete=True)
    payload["parent_message"] = _parent_preview(parent)
    return payload


def edit_message(
        message_id: int,
        requester_id: str,
        content: str,
        session: Session,
) -> dict:
    """
    Replaces a message's text. Only its author may do this.

    Raises:
      AppError(MESSAGE_NOT_FOUND, 404) — message does not exist
      AppError(FORBIDDEN, 403)         — requester is not the author
    """
    message = _get_message_or_404(message_id, session, for_update=True)

    if message.user_id != requester_id:
        raise forbidden("Only the author may edit this message.")

    message.content = content
    message.updated_at = datetime.now(timezone.utc)
    session.flush()
    return _build_message_dict(message, can_delete=True)


def list_messages(
        server_id: int,
        caller_id: str,
        session: Session,
        limit: int = 50,
        before_id: int | None = None,
) -> list[dict]:
    """
    Returns up to `limit` messages in chronological order, optionally only
    those older than `before_id` (for scrolling back through history).

    Each message carries `can_delete`, computed with the caller's current
    role so the client shows the delete action exactly when it would succeed.

    Raises:
      AppError(SERVER_NOT_FOUND, 404) — server does not exist
      AppError(FORBIDDEN, 403)        — caller is not a member
    """
    _get_server_or_404(server_id, session)
    caller_role = membership_service.require_member(server_id, caller_id, session)
    caller_is_admin = membership_service.is_platform_admin(caller_id, session)
    roles = _roles_by_user(server_id, session)

    stmt = (
        select(ServerMessage)
        .where(ServerMessage.server_id == server_id)
        .options(selectinload(ServerMessage.parent))
        .order_by(ServerMessage.created_at.desc(), ServerMessage.id.desc())
        .limit(limit)
    )
    if before_id is not None:
        stmt = stmt.where(ServerMessage.id < before_id)

    newest_first = session.execute(stmt).scalars().all()

    result = []
    for message in reversed(newest_first):
        payload = _build_message_dict(
            message,
            can_delete=moderation.can_delete_message(
                caller_id,
                message.user_id,
                caller_role,
                roles.get(message.user_id),
                caller_is_admin,
            ),
        )
        payload["parent_message"] = _parent_preview(message.parent)
        result.append(payload)
    return result


def delete_message(message_id: int, requester_id: str, session: Session) -> dict:
    """
    Deletes a message if the moderation rules allow it.

    Raises:
      AppError(MESSAGE_NOT_FOUND, 404) — message does not exist
      AppError(SERVER_NOT_FOUND, 404)  — message points at a missing server
      AppError(FORBIDDEN, 403)         — decision was DENY
    """
    message = _get_message_or_404(message_id, session, for_update=True)
    server_id = message.server_id
    author_id = message.user_id

    # A message whose server is gone is a data inconsistency, not a denial.
    _get_server_or_404(server_id, session)

    decision = moderation.decide_message_delete(
        requester_id=requester_id,
        author_id=author_id,
        requester_role=membership_service.get_role(
            server_id, requester_id, session, for_update=True,
        ),
        author_role=membership_service.get_role(
            server_id, author_id, session, for_update=True,
        ),
        requester_is_platform_admin=membership_service.is_platform_admin(
            requester_id, session,
        ),
    )

    if not decision.allowed:
        logger.info(
            "message delete denied: message=%s server=%s by=%s reason=%s",
            message_id, server_id, requester_id, decision.reason,
        )
        raise forbidden(moderation.denial_message(decision))

    # Replies outlive their parent.
    session.execute(
        update(ServerMessage)
        .where(ServerMessage.parent_message_id == message_id)
        .values(parent_message_id=None)
        .execution_options(synchronize_session=False)
    )
    session.delete(message)
    session.flush()

    logger.info(
        "message deleted: message=%s server=%s by=%s reason=%s",
        message_id, server_id, requester_id, decision.reason,
    )
    return {
        "deleted": True,
        "message_id": message_id,
        "server_id": server_id,
    }
