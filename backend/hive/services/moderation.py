"""
services/moderation.py — Moderation decisions for destructive actions.

Pure functions: no session, no Flask, no logging. Callers fetch the current
roles from the store inside their transaction and pass them in, so the
decision always reflects directory state at call time.

A denial is a normal outcome (Decision.allowed is False), not an exception.
Callers turn a denial into AppError(FORBIDDEN) at the point of action.

Message delete, checks in order:
  1. author deleting own message            → allow
  2. platform admin                         → allow
  3. requester not a member                 → deny
  4. requester is the owner                 → allow
  5. moderator, author below moderator      → allow
     moderator, author moderator or owner   → deny
  6. anything else (plain member)           → deny

An author with no current membership (left or was removed) counts as a
plain member.
"""

from __future__ import annotations

from dataclasses import dataclass

from hive.models.membership import MemberRole


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


# Reason strings. Logged and returned in 403 messages; not part of the
# error-code contract.
AUTHOR            = "author"
PLATFORM_ADMIN    = "platform_admin"
OWNER             = "owner"
MODERATOR         = "moderator"
NOT_MEMBER        = "not_member"
PEER_OR_SUPERIOR  = "peer_or_superior"
INSUFFICIENT_ROLE = "insufficient_role"


def allow(reason: str) -> Decision:
    return Decision(True, reason)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


def decide_message_delete(
        requester_id: str,
        author_id: str,
        requester_role: MemberRole | None,
        author_role: MemberRole | None,
        requester_is_platform_admin: bool = False,
) -> Decision:
    """
    Decides whether requester_id may delete a message written by author_id.

    Args:
        requester_role: requester's current role in the message's server,
                        None if not a member.
        author_role:    author's current role, None if no longer a member.
    """
    if requester_id == author_id:
        return allow(AUTHOR)

    if requester_is_platform_admin:
        return allow(PLATFORM_ADMIN)

    if requester_role is None:
        return deny(NOT_MEMBER)

    if requester_role == MemberRole.OWNER:
        return allow(OWNER)

    if requester_role == MemberRole.MODERATOR:
        effective_author_role = author_role or MemberRole.MEMBER
        if effective_author_role >= MemberRole.MODERATOR:
            return deny(PEER_OR_SUPERIOR)
        return allow(MODERATOR)

    return deny(INSUFFICIENT_ROLE)


def decide_server_delete(
        requester_id: str,
        owner_id: str,
        requester_is_platform_admin: bool = False,
) -> Decision:
    """Only the owner, or a platform admin, may delete a whole server."""
    if requester_id == owner_id:
        return allow(OWNER)
    if requester_is_platform_admin:
        return allow(PLATFORM_ADMIN)
    return deny(INSUFFICIENT_ROLE)


def can_delete_message(
        requester_id: str,
        author_id: str,
        requester_role: MemberRole | None,
        author_role: MemberRole | None,
        requester_is_platform_admin: bool = False,
) -> bool:
    """Boolean shorthand used when annotating message lists for the client."""
    return decide_message_delete(
        requester_id,
        author_id,
        requester_role,
        author_role,
        requester_is_platform_admin,
    ).allowed


_DENIAL_MESSAGES = {
    NOT_MEMBER: "You are not a member of this server.",
    PEER_OR_SUPERIOR: "Moderators cannot delete messages from other moderators or the owner.",
    INSUFFICIENT_ROLE: "You do not have permission to perform this action.",
}


def denial_message(decision: Decision) -> str:
    return _DENIAL_MESSAGES.get(
        decision.reason,
        "You do not have permission to perform this action.",
    )
