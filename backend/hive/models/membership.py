"""
models/membership.py — ServerMember table definition and the role enum.

No business logic beyond role ordering. No imports from services or routes.

Invariants backed by the schema:
  - UNIQUE(server_id, user_id): a user holds at most one membership per server.
  - Exactly one 'owner' row per server. Enforced by the service layer (the
    only writer of roles) plus a partial unique index.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, UniqueConstraint, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hive.extensions import db


class MemberRole(str, enum.Enum):
    """
    Role a user holds inside one server.

    Ordered by privilege: MEMBER < MODERATOR < OWNER. Comparison operators use
    that rank, never string order, so checks read as `role >= MODERATOR`.
    """
    MEMBER    = "member"
    MODERATOR = "moderator"
    OWNER     = "owner"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    @classmethod
    def parse(cls, value: str) -> "MemberRole":
        """Converts a raw string to a MemberRole; raises ValueError if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown role {value!r}.") from None

    def __lt__(self, other):
        if not isinstance(other, MemberRole):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, MemberRole):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, MemberRole):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, MemberRole):
            return NotImplemented
        return self.rank >= other.rank


_ROLE_RANK = {
    MemberRole.MEMBER:    0,
    MemberRole.MODERATOR: 1,
    MemberRole.OWNER:     2,
}

# Roles the owner may hand out. OWNER is only ever assigned at creation.
ASSIGNABLE_ROLES = (MemberRole.MEMBER, MemberRole.MODERATOR)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Store enum values ('moderator'), not names ('MODERATOR')."""
    return [member.value for member in enum_cls]


class ServerMember(db.Model):
    __tablename__ = "server_members"

    __table_args__ = (
        UniqueConstraint("server_id", "user_id", name="uq_server_members_server_user"),
        # At most one owner row per server.
        Index(
            "uq_server_members_single_owner",
            "server_id",
            unique=True,
            postgresql_where=text("role = 'owner'"),
            sqlite_where=text("role = 'owner'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # External identity-provider id; users are not modelled here.
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    role: Mapped[MemberRole] = mapped_column(
        Enum(
            MemberRole,
            name="member_role",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=MemberRole.MEMBER,
        server_default=MemberRole.MEMBER.value,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    server: Mapped["Server"] = relationship(  # noqa: F821
        "Server",
        back_populates="memberships",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ServerMember id={self.id} "
            f"server_id={self.server_id} "
            f"user_id={self.user_id!r} "
            f"role={self.role.value}>"
        )
