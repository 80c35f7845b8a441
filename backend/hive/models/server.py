"""
models/server.py — Server ("group chat") table definition.

No business logic. No imports from services or routes.

owner_id is written once at creation and never updated; there is no
ownership transfer. Memberships and messages are owned by the server and are
removed with it (ON DELETE CASCADE, plus explicit deletes in server_service so
the cascade also holds on SQLite).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, func, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hive.extensions import db


class Server(db.Model):
    __tablename__ = "servers"

    __table_args__ = (
        # Also enforced by the marshmallow schema; the schema is the primary gate.
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_servers_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        default="",
        server_default="",
    )

    image_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    owner_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    is_public: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    memberships: Mapped[list["ServerMember"]] = relationship(  # noqa: F821
        "ServerMember",
        back_populates="server",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    messages: Mapped[list["ServerMessage"]] = relationship(  # noqa: F821
        "ServerMessage",
        back_populates="server",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Server id={self.id} name={self.name!r} public={self.is_public}>"
