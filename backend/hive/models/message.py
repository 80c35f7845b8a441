"""
models/message.py — ServerMessage table definition.

No business logic. No imports from services or routes.

The author (user_id) is fixed at creation. Rows are only ever removed by an
authorised moderation delete or by deleting the whole server.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hive.extensions import db
from hive.models.membership import _enum_values


class MediaType(str, enum.Enum):
    IMAGE    = "image"
    VIDEO    = "video"
    AUDIO    = "audio"
    DOCUMENT = "document"


class ServerMessage(db.Model):
    __tablename__ = "server_messages"

    __table_args__ = (
        # Chat history is always read per server in chronological order.
        Index("idx_server_messages_server_created", "server_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"),
        nullable=False,
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    # Empty only when media_url is present (checked in the schema).
    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )

    media_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    media_type: Mapped[MediaType | None] = mapped_column(
        Enum(
            MediaType,
            name="media_type",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=True,
    )

    # Threaded reply. Replies survive deletion of their parent.
    parent_message_id: Mapped[int | None] = mapped_column(
        ForeignKey("server_messages.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    server: Mapped["Server"] = relationship(  # noqa: F821
        "Server",
        back_populates="messages",
    )

    parent: Mapped[Optional["ServerMessage"]] = relationship(
        "ServerMessage",
        remote_side=[id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ServerMessage id={self.id} "
            f"server_id={self.server_id} "
            f"user_id={self.user_id!r}>"
        )
