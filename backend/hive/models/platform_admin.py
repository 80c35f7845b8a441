"""
models/platform_admin.py — PlatformAdmin table definition.

A row here grants the platform-wide moderation capability to one user id.
Admin status is data, looked up per request, so granting or revoking takes
effect on the next decision. No business logic.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from hive.extensions import db


class PlatformAdmin(db.Model):
    __tablename__ = "platform_admins"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<PlatformAdmin user_id={self.user_id!r}>"
