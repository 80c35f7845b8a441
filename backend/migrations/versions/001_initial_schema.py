"""Initial schema — servers, memberships, messages, platform admins.

Revision: 001_initial_schema
Created:  2026-10-17

Append-only: never edit this file after it has been applied to any
database. Schema changes go in a new migration.

Creation order:
  1. servers, platform_admins (no FKs)
  2. server_members, server_messages (FK → servers)
  3. Indexes, including the single-owner partial unique index

ON DELETE policies:
  server_members.server_id            → CASCADE   (memberships die with the server)
  server_messages.server_id           → CASCADE   (messages die with the server)
  server_messages.parent_message_id   → SET NULL  (replies outlive their parent)

Roles and media types are VARCHAR columns holding the enum values, matching
the models (Enum(..., native_enum=False)).
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── Step 1: servers ────────────────────────────────────────────────────

    op.create_table(
        "servers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False, server_default=""),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column(
            "is_public",
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_servers"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_servers_name_nonempty",
        ),
    )

    # ── Step 2: platform_admins ────────────────────────────────────────────

    op.create_table(
        "platform_admins",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "granted_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("user_id", name="pk_platform_admins"),
    )

    # ── Step 3: server_members ─────────────────────────────────────────────

    op.create_table(
        "server_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "server_id",
            sa.Integer(),
            sa.ForeignKey("servers.id", ondelete="CASCADE", name="fk_server_members_server"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="member"),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_server_members"),
        sa.UniqueConstraint("server_id", "user_id", name="uq_server_members_server_user"),
        sa.CheckConstraint(
            "role IN ('member', 'moderator', 'owner')",
            name="ck_server_members_role",
        ),
    )

    # ── Step 4: server_messages ────────────────────────────────────────────

    op.create_table(
        "server_messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "server_id",
            sa.Integer(),
            sa.ForeignKey("servers.id", ondelete="CASCADE", name="fk_server_messages_server"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("media_url", sa.String(500), nullable=True),
        sa.Column("media_type", sa.String(16), nullable=True),
        sa.Column(
            "parent_message_id",
            sa.Integer(),
            sa.ForeignKey(
                "server_messages.id",
                ondelete="SET NULL",
                name="fk_server_messages_parent",
            ),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_server_messages"),
        sa.CheckConstraint(
            "media_type IS NULL OR media_type IN ('image', 'video', 'audio', 'document')",
            name="ck_server_messages_media_type",
        ),
    )

    # ── Step 5: Indexes ────────────────────────────────────────────────────

    op.create_index("ix_servers_owner_id", "servers", ["owner_id"])
    op.create_index("ix_server_members_server_id", "server_members", ["server_id"])
    op.create_index("ix_server_members_user_id", "server_members", ["user_id"])

    # Exactly one owner per server at the storage level.
    op.create_index(
        "uq_server_members_single_owner",
        "server_members",
        ["server_id"],
        unique=True,
        postgresql_where=sa.text("role = 'owner'"),
        sqlite_where=sa.text("role = 'owner'"),
    )

    op.create_index("ix_server_messages_user_id", "server_messages", ["user_id"])
    op.create_index(
        "idx_server_messages_server_created",
        "server_messages",
        ["server_id", "created_at"],
    )


def downgrade() -> None:
    """Local development reset only; production uses corrective migrations."""

    op.drop_index("idx_server_messages_server_created", table_name="server_messages")
    op.drop_index("ix_server_messages_user_id",         table_name="server_messages")
    op.drop_index("uq_server_members_single_owner",     table_name="server_members")
    op.drop_index("ix_server_members_user_id",          table_name="server_members")
    op.drop_index("ix_server_members_server_id",        table_name="server_members")
    op.drop_index("ix_servers_owner_id",                table_name="servers")

    op.drop_table("server_messages")
    op.drop_table("server_members")
    op.drop_table("platform_admins")
    op.drop_table("servers")
