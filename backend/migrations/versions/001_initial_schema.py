"""Initial database schema.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Named counters: internal user ids and the one-time admin bootstrap claim
    op.create_table(
        "id_sequences",
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("value", sa.BigInteger, nullable=False),
        sa.PrimaryKeyConstraint("name"),
    )

    # Create user_mappings table
    op.create_table(
        "user_mappings",
        sa.Column("internal_user_id", sa.BigInteger, autoincrement=False, nullable=False),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "last_seen_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("internal_user_id"),
        sa.UniqueConstraint("external_id"),
        sa.UniqueConstraint("email"),
    )

    # Create users table
    op.create_table(
        "users",
        sa.Column("internal_user_id", sa.BigInteger, autoincrement=False, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("internal_user_id"),
        sa.ForeignKeyConstraint(
            ["internal_user_id"], ["user_mappings.internal_user_id"], ondelete="CASCADE"
        ),
    )

    # Create focuses table
    op.create_table(
        "focuses",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False, server_default=""),
        sa.Column("type", sa.String(20), nullable=False, server_default="standard"),
        sa.Column("assigned_roles", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("is_default", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_by", sa.BigInteger, nullable=False),
        sa.Column("layout_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("layout_revision", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_focuses_name", "focuses", ["name"])
    op.create_index("ix_focuses_type", "focuses", ["type"])
    op.create_index("ix_focuses_is_active", "focuses", ["is_active"])
    op.create_index("ix_focuses_created_by", "focuses", ["created_by"])

    # Create user_focus_preferences table
    op.create_table(
        "user_focus_preferences",
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("focus_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_favorite", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("custom_layout", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("layout_revision", sa.Integer, nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("user_id", "focus_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.internal_user_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["focus_id"], ["focuses.id"], ondelete="CASCADE"),
    )

    # Create workspace_settings table
    op.create_table(
        "workspace_settings",
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("current_focus_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("local_layout", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("local_layout_revision", sa.Integer, nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("user_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.internal_user_id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_workspace_settings_current_focus_id", "workspace_settings", ["current_focus_id"]
    )


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("workspace_settings")
    op.drop_table("user_focus_preferences")
    op.drop_table("focuses")
    op.drop_table("users")
    op.drop_table("user_mappings")
    op.drop_table("id_sequences")
