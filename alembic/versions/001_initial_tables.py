"""001_initial_tables

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

Creates the initial tables for the blog file store:
  - users
  - uploaded_files
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None

ENUMS: dict[str, tuple[str, ...]] = {
    "user_role_enum": ("user", "admin"),
    "file_type_enum": ("image", "pdf", "document", "video", "audio"),
    "attachable_type_enum": ("article", "user_avatar", "user_bio"),
    "file_status_enum": ("temporary", "permanent", "archived"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    # ── Enums ─────────────────────────────────────────────────────────────────
    for name in ENUMS:
        _enum(name).create(op.get_bind(), checkfirst=True)

    # ── users ─────────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", _enum("user_role_enum"), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_username", "users", ["username"])

    # ── uploaded_files ────────────────────────────────────────────────────────
    op.create_table(
        "uploaded_files",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("alt_text", sa.String(500), nullable=True),
        sa.Column("file_type", _enum("file_type_enum"), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False),
        sa.Column("path", sa.String(500), nullable=False, server_default=""),
        sa.Column("url", sa.String(500), nullable=False, server_default=""),
        sa.Column("checksum", sa.String(64), nullable=False),
        sa.Column("attachable_type", _enum("attachable_type_enum"), nullable=True),
        sa.Column("attachable_id", sa.String(100), nullable=True),
        sa.Column("uploaded_by", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "status",
            _enum("file_status_enum"),
            nullable=False,
            server_default="temporary",
        ),
        sa.Column(
            "metadata",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "uploaded_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.ForeignKeyConstraint(
            ["uploaded_by"], ["users.id"],
            name="fk_uploaded_files_uploaded_by_users",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint(
            "(attachable_type IS NULL) = (attachable_id IS NULL)",
            name="ck_uploaded_files_attachable_pairing",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_uploaded_files"),
    )
    op.create_index(
        "ix_uploaded_files_attachable",
        "uploaded_files",
        ["attachable_type", "attachable_id"],
    )
    op.create_index(
        "ix_uploaded_files_uploaded_by_status", "uploaded_files", ["uploaded_by", "status"]
    )
    op.create_index(
        "ix_uploaded_files_status_uploaded_at", "uploaded_files", ["status", "uploaded_at"]
    )
    op.create_index(
        "ix_uploaded_files_file_type_status", "uploaded_files", ["file_type", "status"]
    )
    op.create_index("ix_uploaded_files_checksum", "uploaded_files", ["checksum"])


def downgrade() -> None:
    # Drop tables in reverse dependency order
    op.drop_table("uploaded_files")
    op.drop_table("users")

    for enum_name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
