"""Slot configurations table with one active row per status and key.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_SINGLE_HOLDER_STATUSES = ("published", "acceptance", "draft")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "slot_configurations",
        sa.Column("id", postgresql.UUID, primary_key=True),
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("page_type", sa.Text, nullable=False),
        sa.Column("version_number", sa.Integer, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("slots", postgresql.JSONB, nullable=False),
        sa.Column("root_id", sa.Text, nullable=False),
        sa.Column("parent_version_id", postgresql.UUID, sa.ForeignKey("public.slot_configurations.id"), nullable=True),
        sa.Column("current_edit_id", postgresql.UUID, nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_by", sa.Text, nullable=True),
        sa.Column("acceptance_published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acceptance_published_by", sa.Text, nullable=True),
        sa.Column("schema_version", sa.Text, nullable=False),
        sa.Column("revision", sa.Integer, nullable=False, server_default="1"),
        sa.Column("has_unpublished_changes", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("pinned_by", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("created_by", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("tenant_id", "page_type", "version_number", name="uq_slot_configurations_version"),
        sa.CheckConstraint(
            "status IN ('draft', 'acceptance', 'published', 'reverted', 'superseded')",
            name="ck_slot_configurations_status",
        ),
        schema="public",
    )
    op.create_index(
        "ix_slot_configurations_key_status",
        "slot_configurations",
        ["tenant_id", "page_type", "status"],
        schema="public",
    )
    for status in _SINGLE_HOLDER_STATUSES:
        op.create_index(
            f"uq_slot_configurations_{status}",
            "slot_configurations",
            ["tenant_id", "page_type"],
            unique=True,
            postgresql_where=sa.text(f"status = '{status}'"),
            schema="public",
        )


def downgrade() -> None:
    """Downgrade schema."""
    for status in _SINGLE_HOLDER_STATUSES:
        op.drop_index(f"uq_slot_configurations_{status}", table_name="slot_configurations", schema="public")
    op.drop_index("ix_slot_configurations_key_status", table_name="slot_configurations", schema="public")
    op.drop_table("slot_configurations", schema="public")
