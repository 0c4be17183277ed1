"""Achievements: definitions and per-user unlocks.

Revision ID: 002_achievements
Revises: 001_initial_schema
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "002_achievements"
down_revision: str | None = "001_initial_schema"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create achievement tables."""
    op.create_table(
        "achievement_definitions",
        sa.Column("type", sa.String(32), primary_key=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("event", sa.String(32), nullable=False),
        sa.Column("field", sa.String(32), nullable=False),
        sa.Column("operator", sa.String(8), server_default="gte", nullable=False),
        sa.Column("threshold", sa.Integer(), nullable=False),
        sa.Column("reward", sa.Integer(), nullable=True),
        sa.Column("active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("sort_order", sa.Integer(), server_default="0", nullable=False),
        sa.CheckConstraint("operator IN ('gte', 'eq')", name="ck_achievement_definitions_operator"),
    )

    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.String(64),
            sa.ForeignKey("users.pubkey", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "achievement_type",
            sa.String(32),
            sa.ForeignKey("achievement_definitions.type", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sats_awarded", sa.Integer(), server_default="0", nullable=False),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("user_id", "achievement_type", name="uq_user_achievements_user_type"),
    )
    op.create_index("ix_user_achievements_user_unlocked", "user_achievements", ["user_id", "unlocked_at"])


def downgrade() -> None:
    """Drop achievement tables."""
    op.drop_table("user_achievements")
    op.drop_table("achievement_definitions")
