"""Initial schema: users, sats ledger, trivia sessions, admin config.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    kwargs = {} if nullable else {"server_default": sa.text("now()")}
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, **kwargs)


def _user_fk(name: str = "user_id", primary_key: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.String(64),
        sa.ForeignKey("users.pubkey", ondelete="CASCADE"),
        primary_key=primary_key,
        nullable=False,
    )


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "users",
        sa.Column("pubkey", sa.String(64), primary_key=True),
        sa.Column("lightning_address", sa.String(320), nullable=True),
        _ts("created_at"),
    )

    # --- Wallet ledger ---
    op.create_table(
        "balances",
        _user_fk(primary_key=True),
        sa.Column("available", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("pending", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("lifetime_earned", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("lifetime_withdrawn", sa.BigInteger(), server_default="0", nullable=False),
        _ts("last_activity_at"),
        sa.CheckConstraint("available >= 0", name="ck_balances_available_non_negative"),
        sa.CheckConstraint("pending >= 0", name="ck_balances_pending_non_negative"),
    )

    op.create_table(
        "payouts",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk(),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("fee", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), server_default="pending", nullable=False),
        sa.Column("lightning_address", sa.String(320), nullable=True),
        sa.Column("provider_ref", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("attempted_at", nullable=True),
        _ts("settled_at", nullable=True),
    )
    op.create_index("ix_payouts_user_created", "payouts", ["user_id", "created_at"])
    op.create_index("ix_payouts_status", "payouts", ["status"])
    op.create_index("ix_payouts_kind_created", "payouts", ["kind", "created_at"])
    op.execute(
        "ALTER TABLE payouts ADD CONSTRAINT ck_payouts_kind "
        "CHECK (kind IN ('trivia', 'stacker', 'achievement', 'referral', 'withdrawal'))"
    )
    op.execute(
        "ALTER TABLE payouts ADD CONSTRAINT ck_payouts_status "
        "CHECK (status IN ('pending', 'paid', 'failed'))"
    )

    # --- Trivia ---
    op.create_table(
        "trivia_questions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("options", postgresql.JSONB(), nullable=False),
        sa.Column("correct_index", sa.Integer(), nullable=False),
        sa.Column("explanation", sa.Text(), server_default="", nullable=False),
        sa.Column("difficulty", sa.String(8), nullable=False),
        sa.Column("category", sa.String(16), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
    )
    op.create_index("ix_trivia_questions_level", "trivia_questions", ["level"])

    op.create_table(
        "trivia_progress",
        _user_fk(primary_key=True),
        sa.Column("current_level", sa.Integer(), server_default="1", nullable=False),
        sa.Column("questions_answered", sa.Integer(), server_default="0", nullable=False),
        sa.Column("correct_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("current_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("best_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_sats_earned", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("level_completed", sa.Boolean(), server_default="false", nullable=False),
        _ts("last_played_at", nullable=True),
    )

    op.create_table(
        "trivia_active_sessions",
        _user_fk(primary_key=True),
        sa.Column("generation", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("session_id", sa.String(36), nullable=True),
        _ts("updated_at"),
    )

    op.create_table(
        "trivia_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk(),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("generation", sa.BigInteger(), nullable=False),
        sa.Column("question_ids", postgresql.JSONB(), nullable=False),
        sa.Column("answered_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("correct_count", sa.Integer(), server_default="0", nullable=False),
        _ts("created_at"),
        _ts("expires_at"),
    )
    op.create_index("ix_trivia_sessions_user", "trivia_sessions", ["user_id", "created_at"])

    op.create_table(
        "trivia_session_answers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            sa.String(36),
            sa.ForeignKey("trivia_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("question_id", sa.Integer(), nullable=False),
        sa.Column("answer_index", sa.Integer(), nullable=False),
        sa.Column("correct", sa.Boolean(), nullable=True),
        sa.Column("sats_earned", sa.Integer(), server_default="0", nullable=False),
        _ts("answered_at"),
        sa.UniqueConstraint("session_id", "question_id", name="uq_trivia_session_answers_session_question"),
    )

    op.create_table(
        "trivia_correct_answers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("question_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("user_id", "level", "question_id", name="uq_trivia_correct_answers"),
    )

    # --- Admin config store ---
    op.create_table(
        "config",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        _ts("updated_at"),
    )


def downgrade() -> None:
    """Drop all tables."""
    for table in (
        "config",
        "trivia_correct_answers",
        "trivia_session_answers",
        "trivia_sessions",
        "trivia_active_sessions",
        "trivia_progress",
        "trivia_questions",
        "payouts",
        "balances",
        "users",
    ):
        op.drop_table(table)
