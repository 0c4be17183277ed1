"""ORM models for users, the sats ledger, and trivia state.

All tables are created by Alembic (alembic/versions) in production and by
``Base.metadata.create_all`` in tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ibc.db.base import Base, JSONType, UTCDateTime, utcnow

PAYOUT_KINDS = ("trivia", "stacker", "achievement", "referral", "withdrawal")
PAYOUT_STATUSES = ("pending", "paid", "failed")
ACHIEVEMENT_OPERATORS = ("gte", "eq")


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A community member identified by their Nostr pubkey (hex)."""

    __tablename__ = "users"

    pubkey: Mapped[str] = mapped_column(String(64), primary_key=True)
    lightning_address: Mapped[str | None] = mapped_column(String(320), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Wallet ledger
# ---------------------------------------------------------------------------


class Balance(Base):
    """Per-user sats balance. Only ``ibc.wallet.ledger`` writes these rows."""

    __tablename__ = "balances"
    __table_args__ = (
        CheckConstraint("available >= 0", name="ck_balances_available_non_negative"),
        CheckConstraint("pending >= 0", name="ck_balances_pending_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.pubkey", ondelete="CASCADE"), primary_key=True
    )
    available: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    pending: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_withdrawn: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_activity_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class Payout(Base):
    """Ledger-visible record of a sats movement (reward credit or withdrawal)."""

    __tablename__ = "payouts"
    __table_args__ = (
        Index("ix_payouts_user_created", "user_id", "created_at"),
        Index("ix_payouts_status", "status"),
        Index("ix_payouts_kind_created", "kind", "created_at"),
        CheckConstraint(f"kind IN {PAYOUT_KINDS!r}", name="ck_payouts_kind"),
        CheckConstraint(f"status IN {PAYOUT_STATUSES!r}", name="ck_payouts_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.pubkey", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    lightning_address: Mapped[str | None] = mapped_column(String(320), nullable=True)
    provider_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    attempted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @property
    def reserved(self) -> int:
        """Sats held in ``pending`` on behalf of this payout."""
        return self.amount + self.fee


# ---------------------------------------------------------------------------
# Trivia
# ---------------------------------------------------------------------------


class TriviaQuestion(Base):
    """Question corpus. Read-only at runtime."""

    __tablename__ = "trivia_questions"
    __table_args__ = (Index("ix_trivia_questions_level", "level"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list[str]] = mapped_column(JSONType, nullable=False)
    correct_index: Mapped[int] = mapped_column(Integer, nullable=False)
    explanation: Mapped[str] = mapped_column(Text, nullable=False, default="")
    difficulty: Mapped[str] = mapped_column(String(8), nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)


class TriviaProgress(Base):
    """Per-user trivia aggregate. Mutated only alongside a graded answer."""

    __tablename__ = "trivia_progress"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.pubkey", ondelete="CASCADE"), primary_key=True
    )
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    questions_answered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sats_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    level_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_played_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class TriviaActiveSession(Base):
    """Single row per user pointing at the only answerable session.

    ``generation`` increases on every start; a session whose generation no
    longer matches is unanswerable even before it expires.
    """

    __tablename__ = "trivia_active_sessions"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.pubkey", ondelete="CASCADE"), primary_key=True
    )
    generation: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    session_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class TriviaSession(Base):
    """A time-boxed, ordered set of questions issued to one user at one level."""

    __tablename__ = "trivia_sessions"
    __table_args__ = (Index("ix_trivia_sessions_user", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.pubkey", ondelete="CASCADE"), nullable=False
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    generation: Mapped[int] = mapped_column(BigInteger, nullable=False)
    question_ids: Mapped[list[int]] = mapped_column(JSONType, nullable=False)
    answered_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class TriviaSessionAnswer(Base):
    """One row per graded question; the unique key is the replay guard."""

    __tablename__ = "trivia_session_answers"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_trivia_session_answers_session_question"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trivia_sessions.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(Integer, nullable=False)
    answer_index: Mapped[int] = mapped_column(Integer, nullable=False)
    correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    sats_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    answered_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class TriviaCorrectAnswer(Base):
    """Questions a user has answered correctly at a level (draw exclusion set)."""

    __tablename__ = "trivia_correct_answers"
    __table_args__ = (
        UniqueConstraint("user_id", "level", "question_id", name="uq_trivia_correct_answers"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.pubkey", ondelete="CASCADE"), nullable=False
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    question_id: Mapped[int] = mapped_column(Integer, nullable=False)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class AchievementDefinition(Base):
    """A one-time achievement unlocked when a game event meets its condition.

    ``reward`` of ``None`` pays the configured ``achievementBonus``.
    """

    __tablename__ = "achievement_definitions"
    __table_args__ = (
        CheckConstraint(f"operator IN {ACHIEVEMENT_OPERATORS!r}", name="ck_achievement_definitions_operator"),
    )

    type: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    event: Mapped[str] = mapped_column(String(32), nullable=False)
    field: Mapped[str] = mapped_column(String(32), nullable=False)
    operator: Mapped[str] = mapped_column(String(8), nullable=False, default="gte")
    threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    reward: Mapped[int | None] = mapped_column(Integer, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class UserAchievement(Base):
    """An unlocked achievement; the unique key makes each unlock happen once."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_type", name="uq_user_achievements_user_type"),
        Index("ix_user_achievements_user_unlocked", "user_id", "unlocked_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.pubkey", ondelete="CASCADE"), nullable=False
    )
    achievement_type: Mapped[str] = mapped_column(
        String(32), ForeignKey("achievement_definitions.type", ondelete="CASCADE"), nullable=False
    )
    sats_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unlocked_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ---------------------------------------------------------------------------
# Admin config store
# ---------------------------------------------------------------------------


class ConfigEntry(Base):
    """Key/value admin configuration, parsed into ``GameConfig`` on read."""

    __tablename__ = "config"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
