"""Per-user trivia progress aggregate."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.db.base import insert_ignore
from ibc.db.models import TriviaProgress
from ibc.trivia.evaluator import GradeResult, ProgressSnapshot
from ibc.users.service import ensure_user


async def get_or_create_progress(db: AsyncSession, user_id: str, *, for_update: bool = False) -> TriviaProgress:
    """Fetch the progress row, creating it at level 1 on first use.

    ``for_update`` takes a row lock so concurrent grades for the same user
    serialize their read-modify-write of the aggregate.
    """
    await ensure_user(db, user_id)
    await db.execute(insert_ignore(db, TriviaProgress, user_id=user_id))

    stmt = select(TriviaProgress).where(TriviaProgress.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one()


def snapshot(progress: TriviaProgress) -> ProgressSnapshot:
    return ProgressSnapshot(
        current_level=progress.current_level,
        current_streak=progress.current_streak,
        best_streak=progress.best_streak,
    )


def apply_result(progress: TriviaProgress, result: GradeResult, now: datetime | None = None) -> None:
    """Fold one grade result into the aggregate.

    Only ``current_streak`` may go down (to zero on a wrong answer).
    """
    progress.questions_answered += 1
    if result.correct:
        progress.correct_count += 1
    progress.current_streak = result.new_streak
    progress.best_streak = max(progress.best_streak, result.new_streak)
    progress.total_sats_earned += result.sats_earned
    if result.new_level > progress.current_level:
        progress.current_level = result.new_level
    if result.level_completed:
        progress.level_completed = True
    progress.last_played_at = now or datetime.now(timezone.utc)


def progress_to_dict(progress: TriviaProgress) -> dict:
    return {
        "currentLevel": progress.current_level,
        "questionsAnswered": progress.questions_answered,
        "correct": progress.correct_count,
        "streak": progress.current_streak,
        "bestStreak": progress.best_streak,
        "satsEarned": progress.total_sats_earned,
        "levelCompleted": progress.level_completed,
    }
