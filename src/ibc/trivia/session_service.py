"""Trivia session lifecycle: start, answer, inspect.

A user has at most one answerable session. Starting a session bumps the
per-user ``generation`` counter in ``trivia_active_sessions``; a session whose
generation is no longer current is refused on lookup, so superseding never
depends on a cleanup job.

Grading is mark-then-grade: the ``(session_id, question_id)`` answer row is
inserted first with ``ON CONFLICT DO NOTHING``, and only the request that
actually inserted it goes on to grade and credit. Progress, answer, tally and
ledger writes commit together, along with any achievements the answer unlocks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.achievements.engine import (
    TRIVIA_CORRECT,
    TRIVIA_LEVEL_UP,
    TRIVIA_SESSION_COMPLETE,
    TRIVIA_WRONG,
    AchievementEngine,
)
from ibc.admin.game_config import GameConfig
from ibc.config import get_settings
from ibc.db.base import insert_ignore
from ibc.db.models import (
    TriviaActiveSession,
    TriviaCorrectAnswer,
    TriviaSession,
    TriviaSessionAnswer,
)
from ibc.errors import (
    InvalidLevel,
    LevelLocked,
    MaintenanceMode,
    QuestionAlreadyAnswered,
    QuestionNotInSession,
    SessionExpired,
    SessionNotFound,
    SessionSuperseded,
)
from ibc.ratelimit import HOUR, TRIVIA_START, RateLimiter
from ibc.trivia.evaluator import GradeResult, SessionTally, evaluate
from ibc.trivia.progress_service import apply_result, get_or_create_progress, snapshot
from ibc.trivia.question_bank import QuestionBank
from ibc.wallet import ledger

logger = structlog.get_logger()


@dataclass(frozen=True)
class AnswerOutcome:
    result: GradeResult
    explanation: str
    correct_index: int
    questions_remaining: int
    current_level: int
    streak: int
    achievements: list[str] = field(default_factory=list)


async def _current_generation(db: AsyncSession, user_id: str, *, lock: bool = False) -> int | None:
    stmt = select(TriviaActiveSession.generation).where(TriviaActiveSession.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def _advance_generation(db: AsyncSession, user_id: str, session_id: str, now: datetime) -> int:
    """Make ``session_id`` the user's only answerable session; returns its generation."""
    await db.execute(
        insert_ignore(db, TriviaActiveSession, user_id=user_id, generation=0, updated_at=now)
    )
    await db.execute(
        update(TriviaActiveSession)
        .where(TriviaActiveSession.user_id == user_id)
        .values(
            generation=TriviaActiveSession.generation + 1,
            session_id=session_id,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    generation = await _current_generation(db, user_id)
    if generation is None:
        msg = f"Active session head missing for {user_id}"
        raise RuntimeError(msg)
    return generation


async def _correctly_answered(db: AsyncSession, user_id: str, level: int) -> set[int]:
    result = await db.execute(
        select(TriviaCorrectAnswer.question_id).where(
            TriviaCorrectAnswer.user_id == user_id,
            TriviaCorrectAnswer.level == level,
        )
    )
    return set(result.scalars())


async def start_session(
    db: AsyncSession,
    limiter: RateLimiter,
    config: GameConfig,
    user_id: str,
    level: int,
    *,
    bank: QuestionBank | None = None,
    now: datetime | None = None,
) -> dict:
    """Issue a new session at ``level`` and supersede any previous one."""
    settings = get_settings()
    if config.maintenance_mode:
        raise MaintenanceMode
    if not 1 <= level <= settings.trivia_max_level:
        msg = f"Level must be between 1 and {settings.trivia_max_level}"
        raise InvalidLevel(msg)

    now = now or datetime.now(timezone.utc)
    progress = await get_or_create_progress(db, user_id)
    if level > progress.current_level:
        msg = f"Level {level} is locked; current level is {progress.current_level}"
        raise LevelLocked(msg)

    await limiter.check(user_id, TRIVIA_START, config.rate_limits.trivia_per_hour, HOUR)

    bank = bank or QuestionBank(db)
    exclude = await _correctly_answered(db, user_id, level)
    questions = await bank.draw(level, settings.trivia_questions_per_session, exclude)

    session = TriviaSession(
        user_id=user_id,
        level=level,
        generation=0,
        question_ids=[q.id for q in questions],
        created_at=now,
        expires_at=now + timedelta(seconds=settings.trivia_session_ttl_seconds),
    )
    db.add(session)
    await db.flush()
    session.generation = await _advance_generation(db, user_id, session.id, now)
    await db.commit()

    logger.info(
        "trivia_session_started",
        user_id=user_id,
        session_id=session.id,
        level=level,
        generation=session.generation,
        questions=len(questions),
    )
    return {
        "sessionId": session.id,
        "questions": [q.public() for q in questions],
        "level": level,
        "expiresAt": session.expires_at.isoformat(),
    }


async def _load_owned_session(db: AsyncSession, user_id: str, session_id: str) -> TriviaSession:
    session = await db.get(TriviaSession, session_id, populate_existing=True)
    if session is None or session.user_id != user_id:
        raise SessionNotFound
    return session


def _game_events(result: GradeResult, session: TriviaSession) -> list[tuple[str, dict]]:
    """Events raised by one graded answer, in the order they happen."""
    if result.correct:
        events = [(TRIVIA_CORRECT, {"streak": result.new_streak, "satsEarned": result.sats_earned})]
    else:
        events = [(TRIVIA_WRONG, {"streak": 0})]
    if result.level_unlocked:
        events.append((TRIVIA_LEVEL_UP, {"newLevel": result.new_level}))
    if result.session_complete:
        events.append(
            (TRIVIA_SESSION_COMPLETE, {"score": session.correct_count, "total": len(session.question_ids)})
        )
    return events


async def answer_question(
    db: AsyncSession,
    config: GameConfig,
    user_id: str,
    session_id: str,
    question_id: int,
    answer_index: int,
    *,
    bank: QuestionBank | None = None,
    now: datetime | None = None,
) -> AnswerOutcome:
    """Grade one answer exactly once and credit any reward."""
    settings = get_settings()
    now = now or datetime.now(timezone.utc)

    session = await _load_owned_session(db, user_id, session_id)
    if now > session.expires_at:
        raise SessionExpired
    if await _current_generation(db, user_id, lock=True) != session.generation:
        raise SessionSuperseded
    if question_id not in session.question_ids:
        raise QuestionNotInSession

    marked = await db.execute(
        insert_ignore(
            db,
            TriviaSessionAnswer,
            session_id=session_id,
            question_id=question_id,
            answer_index=answer_index,
            sats_earned=0,
            answered_at=now,
        )
    )
    if marked.rowcount == 0:
        await db.rollback()
        raise QuestionAlreadyAnswered

    bank = bank or QuestionBank(db)
    question = await bank.get(question_id)
    if question is None:
        raise QuestionNotInSession

    # Lock progress before re-reading the tally so concurrent answers in one
    # session apply their increments one after another.
    progress = await get_or_create_progress(db, user_id, for_update=True)
    session = await _load_owned_session(db, user_id, session_id)
    tally = SessionTally(
        level=session.level,
        size=len(session.question_ids),
        answered=session.answered_count,
        correct=session.correct_count,
    )
    result = evaluate(question, answer_index, snapshot(progress), tally, config, settings.trivia_max_level)

    await db.execute(
        update(TriviaSessionAnswer)
        .where(TriviaSessionAnswer.session_id == session_id, TriviaSessionAnswer.question_id == question_id)
        .values(correct=result.correct, sats_earned=result.sats_earned)
        .execution_options(synchronize_session=False)
    )
    session.answered_count += 1
    if result.correct:
        session.correct_count += 1
        await db.execute(
            insert_ignore(db, TriviaCorrectAnswer, user_id=user_id, level=session.level, question_id=question_id)
        )
    apply_result(progress, result, now)
    if result.sats_earned > 0:
        await ledger.credit(db, user_id, result.sats_earned, "trivia", config, now=now)
    engine = AchievementEngine(db, config)
    unlocked: list[str] = []
    for event, payload in _game_events(result, session):
        unlocked += await engine.evaluate(user_id, event, payload, now=now)
    await db.commit()

    logger.info(
        "trivia_answer_graded",
        user_id=user_id,
        session_id=session_id,
        question_id=question_id,
        correct=result.correct,
        sats=result.sats_earned,
        streak=result.new_streak,
        level_unlocked=result.level_unlocked,
        achievements=unlocked,
    )
    return AnswerOutcome(
        result=result,
        explanation=question.explanation,
        correct_index=question.correct_index,
        questions_remaining=len(session.question_ids) - session.answered_count,
        current_level=progress.current_level,
        streak=progress.current_streak,
        achievements=unlocked,
    )


async def get_session_state(
    db: AsyncSession,
    user_id: str,
    session_id: str,
    *,
    now: datetime | None = None,
) -> dict:
    """Read-only view of a session: which questions remain and whether it is answerable."""
    now = now or datetime.now(timezone.utc)
    session = await _load_owned_session(db, user_id, session_id)
    result = await db.execute(
        select(TriviaSessionAnswer.question_id).where(TriviaSessionAnswer.session_id == session_id)
    )
    answered = set(result.scalars())
    remaining = [qid for qid in session.question_ids if qid not in answered]
    current = await _current_generation(db, user_id) == session.generation
    expired = now > session.expires_at

    return {
        "sessionId": session.id,
        "level": session.level,
        "expiresAt": session.expires_at.isoformat(),
        "questionIds": list(session.question_ids),
        "answeredQuestionIds": [qid for qid in session.question_ids if qid in answered],
        "remainingQuestionIds": remaining,
        "correct": session.correct_count,
        "expired": expired,
        "superseded": not current,
        "active": current and not expired and bool(remaining),
    }
