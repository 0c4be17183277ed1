"""Trivia API: session start, answer grading, session state, progress."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.admin.game_config import GameConfig
from ibc.auth.dependencies import get_current_pubkey
from ibc.dependencies import get_db, get_game_config, get_rate_limiter
from ibc.ratelimit import RateLimiter
from ibc.trivia.progress_service import get_or_create_progress, progress_to_dict
from ibc.trivia.schemas import (
    AnswerRequest,
    AnswerResponse,
    ProgressResponse,
    SessionStateResponse,
    StartSessionRequest,
    StartSessionResponse,
)
from ibc.trivia.session_service import answer_question, get_session_state, start_session

router = APIRouter(prefix="/api/trivia", tags=["Trivia"])


@router.post("/session/start", response_model=StartSessionResponse)
async def start(
    body: StartSessionRequest,
    pubkey: str = Depends(get_current_pubkey),
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
    config: GameConfig = Depends(get_game_config),
) -> dict:
    """Start a new session at a level the user has unlocked."""
    return await start_session(db, limiter, config, pubkey, body.level)


@router.post("/session/answer", response_model=AnswerResponse)
async def answer(
    body: AnswerRequest,
    pubkey: str = Depends(get_current_pubkey),
    db: AsyncSession = Depends(get_db),
    config: GameConfig = Depends(get_game_config),
) -> AnswerResponse:
    """Grade one answer. Each question of a session can be answered once."""
    outcome = await answer_question(db, config, pubkey, body.session_id, body.question_id, body.answer)
    return AnswerResponse(
        correct=outcome.result.correct,
        correct_answer=outcome.correct_index,
        explanation=outcome.explanation,
        streak=outcome.streak,
        sats_earned=outcome.result.sats_earned,
        level_completed=outcome.result.level_completed,
        level_unlocked=outcome.result.level_unlocked,
        current_level=outcome.current_level,
        questions_remaining=outcome.questions_remaining,
        achievements_unlocked=outcome.achievements,
    )


@router.get("/session/{session_id}", response_model=SessionStateResponse)
async def session_state(
    session_id: str,
    pubkey: str = Depends(get_current_pubkey),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await get_session_state(db, pubkey, session_id)


@router.get("/progress", response_model=ProgressResponse)
async def progress(
    pubkey: str = Depends(get_current_pubkey),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await get_or_create_progress(db, pubkey)
    await db.commit()
    return progress_to_dict(row)
