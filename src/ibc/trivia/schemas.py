"""Pydantic schemas for the trivia API."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from ibc.schemas import CamelModel


class StartSessionRequest(CamelModel):
    level: int = 1


class QuestionResponse(CamelModel):
    id: int
    question: str
    options: list[str]
    difficulty: str
    category: str
    level: int


class StartSessionResponse(CamelModel):
    session_id: str
    questions: list[QuestionResponse]
    level: int
    expires_at: datetime


class AnswerRequest(CamelModel):
    session_id: str
    question_id: int
    answer: int = Field(ge=0, le=3)


class AnswerResponse(CamelModel):
    correct: bool
    correct_answer: int
    explanation: str
    streak: int
    sats_earned: int
    level_completed: bool
    level_unlocked: bool
    current_level: int
    questions_remaining: int
    achievements_unlocked: list[str] = []


class SessionStateResponse(CamelModel):
    session_id: str
    level: int
    expires_at: datetime
    question_ids: list[int]
    answered_question_ids: list[int]
    remaining_question_ids: list[int]
    correct: int
    expired: bool
    superseded: bool
    active: bool


class ProgressResponse(CamelModel):
    current_level: int
    questions_answered: int
    correct: int
    streak: int
    best_streak: int
    sats_earned: int
    level_completed: bool
