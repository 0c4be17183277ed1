"""Read-only question provider: (level, exclusion set) -> fixed-size question draw."""

from __future__ import annotations

import random
from collections.abc import Collection
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.db.models import TriviaQuestion
from ibc.errors import NoQuestionsAvailable


@dataclass(frozen=True)
class Question:
    id: int
    prompt: str
    options: tuple[str, ...]
    correct_index: int
    explanation: str
    difficulty: str
    category: str
    level: int

    @classmethod
    def from_row(cls, row: TriviaQuestion) -> Question:
        return cls(
            id=row.id,
            prompt=row.prompt,
            options=tuple(row.options),
            correct_index=row.correct_index,
            explanation=row.explanation,
            difficulty=row.difficulty,
            category=row.category,
            level=row.level,
        )

    def public(self) -> dict:
        """Client-facing projection: never includes the answer or explanation."""
        return {
            "id": self.id,
            "question": self.prompt,
            "options": list(self.options),
            "difficulty": self.difficulty,
            "category": self.category,
            "level": self.level,
        }


class QuestionBank:
    """Question lookups over the ``trivia_questions`` table."""

    def __init__(self, db: AsyncSession, rng: random.Random | None = None) -> None:
        self._db = db
        self._rng = rng or random.SystemRandom()

    async def draw(self, level: int, count: int, exclude: Collection[int] = ()) -> list[Question]:
        """Draw ``count`` questions for ``level``.

        Questions in ``exclude`` are only used once the fresh pool runs out, so
        a user who already answered most of a level still gets a full session.
        If the level has fewer than ``count`` questions in total, all of them are
        returned.
        """
        result = await self._db.execute(select(TriviaQuestion).where(TriviaQuestion.level == level))
        pool = [Question.from_row(r) for r in result.scalars()]
        if not pool:
            msg = f"No questions found for level {level}"
            raise NoQuestionsAvailable(msg)

        excluded = set(exclude)
        fresh = [q for q in pool if q.id not in excluded]
        repeats = [q for q in pool if q.id in excluded]
        self._rng.shuffle(fresh)
        self._rng.shuffle(repeats)
        return (fresh + repeats)[:count]

    async def get(self, question_id: int) -> Question | None:
        row = await self._db.get(TriviaQuestion, question_id)
        return Question.from_row(row) if row else None
