"""Question corpus seed: loads the bundled questions when the table is empty."""

from __future__ import annotations

import json
import logging
from importlib import resources

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.db.models import TriviaQuestion

logger = logging.getLogger(__name__)

VALID_DIFFICULTIES = frozenset({"easy", "medium", "hard"})
VALID_CATEGORIES = frozenset({"basics", "technical", "history", "lightning", "culture"})


def load_seed_questions() -> list[dict]:
    """Read and sanity-check the bundled corpus."""
    raw = resources.files("ibc.trivia").joinpath("data/questions.json").read_text(encoding="utf-8")
    questions: list[dict] = json.loads(raw)
    for q in questions:
        if len(q["options"]) != 4 or not 0 <= q["correct_index"] < 4:
            msg = f"Malformed seed question: {q['prompt']!r}"
            raise ValueError(msg)
        if q["difficulty"] not in VALID_DIFFICULTIES or q["category"] not in VALID_CATEGORIES:
            msg = f"Unknown difficulty/category in seed question: {q['prompt']!r}"
            raise ValueError(msg)
    return questions


async def seed_questions(db: AsyncSession) -> int:
    """Insert the bundled corpus if no questions exist. Returns number inserted."""
    count = (await db.execute(select(func.count()).select_from(TriviaQuestion))).scalar_one()
    if count:
        logger.info("Skipping question seed: %d questions already exist", count)
        return 0

    questions = load_seed_questions()
    db.add_all(TriviaQuestion(**q) for q in questions)
    await db.commit()
    logger.info("Seeded %d trivia questions", len(questions))
    return len(questions)
