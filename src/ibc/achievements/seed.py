"""Achievement seed data."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ibc.db.base import insert_ignore
from ibc.db.models import AchievementDefinition

logger = logging.getLogger(__name__)

# reward None pays the configured achievementBonus.
ACHIEVEMENT_SEED_DATA: list[dict] = [
    {
        "type": "first_correct",
        "name": "First Correct",
        "description": "Answer your first question correctly",
        "event": "trivia:correct",
        "field": "streak",
        "operator": "gte",
        "threshold": 1,
        "reward": 0,
        "sort_order": 1,
    },
    {
        "type": "streak_5",
        "name": "5 Streak",
        "description": "Get 5 correct in a row",
        "event": "trivia:correct",
        "field": "streak",
        "operator": "gte",
        "threshold": 5,
        "reward": None,
        "sort_order": 2,
    },
    {
        "type": "streak_10",
        "name": "10 Streak",
        "description": "Get 10 correct in a row",
        "event": "trivia:correct",
        "field": "streak",
        "operator": "gte",
        "threshold": 10,
        "reward": None,
        "sort_order": 3,
    },
    {
        "type": "level_2",
        "name": "Level Up",
        "description": "Unlock level 2",
        "event": "trivia:level-up",
        "field": "newLevel",
        "operator": "gte",
        "threshold": 2,
        "reward": 0,
        "sort_order": 4,
    },
    {
        "type": "level_5",
        "name": "All Levels",
        "description": "Unlock the final level",
        "event": "trivia:level-up",
        "field": "newLevel",
        "operator": "gte",
        "threshold": 5,
        "reward": None,
        "sort_order": 5,
    },
]


async def seed_achievements(db: AsyncSession) -> int:
    """Insert missing achievement definitions. Existing rows are left as edited.

    Returns number of definitions inserted.
    """
    inserted = 0
    for definition in ACHIEVEMENT_SEED_DATA:
        result = await db.execute(insert_ignore(db, AchievementDefinition, **definition))
        inserted += result.rowcount
    await db.commit()
    logger.info("Seeded %d achievement definitions (%d skipped)", inserted, len(ACHIEVEMENT_SEED_DATA) - inserted)
    return inserted
