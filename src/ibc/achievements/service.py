"""Achievement unlocks with duplicate prevention and reward credit."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.admin.game_config import GameConfig
from ibc.db.base import insert_ignore
from ibc.db.models import AchievementDefinition, UserAchievement
from ibc.users.service import ensure_user
from ibc.wallet import ledger

logger = structlog.get_logger()


def reward_for(definition: AchievementDefinition, config: GameConfig) -> int:
    """Sats paid for unlocking ``definition``."""
    if definition.reward is None:
        return config.rewards.achievement_bonus
    return definition.reward


async def list_definitions(db: AsyncSession) -> list[AchievementDefinition]:
    """Active definitions in display order."""
    result = await db.execute(
        select(AchievementDefinition)
        .where(AchievementDefinition.active.is_(True))
        .order_by(AchievementDefinition.sort_order, AchievementDefinition.type)
    )
    return list(result.scalars())


async def list_user_achievements(db: AsyncSession, user_id: str) -> list[tuple[UserAchievement, AchievementDefinition]]:
    """A user's unlocks, newest first."""
    result = await db.execute(
        select(UserAchievement, AchievementDefinition)
        .join(AchievementDefinition, AchievementDefinition.type == UserAchievement.achievement_type)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.unlocked_at.desc(), UserAchievement.id.desc())
    )
    return [(row[0], row[1]) for row in result.all()]


async def has_achievement(db: AsyncSession, user_id: str, achievement_type: str) -> bool:
    result = await db.execute(
        select(UserAchievement.id).where(
            UserAchievement.user_id == user_id,
            UserAchievement.achievement_type == achievement_type,
        )
    )
    return result.scalar_one_or_none() is not None


async def award_achievement(
    db: AsyncSession,
    config: GameConfig,
    user_id: str,
    definition: AchievementDefinition,
    *,
    now: datetime | None = None,
) -> bool:
    """Unlock ``definition`` for a user and credit its reward.

    Returns False if the user already has it. Only flushes; the caller owns
    the transaction, so the unlock and its ledger credit commit together.
    """
    now = now or datetime.now(timezone.utc)
    reward = reward_for(definition, config)

    await ensure_user(db, user_id)
    inserted = await db.execute(
        insert_ignore(
            db,
            UserAchievement,
            user_id=user_id,
            achievement_type=definition.type,
            sats_awarded=reward,
            unlocked_at=now,
        )
    )
    if inserted.rowcount == 0:
        return False

    if reward > 0:
        await ledger.credit(db, user_id, reward, "achievement", config, now=now)

    logger.info("achievement_unlocked", user_id=user_id, achievement=definition.type, sats=reward)
    return True
