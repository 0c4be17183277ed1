"""Achievements API: public definitions and a user's unlocks."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.achievements.schemas import (
    AchievementCondition,
    AchievementDefinitionResponse,
    UnlockedAchievementResponse,
)
from ibc.achievements.service import list_definitions, list_user_achievements, reward_for
from ibc.admin.game_config import GameConfig
from ibc.auth.dependencies import get_current_pubkey
from ibc.dependencies import get_db, get_game_config

router = APIRouter(prefix="/api/achievements", tags=["Achievements"])


@router.get("/definitions", response_model=list[AchievementDefinitionResponse])
async def definitions(
    db: AsyncSession = Depends(get_db),
    config: GameConfig = Depends(get_game_config),
) -> list[AchievementDefinitionResponse]:
    """Active achievement definitions with the reward each one pays."""
    return [
        AchievementDefinitionResponse(
            type=d.type,
            name=d.name,
            description=d.description,
            event=d.event,
            condition=AchievementCondition(field=d.field, operator=d.operator, value=d.threshold),
            reward=reward_for(d, config),
        )
        for d in await list_definitions(db)
    ]


@router.get("", response_model=list[UnlockedAchievementResponse])
async def my_achievements(
    pubkey: str = Depends(get_current_pubkey),
    db: AsyncSession = Depends(get_db),
) -> list[UnlockedAchievementResponse]:
    rows = await list_user_achievements(db, pubkey)
    return [
        UnlockedAchievementResponse(
            type=unlock.achievement_type,
            name=definition.name,
            sats_awarded=unlock.sats_awarded,
            unlocked_at=unlock.unlocked_at,
        )
        for unlock, definition in rows
    ]
