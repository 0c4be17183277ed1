"""Pydantic schemas for the achievements API."""

from __future__ import annotations

from datetime import datetime

from ibc.schemas import CamelModel


class AchievementCondition(CamelModel):
    field: str
    operator: str
    value: int


class AchievementDefinitionResponse(CamelModel):
    type: str
    name: str
    description: str
    event: str
    condition: AchievementCondition
    reward: int


class UnlockedAchievementResponse(CamelModel):
    type: str
    name: str
    sats_awarded: int
    unlocked_at: datetime
