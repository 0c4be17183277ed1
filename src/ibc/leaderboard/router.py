"""Leaderboard API."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.dependencies import get_db
from ibc.leaderboard.service import get_leaderboard
from ibc.schemas import CamelModel

router = APIRouter(prefix="/api/leaderboard", tags=["Leaderboard"])


class LeaderboardEntry(CamelModel):
    rank: int
    pubkey: str
    score: int
    game_count: int


@router.get("", response_model=list[LeaderboardEntry])
async def leaderboard(
    timeframe: Literal["daily", "weekly", "alltime"] = Query("alltime"),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    """Top 10 earners by paid rewards (withdrawals excluded)."""
    return await get_leaderboard(db, timeframe)
