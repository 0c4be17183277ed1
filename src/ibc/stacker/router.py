"""Satoshi Stacker API."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.admin.game_config import GameConfig
from ibc.auth.dependencies import get_current_pubkey
from ibc.dependencies import get_db, get_game_config, get_rate_limiter
from ibc.ratelimit import RateLimiter
from ibc.schemas import CamelModel
from ibc.stacker.service import claim

router = APIRouter(prefix="/api/stacker", tags=["Stacker"])


class ClaimResponse(CamelModel):
    sats_earned: int
    claims_remaining: int


@router.post("/claim", response_model=ClaimResponse)
async def claim_reward(
    pubkey: str = Depends(get_current_pubkey),
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
    config: GameConfig = Depends(get_game_config),
) -> ClaimResponse:
    result = await claim(db, limiter, config, pubkey)
    return ClaimResponse(sats_earned=result.sats_earned, claims_remaining=result.claims_remaining)
