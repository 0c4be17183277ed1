"""Satoshi Stacker: a daily-capped idle claim credited through the ledger."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.admin.game_config import GameConfig
from ibc.errors import FeatureDisabled, MaintenanceMode
from ibc.ratelimit import DAY, STACKER_CLAIM, RateLimiter
from ibc.wallet import ledger

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClaimResult:
    sats_earned: int
    claims_remaining: int


async def claim(db: AsyncSession, limiter: RateLimiter, config: GameConfig, user_id: str) -> ClaimResult:
    """Credit one stacker reward. Claims reset at 00:00 UTC."""
    if config.maintenance_mode:
        raise MaintenanceMode
    if not config.satoshi_stacker:
        msg = "Satoshi Stacker is disabled"
        raise FeatureDisabled(msg)

    decision = await limiter.check(user_id, STACKER_CLAIM, config.stacker_daily_limit, DAY)
    await ledger.credit(db, user_id, config.stacker_reward, "stacker", config)
    await db.commit()

    logger.info("stacker_claim", user_id=user_id, sats=config.stacker_reward, remaining=decision.remaining)
    return ClaimResult(sats_earned=config.stacker_reward, claims_remaining=decision.remaining)
