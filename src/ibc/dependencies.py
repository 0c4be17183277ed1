"""Shared FastAPI dependencies."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.admin.game_config import GameConfig, load_game_config
from ibc.database import get_session as _get_session
from ibc.ratelimit import RateLimiter
from ibc.redis_client import get_redis as _get_redis
from ibc.wallet.provider import PaymentProvider, create_provider

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client as a FastAPI dependency."""
    yield _get_redis()


async def get_rate_limiter(redis: object = Depends(get_redis_dep)) -> RateLimiter:
    """Per-user action limiter bound to the shared Redis pool."""
    return RateLimiter(redis)


async def get_game_config(db: AsyncSession = Depends(get_db)) -> GameConfig:
    """Fresh, immutable game-config snapshot for this request."""
    return await load_game_config(db)


_provider: PaymentProvider | None = None


def get_payment_provider() -> PaymentProvider:
    """Process-wide payment provider built from settings."""
    global _provider  # noqa: PLW0603
    if _provider is None:
        _provider = create_provider()
    return _provider


async def close_payment_provider() -> None:
    global _provider  # noqa: PLW0603
    if _provider is not None:
        await _provider.aclose()
        _provider = None
