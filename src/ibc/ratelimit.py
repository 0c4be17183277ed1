"""Per-user, per-action fixed-window rate limiting backed by Redis.

Windows are aligned to the Unix epoch, so a 86400 s window resets at
00:00 UTC, matching the "withdrawals per day" business rule.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from ibc.errors import RateLimited

TRIVIA_START = "trivia_start"
WITHDRAWAL = "withdrawal"
STACKER_CLAIM = "stacker_claim"

HOUR = 3600
DAY = 86400


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    limit: int
    remaining: int
    retry_after: int


class RateLimiter:
    """Count actions per user in Redis and refuse once a window is exhausted."""

    def __init__(self, redis: Any, clock: Any = time.time) -> None:  # noqa: ANN401
        self._redis = redis
        self._clock = clock

    def _key(self, action: str, user_id: str, window_seconds: int) -> tuple[str, int]:
        now = int(self._clock())
        window = now // window_seconds
        retry_after = (window + 1) * window_seconds - now
        return f"ratelimit:{action}:{user_id}:{window}", retry_after

    async def hit(self, user_id: str, action: str, limit: int, window_seconds: int) -> RateLimitDecision:
        """Record one attempt and report whether it fits in the window."""
        key, retry_after = self._key(action, user_id, window_seconds)
        pipe = self._redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, window_seconds + 1)
        results: list[Any] = await pipe.execute()
        count = int(results[0])
        return RateLimitDecision(
            allowed=count <= limit,
            count=count,
            limit=limit,
            remaining=max(0, limit - count),
            retry_after=max(1, retry_after),
        )

    async def check(self, user_id: str, action: str, limit: int, window_seconds: int) -> RateLimitDecision:
        """Like ``hit`` but raises ``RateLimited`` when denied."""
        decision = await self.hit(user_id, action, limit, window_seconds)
        if not decision.allowed:
            msg = f"Rate limit exceeded for {action}: {limit} per {_describe(window_seconds)}"
            raise RateLimited(msg, retry_after=decision.retry_after)
        return decision

    async def release(self, user_id: str, action: str, window_seconds: int) -> None:
        """Give back one attempt recorded by ``hit`` in the current window."""
        key, _ = self._key(action, user_id, window_seconds)
        if await self._redis.decr(key) < 0:
            await self._redis.delete(key)

    async def usage(self, user_id: str, action: str, window_seconds: int) -> int:
        """Attempts recorded in the current window (no increment)."""
        key, _ = self._key(action, user_id, window_seconds)
        value = await self._redis.get(key)
        return int(value) if value else 0


def _describe(window_seconds: int) -> str:
    if window_seconds == HOUR:
        return "hour"
    if window_seconds == DAY:
        return "day"
    return f"{window_seconds}s"
