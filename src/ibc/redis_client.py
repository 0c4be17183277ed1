"""Shared Redis client for rate-limit counters."""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str, *, max_connections: int = 50) -> redis.Redis:
    """Create the process-wide Redis client."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )
    return _client


def set_redis(client: redis.Redis | None) -> None:
    """Install an already-built client (workers and tests share one)."""
    global _client  # noqa: PLW0603
    _client = client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Return the Redis client; raises RuntimeError before ``init_redis``."""
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client
