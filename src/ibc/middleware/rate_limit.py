"""Per-IP fixed-window request throttle backed by Redis."""

import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ibc.redis_client import get_redis

_EXEMPT_PATHS = frozenset({"/health", "/ready"})


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For when behind the proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class IpRateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle every API request per client IP, independent of per-user action limits."""

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        now = int(time.time())
        window = now // self.window_seconds
        key = f"ratelimit:ip:{client_ip(request)}:{window}"

        try:
            redis = get_redis()
        except RuntimeError:
            # Redis not initialized: serve without the IP throttle.
            return await call_next(request)

        pipe = redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, self.window_seconds + 1)
        results: list[Any] = await pipe.execute()
        count = int(results[0])

        if count > self.requests_per_window:
            retry_after = (window + 1) * self.window_seconds - now
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later.", "code": "rate_limited"},
                headers={
                    "Retry-After": str(max(1, retry_after)),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Limit": str(self.requests_per_window),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.requests_per_window - count))
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_window)
        return response
