"""Middleware registration."""

from fastapi import FastAPI

from ibc.config import Settings
from ibc.middleware.cors import setup_cors
from ibc.middleware.error_handler import setup_error_handlers
from ibc.middleware.logging import setup_logging
from ibc.middleware.rate_limit import IpRateLimitMiddleware
from ibc.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers and HTTP middleware.

    Starlette runs middleware in reverse-add order, so CORS is added last to
    wrap the 429 responses produced by the IP throttle.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        IpRateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
