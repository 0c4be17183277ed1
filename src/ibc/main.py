"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from ibc import dependencies
from ibc.achievements.router import router as achievements_router
from ibc.achievements.seed import seed_achievements
from ibc.admin.router import router as admin_router
from ibc.config import get_settings
from ibc.database import close_db, get_session_factory, init_db
from ibc.health.router import router as health_router
from ibc.leaderboard.router import router as leaderboard_router
from ibc.middleware import setup_middleware
from ibc.redis_client import close_redis, init_redis
from ibc.stacker.router import router as stacker_router
from ibc.trivia.router import router as trivia_router
from ibc.trivia.seed import seed_questions
from ibc.wallet.router import router as wallet_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    if settings.seed_questions_on_startup:
        try:
            async with get_session_factory()() as db:
                await seed_questions(db)
        except SQLAlchemyError:
            logger.warning("Question seeding failed (tables may not exist yet)", exc_info=True)

    if settings.seed_achievements_on_startup:
        try:
            async with get_session_factory()() as db:
                await seed_achievements(db)
        except SQLAlchemyError:
            logger.warning("Achievement seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await dependencies.close_payment_provider()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Island Bitcoin API",
        description="Bitcoin trivia, Satoshi Stacker rewards and Lightning payouts",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(trivia_router)
    app.include_router(wallet_router)
    app.include_router(stacker_router)
    app.include_router(achievements_router)
    app.include_router(leaderboard_router)
    app.include_router(admin_router)

    return app


app = create_app()
