"""Payout reconciliation arq worker.

Polls the payment provider for withdrawals that were sent but not yet
confirmed and settles each of them exactly once.
"""

from __future__ import annotations

import logging

from arq import cron
from sqlalchemy.exc import SQLAlchemyError

from ibc.config import get_settings
from ibc.database import close_db, get_session_factory, init_db
from ibc.wallet.payout_service import ProcessSummary, reconcile_pending_withdrawals
from ibc.wallet.provider import PaymentProvider, create_provider

logger = logging.getLogger(__name__)


async def payout_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Open the database and build the payment provider."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["provider"] = create_provider()
    logger.info("Payout worker started (provider=%s)", settings.payment_provider)


async def payout_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    provider: PaymentProvider | None = ctx.get("provider")
    if provider:
        await provider.aclose()
    await close_db()
    logger.info("Payout worker shut down")


async def reconcile_payouts(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Scheduled arq task: settle withdrawals the provider has resolved since they were sent."""
    settings = get_settings()
    provider: PaymentProvider = ctx["provider"]

    async with get_session_factory()() as db:
        try:
            summary = await reconcile_pending_withdrawals(db, provider, limit=settings.reconcile_batch_size)
        except SQLAlchemyError:
            logger.exception("Payout reconciliation failed")
            return ProcessSummary().as_dict()

    if summary.succeeded or summary.failed:
        logger.info(
            "Reconciled %d payouts: %d paid, %d failed, %d still pending",
            summary.processed, summary.succeeded, summary.failed, summary.pending,
        )
    return summary.as_dict()


class PayoutWorkerSettings:
    """arq worker settings for payout reconciliation."""

    functions = [reconcile_payouts]
    cron_jobs = [cron(reconcile_payouts, second={0}, run_at_startup=True)]
    on_startup = payout_startup
    on_shutdown = payout_shutdown
    max_jobs = 1
    job_timeout = 120
    redis_settings = None  # set from IBC_REDIS_URL in ibc.workers.settings
