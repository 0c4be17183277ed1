"""Withdrawal processing: reserve, pay through the provider, settle.

Reservation and settlement commit in separate transactions with the provider
call in between, so funds are never both spendable and in flight. A provider
call that times out or errors leaves the payout ``pending`` for the
reconciliation worker; only an explicit provider answer moves it on.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.admin.game_config import GameConfig
from ibc.config import get_settings
from ibc.db.models import Payout
from ibc.errors import (
    BelowMinimum,
    IbcError,
    InvalidAmount,
    MaintenanceMode,
    PayoutLimitExceeded,
    ProviderFailure,
)
from ibc.ratelimit import DAY, WITHDRAWAL, RateLimiter
from ibc.users.service import set_lightning_address, validate_lightning_address
from ibc.wallet import ledger
from ibc.wallet.provider import FAILED, PAID, PaymentProvider, ProviderError, ProviderResult

logger = structlog.get_logger()


@dataclass(frozen=True)
class WithdrawOutcome:
    payout_id: str
    status: str
    fee: int


@dataclass
class ProcessSummary:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    pending: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "pending": self.pending,
        }


async def _check_daily_caps(db: AsyncSession, user_id: str, amount: int, config: GameConfig, now: datetime) -> None:
    since = ledger.start_of_utc_day(now)
    retry_after = int((ledger.next_utc_midnight(now) - now).total_seconds()) or 1

    user_total = await ledger.withdrawn_since(db, since, user_id)
    if user_total + amount > config.max_payout_per_user:
        msg = f"Daily withdrawal limit of {config.max_payout_per_user} sats per user reached"
        raise PayoutLimitExceeded(msg, retry_after=retry_after)

    global_total = await ledger.withdrawn_since(db, since)
    if global_total + amount > config.max_daily_payout:
        msg = "Daily payout budget exhausted"
        raise PayoutLimitExceeded(msg, retry_after=retry_after)


async def _call_provider(provider: PaymentProvider, address: str, amount: int) -> ProviderResult | None:
    """Send a payment; ``None`` means the outcome is unknown."""
    settings = get_settings()
    try:
        return await asyncio.wait_for(
            provider.send(address, amount, settings.payout_memo),
            timeout=settings.provider_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning("provider_timeout", address=address, amount=amount)
    except ProviderError as e:
        logger.warning("provider_error", address=address, amount=amount, error=str(e))
    return None


async def _mark_attempted(db: AsyncSession, payout_id: str, now: datetime) -> bool:
    """Claim a queued withdrawal for sending. False if another worker got it first."""
    result = await db.execute(
        update(Payout)
        .where(Payout.id == payout_id, Payout.status == "pending", Payout.attempted_at.is_(None))
        .values(attempted_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def _apply_result(db: AsyncSession, payout_id: str, result: ProviderResult | None) -> str:
    """Persist a provider answer and return the payout's resulting status."""
    if result is None:
        return "pending"
    if result.status in (PAID, FAILED):
        settled = await ledger.settle(
            db, payout_id, result.status, provider_ref=result.provider_ref, error=result.error
        )
        await db.commit()
        return settled.status
    if result.provider_ref:
        await db.execute(
            update(Payout)
            .where(Payout.id == payout_id)
            .values(provider_ref=result.provider_ref)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    return "pending"


async def withdraw(
    db: AsyncSession,
    limiter: RateLimiter,
    provider: PaymentProvider,
    config: GameConfig,
    user_id: str,
    amount: int,
    lightning_address: str,
) -> WithdrawOutcome:
    """Withdraw ``amount`` sats to ``lightning_address``.

    Raises ``ProviderFailure`` after restoring the funds when the provider
    definitively rejects the payment.
    """
    if config.maintenance_mode:
        raise MaintenanceMode
    address = validate_lightning_address(lightning_address)
    if amount <= 0:
        raise InvalidAmount
    if amount < config.min_withdrawal:
        msg = f"Minimum withdrawal is {config.min_withdrawal} sats"
        raise BelowMinimum(msg)
    now = datetime.now(timezone.utc)

    await limiter.check(user_id, WITHDRAWAL, config.rate_limits.withdrawals_per_day, DAY)

    # Only withdrawals that reserve funds count against withdrawalsPerDay.
    try:
        await set_lightning_address(db, user_id, address)
        await _check_daily_caps(db, user_id, amount, config, now)
        reservation = await ledger.reserve_for_withdrawal(
            db, user_id, amount, config, lightning_address=address, now=now
        )
        await db.commit()
    except IbcError:
        await limiter.release(user_id, WITHDRAWAL, DAY)
        raise

    log = logger.bind(user_id=user_id, payout_id=reservation.payout_id, amount=amount)
    if not (provider.enabled and config.sends_immediately(amount)):
        log.info("withdrawal_queued")
        return WithdrawOutcome(payout_id=reservation.payout_id, status="pending", fee=reservation.fee)

    if not await _mark_attempted(db, reservation.payout_id, datetime.now(timezone.utc)):
        return WithdrawOutcome(payout_id=reservation.payout_id, status="pending", fee=reservation.fee)

    result = await _call_provider(provider, address, amount)
    status = await _apply_result(db, reservation.payout_id, result)
    log.info("withdrawal_processed", status=status)

    if status == FAILED:
        raise ProviderFailure(result.error if result and result.error else None)
    return WithdrawOutcome(payout_id=reservation.payout_id, status=status, fee=reservation.fee)


async def process_queued_withdrawals(
    db: AsyncSession,
    provider: PaymentProvider,
    *,
    auto_approve: bool = False,
    threshold: int = 0,
    limit: int = 100,
) -> ProcessSummary:
    """Send withdrawals that were queued for review.

    With ``auto_approve`` set, amounts above ``threshold`` stay queued.
    """
    summary = ProcessSummary()
    if not provider.enabled:
        logger.warning("process_queued_skipped", reason="provider disabled")
        return summary

    stmt = (
        select(Payout)
        .where(Payout.kind == "withdrawal", Payout.status == "pending", Payout.attempted_at.is_(None))
        .order_by(Payout.created_at)
        .limit(limit)
    )
    if auto_approve and threshold > 0:
        stmt = stmt.where(Payout.amount <= threshold)
    queued = [(p.id, p.amount, p.lightning_address) for p in (await db.execute(stmt)).scalars()]
    await db.commit()

    for payout_id, amount, address in queued:
        if not await _mark_attempted(db, payout_id, datetime.now(timezone.utc)):
            continue
        summary.processed += 1

        if not address:
            await ledger.settle(db, payout_id, FAILED, error="No lightning address on payout")
            await db.commit()
            summary.failed += 1
            continue

        status = await _apply_result(db, payout_id, await _call_provider(provider, address, amount))
        if status == PAID:
            summary.succeeded += 1
        elif status == FAILED:
            summary.failed += 1
        else:
            summary.pending += 1

    logger.info("process_queued_complete", **summary.as_dict())
    return summary


async def reconcile_pending_withdrawals(
    db: AsyncSession,
    provider: PaymentProvider,
    *,
    limit: int = 50,
) -> ProcessSummary:
    """Poll the provider for attempted withdrawals that are still pending."""
    summary = ProcessSummary()
    if not provider.enabled:
        return summary

    stmt = (
        select(Payout.id, Payout.provider_ref)
        .where(
            Payout.kind == "withdrawal",
            Payout.status == "pending",
            Payout.attempted_at.is_not(None),
            Payout.provider_ref.is_not(None),
        )
        .order_by(Payout.attempted_at)
        .limit(limit)
    )
    rows = (await db.execute(stmt)).all()
    await db.commit()

    for payout_id, provider_ref in rows:
        summary.processed += 1
        try:
            result = await provider.lookup(provider_ref)
        except ProviderError as e:
            logger.warning("reconcile_lookup_failed", payout_id=payout_id, error=str(e))
            summary.pending += 1
            continue

        status = await _apply_result(db, payout_id, result)
        if status == PAID:
            summary.succeeded += 1
        elif status == FAILED:
            summary.failed += 1
        else:
            summary.pending += 1

    if summary.processed:
        logger.info("reconcile_complete", **summary.as_dict())
    return summary
