"""Wallet API: balance, withdrawals, payout history, admin awards."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.admin.game_config import GameConfig
from ibc.auth.dependencies import get_current_pubkey, require_admin
from ibc.dependencies import get_db, get_game_config, get_payment_provider, get_rate_limiter
from ibc.errors import InvalidAmount
from ibc.ratelimit import RateLimiter
from ibc.wallet import ledger
from ibc.wallet.payout_service import withdraw
from ibc.wallet.provider import PaymentProvider
from ibc.wallet.schemas import (
    AwardRequest,
    AwardResponse,
    BalanceResponse,
    PayoutListResponse,
    WithdrawRequest,
    WithdrawResponse,
)

router = APIRouter(prefix="/api/wallet", tags=["Wallet"])


@router.get("/balance", response_model=BalanceResponse)
async def balance(
    pubkey: str = Depends(get_current_pubkey),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await ledger.get_balance(db, pubkey)
    await db.commit()
    return ledger.balance_to_dict(row)


@router.post("/withdraw", response_model=WithdrawResponse)
async def request_withdrawal(
    body: WithdrawRequest,
    pubkey: str = Depends(get_current_pubkey),
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
    provider: PaymentProvider = Depends(get_payment_provider),
    config: GameConfig = Depends(get_game_config),
) -> WithdrawResponse:
    """
    Withdraw sats to a lightning address.

    Small withdrawals are paid immediately; larger ones wait for admin review
    and come back with status ``pending``.
    """
    outcome = await withdraw(db, limiter, provider, config, pubkey, body.amount, body.lightning_address)
    return WithdrawResponse(payout_id=outcome.payout_id, status=outcome.status, amount=body.amount, fee=outcome.fee)


@router.get("/payouts", response_model=PayoutListResponse)
async def payouts(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Literal["pending", "paid", "failed"] | None = Query(None),
    pubkey: str = Depends(get_current_pubkey),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows, total = await ledger.list_payouts(db, pubkey, limit=limit, offset=offset, status=status)
    return {
        "payouts": [ledger.payout_to_dict(p) for p in rows],
        "pagination": {"limit": limit, "offset": offset, "total": total},
    }


@router.post("/award", response_model=AwardResponse)
async def award(
    body: AwardRequest,
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    config: GameConfig = Depends(get_game_config),
) -> dict:
    """Credit a reward to a user (admin). Achievement and referral amounts default to the configured bonus."""
    amount = body.amount
    if amount is None:
        if body.kind == "achievement":
            amount = config.rewards.achievement_bonus
        elif body.kind == "referral":
            amount = config.rewards.referral_bonus
        else:
            msg = f"Amount is required for {body.kind} awards"
            raise InvalidAmount(msg)

    payout = await ledger.credit(db, body.user_id, amount, body.kind, config)
    row = await ledger.get_balance(db, body.user_id)
    await db.commit()
    return {"payout": ledger.payout_to_dict(payout), "balance": ledger.balance_to_dict(row)}
