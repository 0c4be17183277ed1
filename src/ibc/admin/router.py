"""Admin API: game configuration and the payout queue."""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.admin.game_config import (
    load_game_config,
    read_raw_config,
    reset_game_config,
    typed_values,
    update_game_config,
)
from ibc.admin.schemas import (
    AdminPayoutListResponse,
    ConfigResponse,
    ProcessPayoutsRequest,
    ProcessPayoutsResponse,
    SettleRequest,
    SettleResponse,
)
from ibc.auth.dependencies import require_admin
from ibc.dependencies import get_db, get_payment_provider
from ibc.wallet import ledger
from ibc.wallet.payout_service import process_queued_withdrawals
from ibc.wallet.provider import PaymentProvider

router = APIRouter(prefix="/api/admin", tags=["Admin"])


async def _config_response(db: AsyncSession) -> dict:
    raw = await read_raw_config(db)
    config = await load_game_config(db)
    return {"version": config.version, "config": typed_values(raw)}


@router.get("/config", response_model=ConfigResponse)
async def get_config(
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await _config_response(db)


@router.post("/config", response_model=ConfigResponse)
async def patch_config(
    updates: dict[str, Any] = Body(...),
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Validate and apply a partial update. Rejects unknown keys and invalid values."""
    await update_game_config(db, updates)
    await db.commit()
    return await _config_response(db)


@router.delete("/config", response_model=ConfigResponse)
async def reset_config(
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await reset_game_config(db)
    await db.commit()
    return await _config_response(db)


@router.get("/payouts", response_model=AdminPayoutListResponse)
async def list_payouts(
    status: Literal["pending", "paid", "failed"] = Query("pending"),
    kind: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows, total = await ledger.list_payouts(db, None, limit=limit, offset=offset, status=status, kind=kind)
    return {
        "payouts": [ledger.payout_to_dict(p) for p in rows],
        "pagination": {"limit": limit, "offset": offset, "total": total},
    }


@router.post("/payouts/process", response_model=ProcessPayoutsResponse)
async def process_payouts(
    body: ProcessPayoutsRequest,
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
) -> dict:
    """Send queued withdrawals to the payment provider."""
    summary = await process_queued_withdrawals(
        db, provider, auto_approve=body.auto_approve, threshold=body.threshold
    )
    return summary.as_dict()


@router.post("/payouts/{payout_id}/settle", response_model=SettleResponse)
async def settle_payout(
    payout_id: str,
    body: SettleRequest,
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """
    Settle a pending payout by hand.

    Approves or rejects held reward credits and resolves withdrawals the
    provider reported out of band. Settling an already-final payout is a no-op.
    """
    result = await ledger.settle(
        db, payout_id, body.outcome, provider_ref=body.provider_ref, error=body.error
    )
    await db.commit()
    return {"payout_id": result.payout_id, "status": result.status, "changed": result.changed}
