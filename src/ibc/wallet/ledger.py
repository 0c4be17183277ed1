"""Sats ledger: the only writer of ``balances`` rows.

Every balance movement is a single conditional UPDATE so concurrent requests
cannot both pass a check-then-write race, and every movement is documented by
a ``payouts`` row written in the same transaction. Functions here only flush;
the caller owns the transaction and commits once per unit of work.

Identity at any quiescent point::

    lifetime_earned == available + pending + lifetime_withdrawn
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.admin.game_config import GameConfig
from ibc.db.base import insert_ignore
from ibc.db.models import Balance, Payout
from ibc.errors import (
    BelowMinimum,
    InsufficientBalance,
    InvalidAmount,
    PayoutNotFound,
    ValidationFailed,
)
from ibc.users.service import ensure_user

logger = structlog.get_logger()

CREDIT_KINDS = frozenset({"trivia", "stacker", "achievement", "referral"})
OUTCOMES = frozenset({"paid", "failed"})


@dataclass(frozen=True)
class Reservation:
    payout_id: str
    user_id: str
    amount: int
    fee: int

    @property
    def total(self) -> int:
        return self.amount + self.fee


@dataclass(frozen=True)
class SettleResult:
    payout_id: str
    status: str
    changed: bool


def start_of_utc_day(now: datetime) -> datetime:
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


async def ensure_balance(db: AsyncSession, user_id: str) -> None:
    await ensure_user(db, user_id)
    await db.execute(insert_ignore(db, Balance, user_id=user_id, last_activity_at=datetime.now(timezone.utc)))


async def get_balance(db: AsyncSession, user_id: str) -> Balance:
    """Current balance row, created empty on first access."""
    await ensure_balance(db, user_id)
    stmt = (
        select(Balance)
        .where(Balance.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one()


async def _move(db: AsyncSession, user_id: str, now: datetime, *conditions: object, **deltas: int) -> int:
    """Apply ``column += delta`` for each delta, guarded by ``conditions``. Returns rowcount."""
    values: dict[str, object] = {name: getattr(Balance, name) + delta for name, delta in deltas.items()}
    values["last_activity_at"] = now
    stmt = (
        update(Balance)
        .where(Balance.user_id == user_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount


async def credit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    kind: str,
    config: GameConfig,
    *,
    now: datetime | None = None,
) -> Payout:
    """Credit a reward.

    Amounts above ``autoApproveThreshold`` are held in ``pending`` with a
    pending payout until an admin settles them; everything else lands in
    ``available`` with a paid payout.
    """
    if amount <= 0:
        raise InvalidAmount
    if kind not in CREDIT_KINDS:
        msg = f"Cannot credit payout kind {kind!r}"
        raise ValidationFailed(msg)

    now = now or datetime.now(timezone.utc)
    await ensure_balance(db, user_id)

    held = config.holds_credit(amount)
    if held:
        await _move(db, user_id, now, pending=amount, lifetime_earned=amount)
    else:
        await _move(db, user_id, now, available=amount, lifetime_earned=amount)

    payout = Payout(
        user_id=user_id,
        amount=amount,
        fee=0,
        kind=kind,
        status="pending" if held else "paid",
        created_at=now,
        settled_at=None if held else now,
    )
    db.add(payout)
    await db.flush()

    logger.info("ledger_credit", user_id=user_id, amount=amount, kind=kind, held=held, payout_id=payout.id)
    return payout


async def reserve_for_withdrawal(
    db: AsyncSession,
    user_id: str,
    amount: int,
    config: GameConfig,
    *,
    lightning_address: str | None = None,
    now: datetime | None = None,
) -> Reservation:
    """Move ``amount`` (plus the withdrawal fee) from available to pending.

    The check and the deduction are one statement, so two concurrent
    reservations against a balance that covers only one of them cannot both
    succeed.
    """
    if amount <= 0:
        raise InvalidAmount
    if amount < config.min_withdrawal:
        msg = f"Minimum withdrawal is {config.min_withdrawal} sats"
        raise BelowMinimum(msg)

    now = now or datetime.now(timezone.utc)
    fee = config.withdrawal_fee
    total = amount + fee

    await ensure_balance(db, user_id)
    moved = await _move(db, user_id, now, Balance.available >= total, available=-total, pending=total)
    if moved == 0:
        raise InsufficientBalance

    payout = Payout(
        user_id=user_id,
        amount=amount,
        fee=fee,
        kind="withdrawal",
        status="pending",
        lightning_address=lightning_address,
        created_at=now,
    )
    db.add(payout)
    await db.flush()

    logger.info("ledger_reserve", user_id=user_id, amount=amount, fee=fee, payout_id=payout.id)
    return Reservation(payout_id=payout.id, user_id=user_id, amount=amount, fee=fee)


async def settle(
    db: AsyncSession,
    payout_id: str,
    outcome: str,
    *,
    provider_ref: str | None = None,
    error: str | None = None,
    now: datetime | None = None,
) -> SettleResult:
    """Resolve a pending payout to ``paid`` or ``failed`` and reconcile the balance.

    Idempotent: settling a payout that is already terminal changes nothing and
    reports ``changed=False``, so redelivered provider callbacks are harmless.
    """
    if outcome not in OUTCOMES:
        msg = f"Invalid settlement outcome: {outcome!r}"
        raise ValidationFailed(msg)

    now = now or datetime.now(timezone.utc)
    values: dict[str, object] = {"status": outcome, "settled_at": now}
    if provider_ref is not None:
        values["provider_ref"] = provider_ref
    if error is not None:
        values["error"] = error

    # Conditional transition: only one settle per payout can win.
    result = await db.execute(
        update(Payout)
        .where(Payout.id == payout_id, Payout.status == "pending")
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    payout = await db.get(Payout, payout_id, populate_existing=True)
    if payout is None:
        raise PayoutNotFound
    if result.rowcount == 0:
        if payout.status != outcome:
            logger.warning(
                "ledger_settle_conflict", payout_id=payout_id, status=payout.status, requested=outcome
            )
        return SettleResult(payout_id=payout_id, status=payout.status, changed=False)

    user_id = payout.user_id
    if payout.kind == "withdrawal":
        reserved = payout.reserved
        if outcome == "paid":
            moved = await _move(
                db, user_id, now, Balance.pending >= reserved, pending=-reserved, lifetime_withdrawn=reserved
            )
        else:
            moved = await _move(db, user_id, now, Balance.pending >= reserved, pending=-reserved, available=reserved)
    elif outcome == "paid":
        moved = await _move(
            db, user_id, now, Balance.pending >= payout.amount, pending=-payout.amount, available=payout.amount
        )
    else:
        moved = await _move(
            db, user_id, now, Balance.pending >= payout.amount, pending=-payout.amount, lifetime_earned=-payout.amount
        )

    if moved == 0:
        # Pending no longer covers this payout: the ledger is already inconsistent.
        msg = f"Balance for {user_id} cannot cover settlement of payout {payout_id}"
        raise RuntimeError(msg)

    logger.info("ledger_settle", payout_id=payout_id, user_id=user_id, kind=payout.kind, outcome=outcome)
    return SettleResult(payout_id=payout_id, status=outcome, changed=True)


async def withdrawn_since(db: AsyncSession, since: datetime, user_id: str | None = None) -> int:
    """Sats of non-failed withdrawals created since ``since`` (one user or everyone)."""
    stmt = select(func.coalesce(func.sum(Payout.amount), 0)).where(
        Payout.kind == "withdrawal",
        Payout.status != "failed",
        Payout.created_at >= since,
    )
    if user_id is not None:
        stmt = stmt.where(Payout.user_id == user_id)
    return int((await db.execute(stmt)).scalar_one())


async def list_payouts(
    db: AsyncSession,
    user_id: str | None,
    *,
    limit: int = 50,
    offset: int = 0,
    status: str | None = None,
    kind: str | None = None,
) -> tuple[list[Payout], int]:
    """Newest-first page of payouts plus the total matching count."""
    limit = min(max(limit, 1), 100)
    filters = []
    if user_id is not None:
        filters.append(Payout.user_id == user_id)
    if status is not None:
        filters.append(Payout.status == status)
    if kind is not None:
        filters.append(Payout.kind == kind)

    total = (await db.execute(select(func.count()).select_from(Payout).where(*filters))).scalar_one()
    rows = await db.execute(
        select(Payout).where(*filters).order_by(Payout.created_at.desc(), Payout.id).limit(limit).offset(offset)
    )
    return list(rows.scalars()), int(total)


def next_utc_midnight(now: datetime) -> datetime:
    return start_of_utc_day(now) + timedelta(days=1)


def balance_to_dict(balance: Balance) -> dict:
    return {
        "pubkey": balance.user_id,
        "balance": balance.available,
        "pendingBalance": balance.pending,
        "totalEarned": balance.lifetime_earned,
        "totalWithdrawn": balance.lifetime_withdrawn,
        "lastActivity": balance.last_activity_at.isoformat(),
    }


def payout_to_dict(payout: Payout) -> dict:
    return {
        "id": payout.id,
        "userPubkey": payout.user_id,
        "amount": payout.amount,
        "fee": payout.fee,
        "gameType": payout.kind,
        "status": payout.status,
        "timestamp": payout.created_at.isoformat(),
        "txId": payout.provider_ref,
    }
