"""Leaderboard ranked by sats earned, read straight from the payout ledger.

Only settled (``paid``) reward payouts score; withdrawals and credits still
held for review do not.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.db.models import Payout
from ibc.wallet.ledger import start_of_utc_day

TIMEFRAMES = ("daily", "weekly", "alltime")
DEFAULT_LIMIT = 10


def period_start(timeframe: str, now: datetime) -> datetime | None:
    """Start of the scoring window. Weeks start on Sunday, 00:00 UTC."""
    if timeframe == "alltime":
        return None
    today = start_of_utc_day(now)
    if timeframe == "daily":
        return today
    if timeframe == "weekly":
        return today - timedelta(days=(today.weekday() + 1) % 7)
    raise ValueError(f"Unknown timeframe: {timeframe}")


async def get_leaderboard(
    db: AsyncSession,
    timeframe: str = "alltime",
    *,
    limit: int = DEFAULT_LIMIT,
    now: datetime | None = None,
) -> list[dict]:
    """Top earners for a timeframe, highest score first."""
    start = period_start(timeframe, now or datetime.now(timezone.utc))

    score = func.sum(Payout.amount).label("score")
    game_count = func.count(Payout.id).label("game_count")
    stmt = (
        select(Payout.user_id, score, game_count)
        .where(Payout.status == "paid", Payout.kind != "withdrawal")
        .group_by(Payout.user_id)
        .order_by(score.desc(), Payout.user_id)
        .limit(limit)
    )
    if start is not None:
        stmt = stmt.where(Payout.created_at >= start)

    rows = (await db.execute(stmt)).all()
    return [
        {
            "rank": rank,
            "pubkey": row.user_id,
            "score": int(row.score),
            "game_count": int(row.game_count),
        }
        for rank, row in enumerate(rows, start=1)
    ]
