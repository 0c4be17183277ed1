"""Tests for the payout reconciliation worker."""

from __future__ import annotations

import pytest
from sqlalchemy import update

from ibc.admin.game_config import parse_game_config
from ibc.database import close_db
from ibc.db.base import utcnow
from ibc.db.models import Payout
from ibc.wallet import ledger
from ibc.wallet.provider import DisabledProvider, ProviderResult
from ibc.workers.payout_worker import PayoutWorkerSettings, payout_shutdown, payout_startup, reconcile_payouts
from tests.conftest import ALICE, FakeProvider

INSTANT = parse_game_config({"autoApproveThreshold": "0"})


async def _in_flight_withdrawal(db, provider_ref: str) -> str:
    """A withdrawal the provider accepted but has not confirmed yet."""
    await ledger.credit(db, ALICE, 1000, "achievement", INSTANT)
    reservation = await ledger.reserve_for_withdrawal(
        db, ALICE, 400, INSTANT, lightning_address="alice@wallet.example"
    )
    await db.commit()

    await db.execute(
        update(Payout)
        .where(Payout.id == reservation.payout_id)
        .values(attempted_at=utcnow(), provider_ref=provider_ref)
    )
    await db.commit()
    return reservation.payout_id


class TestReconcileTask:
    """reconcile_payouts cron task."""

    @pytest.mark.asyncio
    async def test_settles_confirmed_payments(self, db_session) -> None:
        await _in_flight_withdrawal(db_session, "lnbc-confirmed")
        provider = FakeProvider()
        provider.lookups["lnbc-confirmed"] = ProviderResult(status="paid", provider_ref="lnbc-confirmed")

        result = await reconcile_payouts({"provider": provider})

        assert result == {"processed": 1, "succeeded": 1, "failed": 0, "pending": 0}
        balance = await ledger.get_balance(db_session, ALICE)
        assert (balance.available, balance.pending, balance.lifetime_withdrawn) == (600, 0, 400)

    @pytest.mark.asyncio
    async def test_lookup_errors_leave_payout_pending(self, db_session) -> None:
        await _in_flight_withdrawal(db_session, "lnbc-unknown")

        result = await reconcile_payouts({"provider": FakeProvider()})

        assert result["pending"] == 1
        balance = await ledger.get_balance(db_session, ALICE)
        assert balance.pending == 400

    @pytest.mark.asyncio
    async def test_disabled_provider_is_a_no_op(self, db_session) -> None:
        await _in_flight_withdrawal(db_session, "lnbc-any")

        result = await reconcile_payouts({"provider": DisabledProvider()})

        assert result["processed"] == 0

    @pytest.mark.asyncio
    async def test_queued_withdrawals_are_left_for_review(self, db_session) -> None:
        """Withdrawals never sent to the provider are not touched by reconciliation."""
        await ledger.credit(db_session, ALICE, 1000, "achievement", INSTANT)
        await ledger.reserve_for_withdrawal(db_session, ALICE, 400, INSTANT, lightning_address="a@wallet.example")
        await db_session.commit()

        result = await reconcile_payouts({"provider": FakeProvider()})

        assert result["processed"] == 0


class TestWorkerLifecycle:
    @pytest.mark.asyncio
    async def test_startup_and_shutdown(self) -> None:
        ctx: dict = {}
        await payout_startup(ctx)
        try:
            assert isinstance(ctx["provider"], DisabledProvider)
        finally:
            await payout_shutdown(ctx)
            await close_db()

    def test_settings_schedule_reconciliation(self) -> None:
        assert PayoutWorkerSettings.functions == [reconcile_payouts]
        assert len(PayoutWorkerSettings.cron_jobs) == 1
        assert PayoutWorkerSettings.max_jobs == 1
