"""Integration tests for the wallet API endpoints."""

from __future__ import annotations

import pytest

from ibc.admin.game_config import parse_game_config
from ibc.wallet import ledger
from ibc.wallet.provider import ProviderResult
from tests.conftest import ALICE, BOB, SignedClient, set_config


async def fund(db, user_id: str, amount: int) -> None:
    await ledger.credit(db, user_id, amount, "achievement", parse_game_config({"autoApproveThreshold": "0"}))
    await db.commit()


@pytest.mark.asyncio
class TestBalance:
    """GET /api/wallet/balance."""

    async def test_new_user_has_zero_balance(self, alice: SignedClient):
        response = await alice.get("/api/wallet/balance")
        assert response.status_code == 200
        data = response.json()
        assert data["pubkey"] == ALICE
        assert data["balance"] == 0
        assert data["pendingBalance"] == 0
        assert data["totalEarned"] == 0
        assert data["totalWithdrawn"] == 0
        assert "lastActivity" in data

    async def test_requires_auth(self, client):
        response = await client.get("/api/wallet/balance")
        assert response.status_code == 401


@pytest.mark.asyncio
class TestWithdraw:
    """POST /api/wallet/withdraw."""

    async def test_paid_withdrawal(self, alice: SignedClient, db_session, provider):
        await fund(db_session, ALICE, 1000)

        response = await alice.post(
            "/api/wallet/withdraw", json={"amount": 400, "lightningAddress": "alice@wallet.example"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "paid"
        assert data["amount"] == 400
        assert data["fee"] == 0
        assert provider.sent == [("alice@wallet.example", 400)]

        balance = (await alice.get("/api/wallet/balance")).json()
        assert balance["balance"] == 600
        assert balance["totalWithdrawn"] == 400

    async def test_provider_rejection_returns_502_and_refunds(self, alice: SignedClient, db_session, provider):
        await fund(db_session, ALICE, 1000)
        provider.results.append(ProviderResult(status="failed", error="Route not found"))

        response = await alice.post(
            "/api/wallet/withdraw", json={"amount": 400, "lightningAddress": "alice@wallet.example"}
        )
        assert response.status_code == 502
        assert response.json() == {"detail": "Route not found", "code": "provider_failure"}

        balance = (await alice.get("/api/wallet/balance")).json()
        assert balance["balance"] == 1000
        assert balance["pendingBalance"] == 0

    async def test_large_withdrawal_is_queued(self, alice: SignedClient, db_session, provider):
        await fund(db_session, ALICE, 3000)

        response = await alice.post(
            "/api/wallet/withdraw", json={"amount": 2000, "lightningAddress": "alice@wallet.example"}
        )
        assert response.json()["status"] == "pending"
        assert provider.sent == []

        balance = (await alice.get("/api/wallet/balance")).json()
        assert balance["balance"] == 1000
        assert balance["pendingBalance"] == 2000

    async def test_below_minimum(self, alice: SignedClient, db_session):
        await fund(db_session, ALICE, 1000)
        response = await alice.post(
            "/api/wallet/withdraw", json={"amount": 50, "lightningAddress": "alice@wallet.example"}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "below_minimum"

    @pytest.mark.parametrize("amount", [0, -100])
    async def test_non_positive_amount(self, alice: SignedClient, database, amount):
        response = await alice.post(
            "/api/wallet/withdraw", json={"amount": amount, "lightningAddress": "alice@wallet.example"}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_amount"

    async def test_insufficient_balance(self, alice: SignedClient, db_session):
        await fund(db_session, ALICE, 200)
        response = await alice.post(
            "/api/wallet/withdraw", json={"amount": 500, "lightningAddress": "alice@wallet.example"}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "insufficient_balance"

    async def test_invalid_lightning_address(self, alice: SignedClient, db_session):
        await fund(db_session, ALICE, 1000)
        response = await alice.post("/api/wallet/withdraw", json={"amount": 200, "lightningAddress": "nope"})
        assert response.status_code == 400
        assert response.json()["code"] == "validation_failed"

    async def test_daily_cap_sets_retry_after(self, alice: SignedClient, db_session):
        await fund(db_session, ALICE, 2000)
        await set_config(db_session, maxPayoutPerUser=500)

        first = await alice.post("/api/wallet/withdraw", json={"amount": 400, "lightningAddress": "a@wallet.example"})
        assert first.status_code == 200
        response = await alice.post(
            "/api/wallet/withdraw", json={"amount": 200, "lightningAddress": "a@wallet.example"}
        )
        assert response.status_code == 429
        assert response.json()["code"] == "payout_limit_exceeded"
        assert 0 < int(response.headers["retry-after"]) <= 86400

    async def test_maintenance_mode(self, alice: SignedClient, db_session):
        await set_config(db_session, maintenanceMode=True)
        response = await alice.post(
            "/api/wallet/withdraw", json={"amount": 200, "lightningAddress": "alice@wallet.example"}
        )
        assert response.status_code == 503
        assert response.json()["code"] == "maintenance"


@pytest.mark.asyncio
class TestPayoutHistory:
    """GET /api/wallet/payouts."""

    async def test_lists_own_payouts_newest_first(self, alice: SignedClient, db_session):
        await fund(db_session, ALICE, 1000)
        await fund(db_session, BOB, 1000)
        await alice.post("/api/wallet/withdraw", json={"amount": 300, "lightningAddress": "a@wallet.example"})

        data = (await alice.get("/api/wallet/payouts")).json()
        assert data["pagination"] == {"limit": 50, "offset": 0, "total": 2}
        assert [p["gameType"] for p in data["payouts"]] == ["withdrawal", "achievement"]
        assert all(p["userPubkey"] == ALICE for p in data["payouts"])
        assert data["payouts"][0]["txId"] == "lnbc-fake"

    async def test_pagination_and_status_filter(self, alice: SignedClient, db_session):
        for _ in range(3):
            await fund(db_session, ALICE, 100)

        data = (await alice.get("/api/wallet/payouts?limit=2&offset=2")).json()
        assert data["pagination"]["total"] == 3
        assert len(data["payouts"]) == 1

        data = (await alice.get("/api/wallet/payouts?status=pending")).json()
        assert data["payouts"] == []

    async def test_limit_out_of_range(self, alice: SignedClient, database):
        response = await alice.get("/api/wallet/payouts?limit=500")
        assert response.status_code == 422


@pytest.mark.asyncio
class TestAward:
    """POST /api/wallet/award (admin only)."""

    async def test_referral_defaults_to_configured_bonus(self, admin: SignedClient):
        response = await admin.post("/api/wallet/award", json={"userId": BOB, "kind": "referral"})
        assert response.status_code == 200
        data = response.json()
        assert data["payout"]["amount"] == 100
        assert data["payout"]["status"] == "paid"
        assert data["balance"]["balance"] == 100

    async def test_large_award_is_held(self, admin: SignedClient):
        response = await admin.post(
            "/api/wallet/award", json={"userId": BOB, "kind": "achievement", "amount": 5000}
        )
        data = response.json()
        assert data["payout"]["status"] == "pending"
        assert data["balance"]["pendingBalance"] == 5000
        assert data["balance"]["balance"] == 0

    async def test_trivia_award_needs_amount(self, admin: SignedClient):
        response = await admin.post("/api/wallet/award", json={"userId": BOB, "kind": "trivia"})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_amount"

    async def test_non_admin_is_forbidden(self, admin: SignedClient, alice: SignedClient):
        response = await alice.post("/api/wallet/award", json={"userId": ALICE, "kind": "referral"})
        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"
