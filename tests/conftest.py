"""Shared test fixtures.

Tests run against a throwaway SQLite file (aiosqlite) and an in-memory
fakeredis, so no external services are needed.
"""

from __future__ import annotations

import asyncio
import base64
import json
import time
from collections.abc import AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio
from coincurve import PrivateKey, PublicKeyXOnly
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from ibc import dependencies
from ibc.admin.game_config import update_game_config
from ibc.auth.nip98 import HTTP_AUTH_KIND, event_id
from ibc.config import get_settings
from ibc.database import close_db, get_engine, get_session_factory, init_db
from ibc.db.base import Base
from ibc.db.models import TriviaQuestion
from ibc.main import create_app
from ibc.ratelimit import RateLimiter
from ibc.redis_client import set_redis
from ibc.wallet.provider import PaymentProvider, ProviderError, ProviderResult

ALICE_SECRET = bytes.fromhex("11" * 32)
BOB_SECRET = bytes.fromhex("22" * 32)
ADMIN_SECRET = bytes.fromhex("33" * 32)


def pubkey_of(secret: bytes) -> str:
    return PublicKeyXOnly.from_secret(secret).format().hex()


ALICE = pubkey_of(ALICE_SECRET)
BOB = pubkey_of(BOB_SECRET)
ADMIN = pubkey_of(ADMIN_SECRET)


def nip98_header(
    secret: bytes, method: str, url: str, created_at: int | None = None, kind: int = HTTP_AUTH_KIND
) -> str:
    """Build a signed ``Authorization: Nostr ...`` header value."""
    pubkey = pubkey_of(secret)
    created_at = int(time.time()) if created_at is None else created_at
    tags = [["u", url], ["method", method]]
    eid = event_id(pubkey, created_at, kind, tags, "")
    sig = PrivateKey(secret).sign_schnorr(bytes.fromhex(eid))
    event = {
        "id": eid,
        "pubkey": pubkey,
        "created_at": created_at,
        "kind": kind,
        "tags": tags,
        "content": "",
        "sig": sig.hex(),
    }
    return "Nostr " + base64.b64encode(json.dumps(event).encode()).decode()


class FakeProvider(PaymentProvider):
    """Scripted payment provider: returns queued results in order, then ``default``."""

    def __init__(self, default: ProviderResult | None = None) -> None:
        self.default = default or ProviderResult(status="paid", provider_ref="lnbc-fake")
        self.results: list[ProviderResult | Exception] = []
        self.lookups: dict[str, ProviderResult] = {}
        self.sent: list[tuple[str, int]] = []
        self.delay = 0.0

    async def send(self, lightning_address: str, amount_sats: int, memo: str) -> ProviderResult:
        self.sent.append((lightning_address, amount_sats))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.results.pop(0) if self.results else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def lookup(self, provider_ref: str) -> ProviderResult:
        if provider_ref not in self.lookups:
            msg = f"unknown ref {provider_ref}"
            raise ProviderError(msg)
        return self.lookups[provider_ref]


@pytest.fixture(autouse=True)
def test_settings(tmp_path, monkeypatch):
    """Point settings at a per-test SQLite file and reset cached settings."""
    monkeypatch.setenv("IBC_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'ibc_test.db'}")
    monkeypatch.setenv("IBC_REDIS_URL", "redis://localhost:6379/15")
    monkeypatch.setenv("IBC_LOG_FORMAT", "console")
    monkeypatch.setenv("IBC_PAYMENT_PROVIDER", "disabled")
    monkeypatch.setenv("IBC_PROVIDER_TIMEOUT_SECONDS", "0.5")
    monkeypatch.setenv("IBC_RATE_LIMIT_REQUESTS", "1000")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def database(test_settings) -> AsyncGenerator[None, None]:
    """Initialize the engine and create every table."""
    await init_db(test_settings.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """A direct session for service calls and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def session_factory(database):
    """Factory for extra sessions (concurrency tests need one per task)."""
    return get_session_factory()


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    set_redis(client)
    yield client
    await client.flushall()
    await client.aclose()
    set_redis(None)


@pytest_asyncio.fixture
async def limiter(redis_client) -> RateLimiter:
    return RateLimiter(redis_client)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest_asyncio.fixture
async def questions(db_session: AsyncSession) -> list[TriviaQuestion]:
    """Two easy level-1 questions and two medium level-2 questions."""
    rows = [
        TriviaQuestion(
            prompt="What is the smallest unit of bitcoin?", options=["Satoshi", "Bit", "Finney", "Wei"],
            correct_index=0, explanation="One bitcoin is 100,000,000 satoshis.",
            difficulty="easy", category="basics", level=1,
        ),
        TriviaQuestion(
            prompt="Who created Bitcoin?",
            options=["Hal Finney", "Satoshi Nakamoto", "Nick Szabo", "Adam Back"],
            correct_index=1, explanation="The whitepaper was published under the name Satoshi Nakamoto.",
            difficulty="easy", category="history", level=1,
        ),
        TriviaQuestion(
            prompt="What is the maximum supply of bitcoin?",
            options=["21 million", "18 million", "100 million", "Unlimited"],
            correct_index=0, explanation="The issuance schedule converges to 21 million BTC.",
            difficulty="medium", category="basics", level=2,
        ),
        TriviaQuestion(
            prompt="How often does the block subsidy halve?",
            options=["Every 100,000 blocks", "Every 210,000 blocks", "Every year", "Never"],
            correct_index=1, explanation="The subsidy halves every 210,000 blocks.",
            difficulty="medium", category="technical", level=2,
        ),
    ]
    db_session.add_all(rows)
    await db_session.commit()
    return rows


@pytest.fixture
def small_sessions(monkeypatch):
    """Two questions per session, matching the ``questions`` fixture's level pools."""
    monkeypatch.setenv("IBC_TRIVIA_QUESTIONS_PER_SESSION", "2")
    get_settings.cache_clear()


async def set_config(db: AsyncSession, **values: object) -> None:
    """Persist game-config overrides for a test."""
    await update_game_config(db, values)
    await db.commit()


class SignedClient:
    """Thin wrapper that signs every request with NIP-98 for a given key."""

    def __init__(self, client: AsyncClient, secret: bytes) -> None:
        self.client = client
        self.secret = secret

    def _headers(self, method: str, path: str) -> dict[str, str]:
        url = f"{self.client.base_url}".rstrip("/") + path
        return {"Authorization": nip98_header(self.secret, method, url)}

    async def get(self, path: str, **kwargs):
        return await self.client.get(path, headers=self._headers("GET", path), **kwargs)

    async def post(self, path: str, **kwargs):
        return await self.client.post(path, headers=self._headers("POST", path), **kwargs)

    async def delete(self, path: str, **kwargs):
        return await self.client.delete(path, headers=self._headers("DELETE", path), **kwargs)


@pytest_asyncio.fixture
async def client(database, redis_client, provider) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the ASGI app with the fake provider installed."""
    app = create_app()
    app.dependency_overrides[dependencies.get_payment_provider] = lambda: provider
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def alice(client) -> SignedClient:
    return SignedClient(client, ALICE_SECRET)


@pytest.fixture
def bob(client) -> SignedClient:
    return SignedClient(client, BOB_SECRET)


@pytest_asyncio.fixture
async def admin(client, db_session) -> SignedClient:
    await set_config(db_session, adminPubkeys=[ADMIN])
    return SignedClient(client, ADMIN_SECRET)

