"""Typed game configuration parsed from the admin key/value store.

The ``config`` table stores every value as a string. ``parse_game_config`` is a
total function over that mapping: each known key has a documented default,
unknown keys and malformed values raise ``ConfigError`` instead of silently
falling back. Each request loads a fresh, frozen ``GameConfig`` snapshot, so an
admin update never changes the values an in-flight operation already read.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.db.models import ConfigEntry
from ibc.errors import ConfigError

# key -> (kind, default). Kinds: "int" (>= 0), "pos" (> 0), "bool", "pubkeys".
CONFIG_SCHEMA: dict[str, tuple[str, str]] = {
    "maxDailyPayout": ("pos", "10000"),
    "maxPayoutPerUser": ("pos", "5000"),
    "minWithdrawal": ("pos", "100"),
    "withdrawalFee": ("int", "0"),
    "triviaEasy": ("int", "10"),
    "triviaMedium": ("int", "25"),
    "triviaHard": ("int", "50"),
    "dailyChallenge": ("int", "100"),
    "achievementBonus": ("int", "50"),
    "referralBonus": ("int", "100"),
    "triviaPerHour": ("pos", "10"),
    "withdrawalsPerDay": ("pos", "5"),
    "maxStreakBonus": ("int", "500"),
    "streakBonusStep": ("int", "5"),
    "autoApprove": ("bool", "true"),
    "autoApproveThreshold": ("int", "1000"),
    "maintenanceMode": ("bool", "false"),
    "stackerReward": ("pos", "5"),
    "stackerDailyLimit": ("pos", "10"),
    "satoshiStacker": ("bool", "true"),
    "adminPubkeys": ("pubkeys", "[]"),
}

DEFAULT_CONFIG: dict[str, str] = {key: default for key, (_, default) in CONFIG_SCHEMA.items()}

_PUBKEY_RE = re.compile(r"^[0-9a-f]{64}$")


class GameRewards(BaseModel):
    model_config = ConfigDict(frozen=True)

    trivia_easy: int
    trivia_medium: int
    trivia_hard: int
    daily_challenge: int
    achievement_bonus: int
    referral_bonus: int

    def for_difficulty(self, difficulty: str) -> int:
        """Base reward for a question difficulty."""
        if difficulty == "easy":
            return self.trivia_easy
        if difficulty == "medium":
            return self.trivia_medium
        if difficulty == "hard":
            return self.trivia_hard
        msg = f"Unknown difficulty: {difficulty}"
        raise ConfigError(msg)


class RateLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    trivia_per_hour: int
    withdrawals_per_day: int
    max_streak_bonus: int


class GameConfig(BaseModel):
    """Immutable configuration snapshot."""

    model_config = ConfigDict(frozen=True)

    version: str
    max_daily_payout: int
    max_payout_per_user: int
    min_withdrawal: int
    withdrawal_fee: int
    rewards: GameRewards
    rate_limits: RateLimits
    streak_bonus_step: int
    auto_approve: bool
    auto_approve_threshold: int
    maintenance_mode: bool
    stacker_reward: int
    stacker_daily_limit: int
    satoshi_stacker: bool
    admin_pubkeys: tuple[str, ...]

    def holds_credit(self, amount: int) -> bool:
        """Whether a reward credit of ``amount`` needs admin approval."""
        return self.auto_approve_threshold > 0 and amount > self.auto_approve_threshold

    def sends_immediately(self, amount: int) -> bool:
        """Whether a withdrawal of ``amount`` goes to the provider without review."""
        if not self.auto_approve:
            return False
        return self.auto_approve_threshold == 0 or amount <= self.auto_approve_threshold


def _parse_value(key: str, kind: str, raw: str) -> int | bool | tuple[str, ...]:
    raw = raw.strip()
    if kind in ("int", "pos"):
        try:
            value = int(raw)
        except ValueError as e:
            msg = f"{key} must be an integer, got {raw!r}"
            raise ConfigError(msg) from e
        if value < 0 or (kind == "pos" and value == 0):
            msg = f"{key} must be {'positive' if kind == 'pos' else 'non-negative'}, got {value}"
            raise ConfigError(msg)
        return value
    if kind == "bool":
        if raw not in ("true", "false"):
            msg = f"{key} must be 'true' or 'false', got {raw!r}"
            raise ConfigError(msg)
        return raw == "true"
    if kind == "pubkeys":
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            msg = f"{key} must be a JSON array of hex pubkeys"
            raise ConfigError(msg) from e
        if not isinstance(items, list) or not all(isinstance(i, str) and _PUBKEY_RE.match(i) for i in items):
            msg = f"{key} must be a JSON array of 64-char lowercase hex pubkeys"
            raise ConfigError(msg)
        return tuple(items)
    msg = f"Unknown config kind for {key}: {kind}"
    raise ConfigError(msg)


def _version(raw: Mapping[str, str]) -> str:
    payload = json.dumps(dict(sorted(raw.items())), separators=(",", ":"))
    return hashlib.sha256(payload.encode()).hexdigest()[:12]


def parse_game_config(raw: Mapping[str, str]) -> GameConfig:
    """Parse stored key/value pairs into a ``GameConfig``.

    Missing keys take their default. Raises ``ConfigError`` on unknown keys or
    invalid values.
    """
    unknown = sorted(set(raw) - set(CONFIG_SCHEMA))
    if unknown:
        msg = f"Unknown config keys: {', '.join(unknown)}"
        raise ConfigError(msg)

    merged = {**DEFAULT_CONFIG, **raw}
    v = {key: _parse_value(key, kind, merged[key]) for key, (kind, _) in CONFIG_SCHEMA.items()}

    return GameConfig(
        version=_version(merged),
        max_daily_payout=v["maxDailyPayout"],
        max_payout_per_user=v["maxPayoutPerUser"],
        min_withdrawal=v["minWithdrawal"],
        withdrawal_fee=v["withdrawalFee"],
        rewards=GameRewards(
            trivia_easy=v["triviaEasy"],
            trivia_medium=v["triviaMedium"],
            trivia_hard=v["triviaHard"],
            daily_challenge=v["dailyChallenge"],
            achievement_bonus=v["achievementBonus"],
            referral_bonus=v["referralBonus"],
        ),
        rate_limits=RateLimits(
            trivia_per_hour=v["triviaPerHour"],
            withdrawals_per_day=v["withdrawalsPerDay"],
            max_streak_bonus=v["maxStreakBonus"],
        ),
        streak_bonus_step=v["streakBonusStep"],
        auto_approve=v["autoApprove"],
        auto_approve_threshold=v["autoApproveThreshold"],
        maintenance_mode=v["maintenanceMode"],
        stacker_reward=v["stackerReward"],
        stacker_daily_limit=v["stackerDailyLimit"],
        satoshi_stacker=v["satoshiStacker"],
        admin_pubkeys=v["adminPubkeys"],
    )


def typed_values(raw: Mapping[str, str]) -> dict[str, object]:
    """Stored values merged over defaults, as JSON-friendly ints, bools and lists."""
    merged = {**DEFAULT_CONFIG, **raw}
    out: dict[str, object] = {}
    for key, (kind, _) in CONFIG_SCHEMA.items():
        value = _parse_value(key, kind, merged[key])
        out[key] = list(value) if isinstance(value, tuple) else value
    return out


def normalize_update(updates: Mapping[str, object]) -> dict[str, str]:
    """Convert a JSON update body to stored strings (booleans as true/false, lists as JSON)."""
    out: dict[str, str] = {}
    for key, value in updates.items():
        if isinstance(value, bool):
            out[key] = "true" if value else "false"
        elif isinstance(value, str):
            out[key] = value
        else:
            out[key] = json.dumps(value)
    return out


async def read_raw_config(db: AsyncSession) -> dict[str, str]:
    result = await db.execute(select(ConfigEntry.key, ConfigEntry.value))
    return {row.key: row.value for row in result}


async def load_game_config(db: AsyncSession) -> GameConfig:
    """Load a fresh config snapshot from the store."""
    return parse_game_config(await read_raw_config(db))


async def update_game_config(db: AsyncSession, updates: Mapping[str, object]) -> GameConfig:
    """Validate and persist a partial update. Nothing is written if any value is invalid."""
    normalized = normalize_update(updates)
    current = await read_raw_config(db)
    config = parse_game_config({**current, **normalized})

    now = datetime.now(timezone.utc)
    for key, value in normalized.items():
        entry = await db.get(ConfigEntry, key)
        if entry is None:
            db.add(ConfigEntry(key=key, value=value, updated_at=now))
        else:
            entry.value = value
            entry.updated_at = now
    await db.flush()
    return config


async def reset_game_config(db: AsyncSession) -> GameConfig:
    """Replace the store contents with the defaults."""
    await db.execute(delete(ConfigEntry))
    now = datetime.now(timezone.utc)
    for key, value in DEFAULT_CONFIG.items():
        db.add(ConfigEntry(key=key, value=value, updated_at=now))
    await db.flush()
    return parse_game_config(DEFAULT_CONFIG)
