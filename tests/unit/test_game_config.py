"""Game config parsing: defaults, validation, immutability, versioning."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ibc.admin.game_config import (
    DEFAULT_CONFIG,
    normalize_update,
    parse_game_config,
    typed_values,
)
from ibc.errors import ConfigError


class TestDefaults:
    def test_empty_store_uses_documented_defaults(self):
        config = parse_game_config({})
        assert config.max_daily_payout == 10000
        assert config.max_payout_per_user == 5000
        assert config.min_withdrawal == 100
        assert config.withdrawal_fee == 0
        assert config.rewards.trivia_easy == 10
        assert config.rewards.trivia_medium == 25
        assert config.rewards.trivia_hard == 50
        assert config.rewards.achievement_bonus == 50
        assert config.rewards.referral_bonus == 100
        assert config.rate_limits.trivia_per_hour == 10
        assert config.rate_limits.withdrawals_per_day == 5
        assert config.rate_limits.max_streak_bonus == 500
        assert config.auto_approve is True
        assert config.auto_approve_threshold == 1000
        assert config.maintenance_mode is False
        assert config.admin_pubkeys == ()

    def test_stored_values_override_defaults(self):
        config = parse_game_config({"minWithdrawal": "250", "maintenanceMode": "true"})
        assert config.min_withdrawal == 250
        assert config.maintenance_mode is True


class TestValidation:
    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigError, match="Unknown config keys"):
            parse_game_config({"btcPayApiKey": "secret"})

    @pytest.mark.parametrize("value", ["abc", "1.5", ""])
    def test_non_integer_rejected(self, value):
        with pytest.raises(ConfigError):
            parse_game_config({"triviaEasy": value})

    def test_negative_rejected(self):
        with pytest.raises(ConfigError, match="non-negative"):
            parse_game_config({"withdrawalFee": "-1"})

    @pytest.mark.parametrize("key", ["maxDailyPayout", "minWithdrawal", "triviaPerHour", "withdrawalsPerDay"])
    def test_limits_must_be_positive(self, key):
        with pytest.raises(ConfigError, match="positive"):
            parse_game_config({key: "0"})

    @pytest.mark.parametrize("value", ["yes", "1", "True"])
    def test_booleans_are_strict(self, value):
        with pytest.raises(ConfigError):
            parse_game_config({"autoApprove": value})

    def test_admin_pubkeys_must_be_hex(self):
        with pytest.raises(ConfigError):
            parse_game_config({"adminPubkeys": '["npub1notahexkey"]'})

    def test_admin_pubkeys_parsed(self):
        key = "ab" * 32
        config = parse_game_config({"adminPubkeys": f'["{key}"]'})
        assert config.admin_pubkeys == (key,)


class TestSnapshot:
    def test_frozen(self):
        config = parse_game_config({})
        with pytest.raises(ValidationError):
            config.min_withdrawal = 1  # type: ignore[misc]

    def test_version_tracks_content(self):
        a = parse_game_config({})
        b = parse_game_config(dict(DEFAULT_CONFIG))
        c = parse_game_config({"triviaEasy": "11"})
        assert a.version == b.version
        assert a.version != c.version


class TestApprovalRules:
    def test_small_credit_not_held(self):
        config = parse_game_config({"autoApproveThreshold": "1000"})
        assert config.holds_credit(1000) is False
        assert config.holds_credit(1001) is True

    def test_zero_threshold_never_holds(self):
        config = parse_game_config({"autoApproveThreshold": "0"})
        assert config.holds_credit(10**9) is False
        assert config.sends_immediately(10**9) is True

    def test_auto_approve_off_queues_everything(self):
        config = parse_game_config({"autoApprove": "false"})
        assert config.sends_immediately(1) is False


class TestHelpers:
    def test_normalize_update(self):
        assert normalize_update({"autoApprove": False, "triviaEasy": 12, "adminPubkeys": []}) == {
            "autoApprove": "false",
            "triviaEasy": "12",
            "adminPubkeys": "[]",
        }

    def test_typed_values(self):
        values = typed_values({"triviaEasy": "12"})
        assert values["triviaEasy"] == 12
        assert values["autoApprove"] is True
        assert values["adminPubkeys"] == []
