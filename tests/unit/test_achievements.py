"""Achievement condition matching."""

from __future__ import annotations

import pytest

from ibc.achievements.engine import condition_met
from ibc.achievements.service import reward_for
from ibc.admin.game_config import parse_game_config
from ibc.db.models import AchievementDefinition


def definition(operator: str = "gte", threshold: int = 5, reward: int | None = None) -> AchievementDefinition:
    return AchievementDefinition(
        type="streak_5",
        name="5 Streak",
        description="",
        event="trivia:correct",
        field="streak",
        operator=operator,
        threshold=threshold,
        reward=reward,
    )


class TestConditionMet:
    @pytest.mark.parametrize(("streak", "expected"), [(4, False), (5, True), (12, True)])
    def test_gte(self, streak, expected):
        assert condition_met(definition(), {"streak": streak}) is expected

    @pytest.mark.parametrize(("streak", "expected"), [(4, False), (5, True), (6, False)])
    def test_eq(self, streak, expected):
        assert condition_met(definition(operator="eq"), {"streak": streak}) is expected

    def test_missing_field(self):
        assert condition_met(definition(), {"newLevel": 9}) is False

    @pytest.mark.parametrize("value", ["7", 7.0, True, None])
    def test_non_integer_values_never_match(self, value):
        assert condition_met(definition(threshold=1), {"streak": value}) is False

    def test_unknown_operator(self):
        assert condition_met(definition(operator="lt"), {"streak": 1}) is False


class TestRewardFor:
    def test_explicit_reward(self):
        assert reward_for(definition(reward=25), parse_game_config({})) == 25

    def test_zero_reward_is_kept(self):
        assert reward_for(definition(reward=0), parse_game_config({"achievementBonus": "80"})) == 0

    def test_unset_reward_pays_configured_bonus(self):
        assert reward_for(definition(), parse_game_config({"achievementBonus": "80"})) == 80
