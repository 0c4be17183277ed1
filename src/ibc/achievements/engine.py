"""Achievement trigger engine: evaluates game events against definitions."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ibc.achievements.service import award_achievement
from ibc.admin.game_config import GameConfig
from ibc.db.models import AchievementDefinition

TRIVIA_CORRECT = "trivia:correct"
TRIVIA_WRONG = "trivia:wrong"
TRIVIA_LEVEL_UP = "trivia:level-up"
TRIVIA_SESSION_COMPLETE = "trivia:session-complete"

GAME_EVENTS = frozenset({TRIVIA_CORRECT, TRIVIA_WRONG, TRIVIA_LEVEL_UP, TRIVIA_SESSION_COMPLETE})


def condition_met(definition: AchievementDefinition, payload: Mapping[str, object]) -> bool:
    """Whether an event payload satisfies a definition's numeric condition."""
    value = payload.get(definition.field)
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    if definition.operator == "gte":
        return value >= definition.threshold
    if definition.operator == "eq":
        return value == definition.threshold
    return False


class AchievementEngine:
    """Evaluates achievement definitions for game events within one unit of work."""

    def __init__(self, db: AsyncSession, config: GameConfig) -> None:
        self.db = db
        self.config = config
        self._by_event: dict[str, list[AchievementDefinition]] | None = None

    async def _load_definitions(self) -> dict[str, list[AchievementDefinition]]:
        """Load and cache active definitions grouped by event."""
        if self._by_event is None:
            result = await self.db.execute(
                select(AchievementDefinition)
                .where(AchievementDefinition.active.is_(True))
                .order_by(AchievementDefinition.sort_order)
            )
            self._by_event = {}
            for definition in result.scalars():
                self._by_event.setdefault(definition.event, []).append(definition)
        return self._by_event

    async def evaluate(
        self,
        user_id: str,
        event: str,
        payload: Mapping[str, object],
        *,
        now: datetime | None = None,
    ) -> list[str]:
        """Unlock every definition ``event`` satisfies.

        Returns the achievement types newly unlocked (may be empty).
        """
        if event not in GAME_EVENTS:
            msg = f"Unknown game event: {event}"
            raise ValueError(msg)

        definitions = await self._load_definitions()
        unlocked: list[str] = []
        for definition in definitions.get(event, []):
            if not condition_met(definition, payload):
                continue
            if await award_achievement(self.db, self.config, user_id, definition, now=now):
                unlocked.append(definition.type)
        return unlocked
