"""Answer grading, streak rewards, and level-unlock decisions.

Everything here is pure: the session service gathers the inputs inside its
transaction and persists the returned ``GradeResult``.
"""

from __future__ import annotations

from dataclasses import dataclass

from ibc.admin.game_config import GameConfig
from ibc.trivia.question_bank import Question


@dataclass(frozen=True)
class ProgressSnapshot:
    current_level: int
    current_streak: int
    best_streak: int


@dataclass(frozen=True)
class SessionTally:
    """Session state before this answer is applied."""

    level: int
    size: int
    answered: int
    correct: int


@dataclass(frozen=True)
class GradeResult:
    correct: bool
    sats_earned: int
    new_streak: int
    session_complete: bool
    level_completed: bool
    level_unlocked: bool
    new_level: int


def streak_bonus(streak: int, step: int, cap: int) -> int:
    """Bonus sats for the ``streak``-th consecutive correct answer.

    Zero for the first answer of a streak, then grows by ``step`` per answer,
    never exceeding ``cap``.
    """
    if streak <= 1:
        return 0
    return min((streak - 1) * step, cap)


def evaluate(
    question: Question,
    answer_index: int,
    prior: ProgressSnapshot,
    tally: SessionTally,
    config: GameConfig,
    max_level: int,
) -> GradeResult:
    """Grade one answer against the prior progress and the session so far.

    A level is completed only when every question of a session at the user's
    current level was answered correctly; correct answers spread across
    sessions never add up to an unlock.
    """
    correct = answer_index == question.correct_index

    if correct:
        new_streak = prior.current_streak + 1
        sats = config.rewards.for_difficulty(question.difficulty) + streak_bonus(
            new_streak, config.streak_bonus_step, config.rate_limits.max_streak_bonus
        )
    else:
        new_streak = 0
        sats = 0

    answered = tally.answered + 1
    correct_in_session = tally.correct + (1 if correct else 0)
    session_complete = answered >= tally.size
    level_completed = (
        session_complete
        and correct_in_session == tally.size
        and tally.level == prior.current_level
    )

    new_level = prior.current_level
    if level_completed:
        new_level = min(prior.current_level + 1, max_level)

    return GradeResult(
        correct=correct,
        sats_earned=sats,
        new_streak=new_streak,
        session_complete=session_complete,
        level_completed=level_completed,
        level_unlocked=new_level > prior.current_level,
        new_level=new_level,
    )
