"""
XP rewards for answers, the hint cost, and account level progression.
"""

import math
from typing import Tuple, Union

from .constants import (
    BASE_XP_BY_DIFFICULTY,
    HINT_COST_XP,
    LEVEL_XP_GROWTH,
    MAX_STREAK_MULTIPLIER,
    STREAK_BONUS_PER_ANSWER,
)
from .models import Difficulty, UserTotals


def base_reward(difficulty: Union[Difficulty, str]) -> int:
    key = difficulty.value if isinstance(difficulty, Difficulty) else str(difficulty)
    try:
        return BASE_XP_BY_DIFFICULTY[key]
    except KeyError:
        raise ValueError(
            f"Unknown difficulty '{key}'. Expected one of {sorted(BASE_XP_BY_DIFFICULTY)}."
        ) from None


def streak_multiplier(streak: int) -> float:
    """1.0 plus 0.1 per answer already in the streak, capped at 2.5."""
    if streak < 0:
        raise ValueError(f"Streak cannot be negative: {streak}")
    return min(1 + streak * STREAK_BONUS_PER_ANSWER, MAX_STREAK_MULTIPLIER)


def calculate_xp(
    is_correct: bool, streak: int, difficulty: Union[Difficulty, str]
) -> int:
    """
    XP for a single answer.

    Args:
        is_correct: Whether the answer was correct. Incorrect answers earn 0.
        streak: Streak before this answer is counted.
        difficulty: Deck difficulty tier.

    Returns:
        floor(base reward * streak multiplier) for a correct answer, else 0.
    """
    if not is_correct:
        return 0
    return math.floor(base_reward(difficulty) * streak_multiplier(streak))


def apply_hint_cost(session_xp: int, cost: int = HINT_COST_XP) -> int:
    """Session XP after paying for a hint; never below zero."""
    return max(0, session_xp - cost)


def add_xp(totals: UserTotals, xp: int) -> Tuple[UserTotals, bool]:
    """
    Add XP to a user's totals, levelling up as many times as the XP allows.

    Each level costs the current threshold; the next threshold grows by 20%
    (rounded down).

    Returns:
        (new_totals, leveled_up)
    """
    if xp <= 0:
        return totals, False

    level = totals.level
    current_xp = totals.current_xp + xp
    next_level_xp = totals.next_level_xp
    while current_xp >= next_level_xp:
        current_xp -= next_level_xp
        level += 1
        next_level_xp = math.floor(next_level_xp * LEVEL_XP_GROWTH)

    updated = UserTotals(
        level=level,
        current_xp=current_xp,
        next_level_xp=next_level_xp,
        total_xp=totals.total_xp + xp,
    )
    return updated, level > totals.level
