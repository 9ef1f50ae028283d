"""
Scheduling, reward and session constants.

Static values only. Runtime configuration lives on the pydantic config models
next to the classes that use them (SM2SchedulerConfig, EngineConfig).
"""
from typing import Dict, Tuple

# --- SM-2 scheduling ---
DEFAULT_EASE_FACTOR: float = 2.5
MIN_EASE_FACTOR: float = 1.3
MIN_QUALITY: int = 0
MAX_QUALITY: int = 5
# Ratings below this are a lapse (repetitions and interval reset).
PASSING_QUALITY: int = 3
FIRST_INTERVAL_DAYS: int = 1
SECOND_INTERVAL_DAYS: int = 6
# Status thresholds: repetitions <= LEARNING_MAX_REPETITIONS is "learning";
# a card is "mastered" once past REVIEWING_MAX_REPETITIONS with an interval of
# at least MASTERY_INTERVAL_DAYS.
LEARNING_MAX_REPETITIONS: int = 2
REVIEWING_MAX_REPETITIONS: int = 5
MASTERY_INTERVAL_DAYS: int = 21

# Quality fed to the scheduler for a plain correct/incorrect answer.
QUALITY_CORRECT: int = 4
QUALITY_INCORRECT: int = 2

# --- Rewards ---
# Base XP per correct answer, keyed by deck difficulty tier (CEFR levels).
BASE_XP_BY_DIFFICULTY: Dict[str, int] = {
    "A1": 5,
    "A2": 8,
    "B1": 12,
    "B2": 15,
    "C1": 20,
    "C2": 25,
}
DEFAULT_DIFFICULTY: str = "A2"
STREAK_BONUS_PER_ANSWER: float = 0.1
MAX_STREAK_MULTIPLIER: float = 2.5
HINT_COST_XP: int = 20

# --- User levels ---
STARTING_LEVEL: int = 1
STARTING_NEXT_LEVEL_XP: int = 100
LEVEL_XP_GROWTH: float = 1.2

# --- Session engine ---
AUTOSAVE_INTERVAL_SECONDS: float = 30.0
# Longest time a single card viewing may contribute to active study time.
MAX_CARD_SECONDS: float = 300.0

SELECTION_METHODS: Tuple[str, ...] = ("random", "smart", "manual", "all")
GUEST_SELECTION_METHODS: Tuple[str, ...] = ("random", "all")
