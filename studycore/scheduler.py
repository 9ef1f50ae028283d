# studycore/scheduler.py

"""
Defines the BaseScheduler abstract class and the SM-2 scheduler used to
compute each card's next review.
"""

import logging
import math
from abc import ABC, abstractmethod
import datetime
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_EASE_FACTOR,
    FIRST_INTERVAL_DAYS,
    LEARNING_MAX_REPETITIONS,
    MASTERY_INTERVAL_DAYS,
    MAX_QUALITY,
    MIN_EASE_FACTOR,
    MIN_QUALITY,
    PASSING_QUALITY,
    REVIEWING_MAX_REPETITIONS,
    SECOND_INTERVAL_DAYS,
)
from .models import ReviewState, ReviewStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulerOutput:
    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: datetime.date
    status: ReviewStatus


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


class BaseScheduler(ABC):
    """
    Abstract base class for all schedulers in studycore.
    """

    @abstractmethod
    def compute_next_state(
        self, state: ReviewState, quality: int, today: datetime.date
    ) -> SchedulerOutput:
        """
        Computes the next scheduling state of a card from its current state
        and the quality of the latest recall.

        Args:
            state: The card's current review state (a fresh ReviewState for
                cards never answered before).
            quality: Recall quality, 0 (blackout) to 5 (perfect).
            today: The date the review happened on.

        Returns:
            A SchedulerOutput with the new ease, interval, repetitions,
            next review date and status.
        """
        pass


class SM2SchedulerConfig(BaseModel):
    """Configuration for the SM-2 scheduler."""

    initial_ease_factor: float = Field(default=DEFAULT_EASE_FACTOR, ge=MIN_EASE_FACTOR)
    min_ease_factor: float = Field(default=MIN_EASE_FACTOR, gt=0)
    first_interval_days: int = Field(default=FIRST_INTERVAL_DAYS, ge=1)
    second_interval_days: int = Field(default=SECOND_INTERVAL_DAYS, ge=1)
    learning_max_repetitions: int = Field(default=LEARNING_MAX_REPETITIONS, ge=0)
    reviewing_max_repetitions: int = Field(default=REVIEWING_MAX_REPETITIONS, ge=0)
    mastery_interval_days: int = Field(default=MASTERY_INTERVAL_DAYS, ge=1)


class SM2Scheduler(BaseScheduler):
    """
    SuperMemo-2 scheduler.

    Pure: the result only depends on the arguments, so calling it twice with
    the same state, quality and date gives the same output.
    """

    def __init__(self, config: Optional[SM2SchedulerConfig] = None):
        if config is None:
            config = SM2SchedulerConfig()
        self.config = config

    @staticmethod
    def clamp_quality(quality: int) -> int:
        return max(MIN_QUALITY, min(MAX_QUALITY, int(quality)))

    def next_ease_factor(self, ease_factor: float, quality: int) -> float:
        q = self.clamp_quality(quality)
        delta = 0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)
        return max(self.config.min_ease_factor, ease_factor + delta)

    def derive_status(self, repetitions: int, interval: int) -> ReviewStatus:
        if repetitions == 0:
            return ReviewStatus.NEW
        if repetitions <= self.config.learning_max_repetitions:
            return ReviewStatus.LEARNING
        if (
            repetitions <= self.config.reviewing_max_repetitions
            or interval < self.config.mastery_interval_days
        ):
            return ReviewStatus.REVIEWING
        return ReviewStatus.MASTERED

    def compute_next_state(
        self, state: ReviewState, quality: int, today: datetime.date
    ) -> SchedulerOutput:
        q = self.clamp_quality(quality)
        if q != quality:
            logger.debug(f"Clamped quality {quality} to {q} for card {state.card_id}")

        ease_factor = self.next_ease_factor(state.ease_factor, q)
        repetitions = state.repetitions

        if q < PASSING_QUALITY:
            # Lapse: start the card over.
            repetitions = 0
            interval = self.config.first_interval_days
        else:
            if repetitions == 0:
                interval = self.config.first_interval_days
            elif repetitions == 1:
                interval = self.config.second_interval_days
            else:
                interval = round_half_up(state.interval * ease_factor)
            repetitions += 1

        return SchedulerOutput(
            ease_factor=ease_factor,
            interval=interval,
            repetitions=repetitions,
            next_review_date=today + datetime.timedelta(days=interval),
            status=self.derive_status(repetitions, interval),
        )
