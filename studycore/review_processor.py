"""
Turns the answers of a finished session into updated review states.

The ReviewProcessor is the single place where scheduler output is merged
with the answer counters of a ReviewState:
1. Start from the stored state, or a fresh one for a card never answered
2. Compute the next schedule with the scheduler
3. Bump times_seen / times_correct / times_incorrect
4. Stamp the review time
"""

import logging
from datetime import date, datetime
from typing import List, Mapping, Optional, Sequence

from .models import CardProgressUpdate, ReviewState
from .scheduler import BaseScheduler, SchedulerOutput

logger = logging.getLogger(__name__)


class ReviewProcessor:
    """
    Applies answers to review states with a scheduler.
    Never mutates the states it is given; updated copies are returned.
    """

    def __init__(self, scheduler: BaseScheduler):
        self.scheduler = scheduler

    def new_state(self, card_id: str) -> ReviewState:
        """Review state for a card the user has never answered."""
        initial_ease = getattr(
            getattr(self.scheduler, "config", None), "initial_ease_factor", None
        )
        if initial_ease is None:
            return ReviewState(card_id=card_id)
        return ReviewState(card_id=card_id, ease_factor=initial_ease)

    def process_answer(
        self,
        card_id: str,
        state: Optional[ReviewState],
        quality: int,
        was_correct: bool,
        today: date,
        reviewed_at: datetime,
    ) -> ReviewState:
        """
        Compute the review state of one card after one answer.

        Args:
            card_id: The answered card.
            state: Its current review state, or None if it has none yet.
            quality: Recall quality passed to the scheduler (0-5).
            was_correct: Whether the answer counts as correct.
            today: Date the answer is scheduled from.
            reviewed_at: Timestamp recorded as the last review.

        Returns:
            The updated ReviewState.
        """
        current = state if state is not None else self.new_state(card_id)
        output: SchedulerOutput = self.scheduler.compute_next_state(
            current, quality, today
        )

        updated = current.model_copy(
            update={
                "status": output.status,
                "ease_factor": output.ease_factor,
                "interval": output.interval,
                "repetitions": output.repetitions,
                "next_review_date": output.next_review_date,
                "times_seen": current.times_seen + 1,
                "times_correct": current.times_correct + (1 if was_correct else 0),
                "times_incorrect": current.times_incorrect + (0 if was_correct else 1),
                "last_reviewed_at": reviewed_at,
            }
        )
        logger.debug(
            f"Card {card_id}: quality {quality} -> {output.status.value}, "
            f"interval {output.interval}d, next review {output.next_review_date}"
        )
        return updated

    def process_batch(
        self,
        updates: Sequence[CardProgressUpdate],
        review_states: Mapping[str, ReviewState],
        today: date,
        reviewed_at: datetime,
    ) -> List[ReviewState]:
        """Updated review states for every entry of `updates`, in order."""
        return [
            self.process_answer(
                card_id=update.card_id,
                state=review_states.get(update.card_id),
                quality=update.quality,
                was_correct=update.was_correct,
                today=today,
                reviewed_at=reviewed_at,
            )
            for update in updates
        ]
