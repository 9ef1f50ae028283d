from datetime import date, datetime, timedelta, timezone

import pytest

from studycore.models import CardProgressUpdate, ReviewState, ReviewStatus
from studycore.review_processor import ReviewProcessor
from studycore.scheduler import SM2Scheduler, SM2SchedulerConfig

TODAY = date(2024, 3, 1)
REVIEWED_AT = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def processor() -> ReviewProcessor:
    return ReviewProcessor(SM2Scheduler())


def test_first_answer_creates_state(processor: ReviewProcessor):
    state = processor.process_answer("c1", None, 4, True, TODAY, REVIEWED_AT)

    assert state.card_id == "c1"
    assert state.status == ReviewStatus.LEARNING
    assert state.repetitions == 1
    assert state.interval == 1
    assert state.next_review_date == TODAY + timedelta(days=1)
    assert state.times_seen == 1
    assert state.times_correct == 1
    assert state.times_incorrect == 0
    assert state.last_reviewed_at == REVIEWED_AT


def test_incorrect_answer_updates_counters(processor: ReviewProcessor):
    current = ReviewState(
        state_id=7,
        card_id="c1",
        status=ReviewStatus.REVIEWING,
        repetitions=3,
        interval=15,
        times_seen=3,
        times_correct=3,
    )
    state = processor.process_answer("c1", current, 2, False, TODAY, REVIEWED_AT)

    assert state.state_id == 7
    assert state.repetitions == 0
    assert state.interval == 1
    assert state.times_seen == 4
    assert state.times_correct == 3
    assert state.times_incorrect == 1
    # The input state is not modified.
    assert current.repetitions == 3
    assert current.times_seen == 3


def test_new_state_uses_configured_initial_ease():
    processor = ReviewProcessor(SM2Scheduler(SM2SchedulerConfig(initial_ease_factor=2.0)))
    assert processor.new_state("c1").ease_factor == 2.0


def test_process_batch_keeps_order(processor: ReviewProcessor):
    updates = [
        CardProgressUpdate(card_id="b", was_correct=True, quality=5),
        CardProgressUpdate(card_id="a", was_correct=False, quality=1),
    ]
    states = processor.process_batch(updates, {}, TODAY, REVIEWED_AT)

    assert [s.card_id for s in states] == ["b", "a"]
    assert states[0].times_correct == 1
    assert states[1].times_incorrect == 1
