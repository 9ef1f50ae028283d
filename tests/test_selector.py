import random
from datetime import date, timedelta
from typing import Dict, List

import pytest

from studycore.exceptions import InvalidSelectionError
from studycore.models import Card, CardType, ReviewState, ReviewStatus, SelectionMethod
from studycore.selector import CardSelector, SelectionOptions, interleave_by_type

TODAY = date(2024, 1, 1)


def due(card_id: str) -> ReviewState:
    return ReviewState(
        card_id=card_id,
        status=ReviewStatus.REVIEWING,
        repetitions=3,
        interval=10,
        next_review_date=TODAY - timedelta(days=1),
    )


def later(card_id: str) -> ReviewState:
    return ReviewState(
        card_id=card_id,
        status=ReviewStatus.LEARNING,
        repetitions=1,
        interval=1,
        next_review_date=TODAY + timedelta(days=3),
    )


def mastered(card_id: str) -> ReviewState:
    return ReviewState(
        card_id=card_id,
        status=ReviewStatus.MASTERED,
        repetitions=8,
        interval=60,
        next_review_date=TODAY + timedelta(days=30),
    )


@pytest.fixture
def cards(card_factory) -> List[Card]:
    return card_factory("deck", 10)


@pytest.fixture
def selector() -> CardSelector:
    return CardSelector(random.Random(1234))


def ids(cards: List[Card]) -> List[str]:
    return [card.card_id for card in cards]


def test_all_preserves_order(selector, cards):
    result = selector.select(cards, {}, SelectionMethod.ALL)

    assert ids(result.cards) == ids(cards)
    assert result.available_count == 10
    assert result.mastered_count == 0


def test_exclude_mastered(selector, cards):
    states = {"card-2": mastered("card-2"), "card-7": mastered("card-7"), "card-3": due("card-3")}
    result = selector.select(cards, states, SelectionMethod.ALL)

    assert "card-2" not in result.card_ids
    assert "card-7" not in result.card_ids
    assert result.mastered_count == 2
    assert result.available_count == 8


def test_include_mastered_when_not_excluded(selector, cards):
    states = {"card-2": mastered("card-2")}
    result = selector.select(
        cards, states, SelectionMethod.ALL, SelectionOptions(exclude_mastered=False)
    )

    assert "card-2" in result.card_ids
    assert result.mastered_count == 0


def test_exclude_card_ids(selector, cards):
    options = SelectionOptions(exclude_card_ids={"card-1", "card-10"})
    result = selector.select(cards, {}, SelectionMethod.ALL, options)

    assert result.card_ids == [f"card-{i}" for i in range(2, 10)]


def test_random_is_a_truncated_permutation(selector, cards):
    result = selector.select(
        cards, {}, SelectionMethod.RANDOM, SelectionOptions(target_count=4)
    )

    assert len(result.cards) == 4
    assert len(set(result.card_ids)) == 4
    assert set(result.card_ids) <= set(ids(cards))


def test_random_is_reproducible_with_a_seed(cards):
    options = SelectionOptions(target_count=6)
    first = CardSelector(random.Random(7)).select(cards, {}, SelectionMethod.RANDOM, options)
    second = CardSelector(random.Random(7)).select(cards, {}, SelectionMethod.RANDOM, options)

    assert first.card_ids == second.card_ids


def test_random_count_larger_than_available(selector, cards):
    result = selector.select(
        cards, {}, SelectionMethod.RANDOM, SelectionOptions(target_count=50)
    )
    assert sorted(result.card_ids) == sorted(ids(cards))


def test_smart_due_then_new(selector, cards):
    """2 due, 3 new, 5 other, target 4: both due cards and the first 2 new."""
    states: Dict[str, ReviewState] = {
        "card-4": due("card-4"),
        "card-9": due("card-9"),
    }
    for card_id in ("card-1", "card-2", "card-6", "card-7", "card-10"):
        states[card_id] = later(card_id)
    # New cards: card-3, card-5, card-8

    result = selector.select(
        cards, states, SelectionMethod.SMART, SelectionOptions(target_count=4), TODAY
    )

    assert result.card_ids == ["card-4", "card-9", "card-3", "card-5"]


def test_smart_fills_with_sample_of_other(selector, cards):
    states = {"card-1": due("card-1")}
    for i in range(2, 11):
        states[f"card-{i}"] = later(f"card-{i}")

    result = selector.select(
        cards, states, SelectionMethod.SMART, SelectionOptions(target_count=4), TODAY
    )

    assert result.card_ids[0] == "card-1"
    assert len(result.cards) == 4
    assert len(set(result.card_ids)) == 4


def test_smart_never_returns_mastered(selector, cards):
    states = {card.card_id: mastered(card.card_id) for card in cards[:5]}
    result = selector.select(cards, states, SelectionMethod.SMART, today=TODAY)

    assert not set(result.card_ids) & set(states)
    assert result.mastered_count == 5


def test_smart_requires_today(selector, cards):
    with pytest.raises(InvalidSelectionError):
        selector.select(cards, {}, SelectionMethod.SMART)


def test_manual_keeps_caller_order(selector, cards):
    options = SelectionOptions(explicit_card_ids=["card-5", "card-1", "card-5", "missing"])
    result = selector.select(cards, {}, SelectionMethod.MANUAL, options)

    assert result.card_ids == ["card-5", "card-1"]


@pytest.mark.parametrize("explicit", [None, []])
def test_manual_without_ids_raises(selector, cards, explicit):
    with pytest.raises(InvalidSelectionError):
        selector.select(
            cards, {}, SelectionMethod.MANUAL, SelectionOptions(explicit_card_ids=explicit)
        )


def test_selection_never_mutates_review_states(selector, cards):
    states = {"card-1": due("card-1"), "card-2": mastered("card-2")}
    before = {k: v.model_copy() for k, v in states.items()}
    selector.select(cards, states, SelectionMethod.SMART, today=TODAY)

    assert states == before


def test_interleave_by_type(card_factory):
    standard = card_factory("deck", 3)
    quiz = [
        Card(
            card_id=f"quiz-{i}",
            deck_id="deck",
            front=f"Pick {i}",
            back="b",
            card_type=CardType.QUIZ,
            options=["a", "b"],
            correct_indices=[1],
        )
        for i in range(1, 3)
    ]
    result = interleave_by_type(standard + quiz)

    assert ids(result) == ["card-1", "quiz-1", "card-2", "quiz-2", "card-3"]


def test_interleave_single_type_is_unchanged(card_factory):
    cards = card_factory("deck", 4)
    assert interleave_by_type(cards) == cards
