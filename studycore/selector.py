"""
Card selection for new study sessions.

The selector only reads review states. Randomness comes from an injected
`random.Random` so selections can be reproduced with a seed.
"""

import logging
import random
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Set

from pydantic import BaseModel, Field

from .exceptions import InvalidSelectionError
from .models import Card, CardType, ReviewState, ReviewStatus, SelectionMethod

logger = logging.getLogger(__name__)


class SelectionOptions(BaseModel):
    """Constraints applied when picking cards for a session."""

    target_count: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum number of cards (None means every available card).",
    )
    explicit_card_ids: Optional[List[str]] = Field(
        default=None,
        description="Card ids for manual selection, in the order to study them.",
    )
    exclude_mastered: bool = Field(
        default=True,
        description="Drop cards whose review status is mastered.",
    )
    exclude_card_ids: Set[str] = Field(
        default_factory=set,
        description="Cards to leave out, e.g. those already in another active session.",
    )


@dataclass
class SelectionResult:
    cards: List[Card]
    available_count: int
    mastered_count: int

    @property
    def card_ids(self) -> List[str]:
        return [card.card_id for card in self.cards]


class CardSelector:
    """
    Picks the ordered cards for a new session.

    Strategies:
    - all: every available card in deck order.
    - random: a uniform shuffle, truncated to the target count.
    - smart: due cards first, then new cards, then a random sample of the rest.
    - manual: exactly the requested ids, in the requested order.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def select(
        self,
        cards: Sequence[Card],
        review_states: Mapping[str, ReviewState],
        method: SelectionMethod,
        options: Optional[SelectionOptions] = None,
        today: Optional[date] = None,
    ) -> SelectionResult:
        """
        Select cards for a session.

        Args:
            cards: Every card of the deck, in deck order.
            review_states: Review state per card id. Missing ids are new cards.
            method: Selection strategy.
            options: Count, id and filtering constraints.
            today: Date used to decide which cards are due (smart only).

        Returns:
            SelectionResult with the chosen cards and the counts to display.

        Raises:
            InvalidSelectionError: Manual selection without card ids, or
                smart selection without a date.
        """
        options = options or SelectionOptions()
        method = SelectionMethod(method)

        available: List[Card] = []
        mastered_count = 0
        for card in cards:
            state = review_states.get(card.card_id)
            if options.exclude_mastered and state is not None and state.status == ReviewStatus.MASTERED:
                mastered_count += 1
                continue
            if card.card_id in options.exclude_card_ids:
                continue
            available.append(card)

        count = min(options.target_count or len(available), len(available))

        if method == SelectionMethod.ALL:
            selected = list(available)
        elif method == SelectionMethod.RANDOM:
            selected = self._select_random(available, count)
        elif method == SelectionMethod.SMART:
            if today is None:
                raise InvalidSelectionError("Smart selection needs today's date.")
            selected = self._select_smart(available, review_states, count, today)
        else:
            selected = self._select_manual(available, options.explicit_card_ids)

        logger.debug(
            f"Selected {len(selected)} of {len(available)} available cards "
            f"using '{method.value}' ({mastered_count} mastered excluded)"
        )
        return SelectionResult(
            cards=selected,
            available_count=len(available),
            mastered_count=mastered_count,
        )

    def _select_random(self, cards: List[Card], count: int) -> List[Card]:
        shuffled = list(cards)
        self.rng.shuffle(shuffled)
        return shuffled[:count]

    def _select_smart(
        self,
        cards: List[Card],
        review_states: Mapping[str, ReviewState],
        count: int,
        today: date,
    ) -> List[Card]:
        due_cards: List[Card] = []
        new_cards: List[Card] = []
        other_cards: List[Card] = []
        for card in cards:
            state = review_states.get(card.card_id)
            if state is None:
                new_cards.append(card)
            elif state.is_due(today):
                due_cards.append(card)
            else:
                other_cards.append(card)

        selected = due_cards[:count]
        if len(selected) < count:
            selected.extend(new_cards[: count - len(selected)])
        if len(selected) < count:
            selected.extend(self.rng.sample(other_cards, min(count - len(selected), len(other_cards))))
        return selected

    @staticmethod
    def _select_manual(
        cards: List[Card], card_ids: Optional[List[str]]
    ) -> List[Card]:
        if not card_ids:
            raise InvalidSelectionError("Manual selection requires at least one card id.")
        by_id: Dict[str, Card] = {card.card_id: card for card in cards}
        selected: List[Card] = []
        seen: Set[str] = set()
        for card_id in card_ids:
            card = by_id.get(card_id)
            if card is None:
                logger.debug(f"Manual selection skipped unavailable card {card_id}")
                continue
            if card_id in seen:
                continue
            seen.add(card_id)
            selected.append(card)
        return selected


def interleave_by_type(cards: Sequence[Card]) -> List[Card]:
    """
    Round-robin the cards over their card types so the same kind of card
    does not appear many times in a row. Order within each type is kept.
    """
    groups: Dict[CardType, List[Card]] = {}
    for card in cards:
        groups.setdefault(card.card_type, []).append(card)
    if len(groups) <= 1:
        return list(cards)

    queues = list(groups.values())
    result: List[Card] = []
    position = 0
    while len(result) < len(cards):
        for queue in queues:
            if position < len(queue):
                result.append(queue[position])
        position += 1
    return result
