import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Set, Tuple, Union

import yaml
from pydantic import ValidationError

from .models import Card, Deck
from .yaml_models import YAMLProcessingError, _RawYAMLCardEntry, _RawYAMLDeckFile

logger = logging.getLogger(__name__)

# Namespace for card ids derived from deck id and front text.
CARD_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "cards.studycore")


def derive_card_id(deck_id: str, front: str) -> str:
    """Stable card id, so re-importing a deck updates cards instead of duplicating them."""
    return str(uuid.uuid5(CARD_ID_NAMESPACE, f"{deck_id}\n{front}"))


@dataclass
class ParsedDeck:
    deck: Deck
    cards: List[Card] = field(default_factory=list)
    errors: List[YAMLProcessingError] = field(default_factory=list)


class YAMLDeckParser:
    """
    Reads one YAML deck file into a Deck and its Cards.

    File-level problems (missing file, bad YAML, invalid deck header) raise
    YAMLProcessingError. Problems with individual cards are collected so the
    valid cards of a file can still be imported.
    """

    def parse_file(self, file_path: Union[str, Path]) -> ParsedDeck:
        """
        Parse a YAML deck file.

        Parameters:
            file_path (Union[str, Path]): The deck file.

        Returns:
            ParsedDeck: The deck, its valid cards, and per-card errors.

        Raises:
            YAMLProcessingError: If the file cannot be read, is not valid YAML,
                or its deck header fails validation.
        """
        file_path = Path(file_path)
        try:
            raw_yaml_content = yaml.safe_load(file_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise YAMLProcessingError(file_path, "File not found.") from None
        except OSError as e:
            raise YAMLProcessingError(file_path, f"Could not read file: {e}") from e
        except yaml.YAMLError as e:
            raise YAMLProcessingError(file_path, f"Invalid YAML syntax: {e}") from e

        if not isinstance(raw_yaml_content, dict):
            raise YAMLProcessingError(
                file_path, "Top level of YAML must be a dictionary (deck object)."
            )

        try:
            deck_data = _RawYAMLDeckFile.model_validate(raw_yaml_content)
        except ValidationError as e:
            error_details = e.errors()[0]
            field_name = ".".join(map(str, error_details["loc"]))
            raise YAMLProcessingError(
                file_path,
                f"Validation error in field '{field_name}': {error_details['msg']}",
            ) from e

        deck = Deck(
            deck_id=deck_data.deck,
            title=deck_data.title or deck_data.deck,
            difficulty=deck_data.difficulty,
            description=deck_data.description,
        )
        parsed = ParsedDeck(deck=deck)
        seen_ids: Set[str] = set()
        for idx, card_dict in enumerate(deck_data.cards):
            result = self._parse_card(card_dict, idx, deck.deck_id, file_path)
            if isinstance(result, Card) and result.card_id in seen_ids:
                result = YAMLProcessingError(
                    file_path=file_path,
                    message=f"Duplicate card id '{result.card_id}'.",
                    card_index=idx,
                    card_question_snippet=result.front,
                )
            if isinstance(result, Card):
                seen_ids.add(result.card_id)
                parsed.cards.append(result)
            else:
                parsed.errors.append(result)

        logger.info(
            f"Parsed deck '{deck.deck_id}' from {file_path.name}: "
            f"{len(parsed.cards)} cards, {len(parsed.errors)} errors"
        )
        return parsed

    def _parse_card(
        self, card_dict: Any, idx: int, deck_id: str, file_path: Path
    ) -> Union[Card, YAMLProcessingError]:
        if not isinstance(card_dict, dict):
            return YAMLProcessingError(
                file_path=file_path,
                message=f"Card entry at index {idx} is not a dictionary.",
                card_index=idx,
            )
        try:
            raw = _RawYAMLCardEntry.model_validate(card_dict)
            return Card(**self._card_data(raw, idx, deck_id))
        except ValidationError as e:
            return YAMLProcessingError(
                file_path=file_path,
                message=f"Card validation failed: {e}",
                card_index=idx,
                card_question_snippet=str(card_dict.get("q", ""))[:50],
            )

    @staticmethod
    def _card_data(raw: _RawYAMLCardEntry, idx: int, deck_id: str) -> Dict[str, Any]:
        correct_indices = raw.correct_indices
        if not correct_indices and raw.a in raw.options:
            correct_indices = [raw.options.index(raw.a)]
        return {
            "card_id": raw.id or derive_card_id(deck_id, raw.q),
            "deck_id": deck_id,
            "front": raw.q,
            "back": raw.a,
            "hint": raw.hint,
            "context": raw.context,
            "card_type": raw.type,
            "options": raw.options,
            "correct_indices": correct_indices,
            "position": idx,
        }


def load_deck_file(file_path: Union[str, Path]) -> Tuple[Deck, List[Card], List[YAMLProcessingError]]:
    """Convenience wrapper returning (deck, cards, errors)."""
    parsed = YAMLDeckParser().parse_file(file_path)
    return parsed.deck, parsed.cards, parsed.errors
