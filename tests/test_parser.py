import pytest
from pathlib import Path

from studycore.models import CardType, Difficulty
from studycore.parser import YAMLDeckParser, derive_card_id, load_deck_file
from studycore.yaml_models import YAMLProcessingError


def create_yaml_file(base_path: Path, filename: str, content: str) -> Path:
    file_path = base_path / filename
    file_path.write_text(content, encoding="utf-8")
    return file_path


# --- Sample YAML Content Strings ---

VALID_YAML_MINIMAL_CONTENT = """
deck: spanish-basics
cards:
  - q: Hola
    a: Hello
"""

VALID_YAML_COMPREHENSIVE_CONTENT = """
deck: spanish-verbs
title: Spanish verbs
difficulty: b1
description: Common regular verbs.
cards:
  - id: comer
    q: "  to eat  "
    a: comer
    hint: ends in -er
    context: Yo como pan.
  - q: Pick the verb
    type: quiz
    options: [casa, hablar, rojo]
    correct: 1
  - q: Pick the -ir verbs
    type: multiple-answer
    options: [vivir, comer, escribir]
    correct: [0, 2]
  - q: Translate 'to live'
    a: vivir
    type: type_answer
  - q: Pick the colour
    type: quiz
    options: [rojo, casa]
    a: rojo
"""

YAML_WITH_BAD_CARDS_CONTENT = """
deck: mixed-deck
cards:
  - q: Good card
    a: fine
  - q: ""
    a: empty question
  - q: Quiz without options
    type: quiz
  - q: Unknown field
    a: x
    tags: [a]
  - just a string
  - id: dup
    q: First
    a: one
  - id: dup
    q: Second
    a: two
"""


@pytest.fixture
def parser() -> YAMLDeckParser:
    return YAMLDeckParser()


def test_parse_minimal(parser: YAMLDeckParser, tmp_path: Path):
    path = create_yaml_file(tmp_path, "basics.yaml", VALID_YAML_MINIMAL_CONTENT)

    parsed = parser.parse_file(path)

    assert parsed.deck.deck_id == "spanish-basics"
    assert parsed.deck.title == "spanish-basics"
    assert parsed.deck.difficulty == Difficulty.A2
    assert parsed.errors == []
    assert len(parsed.cards) == 1
    card = parsed.cards[0]
    assert card.front == "Hola"
    assert card.back == "Hello"
    assert card.card_id == derive_card_id("spanish-basics", "Hola")


def test_parse_comprehensive(parser: YAMLDeckParser, tmp_path: Path):
    path = create_yaml_file(tmp_path, "verbs.yaml", VALID_YAML_COMPREHENSIVE_CONTENT)

    parsed = parser.parse_file(path)

    assert parsed.errors == []
    assert parsed.deck.title == "Spanish verbs"
    assert parsed.deck.difficulty == Difficulty.B1
    assert parsed.deck.description == "Common regular verbs."
    eat, quiz, multi, typed, colour = parsed.cards
    assert eat.card_id == "comer"
    assert eat.front == "to eat"
    assert eat.hint == "ends in -er"
    assert eat.context == "Yo como pan."
    assert quiz.card_type == CardType.QUIZ
    assert quiz.correct_indices == [1]
    assert multi.card_type == CardType.MULTIPLE_ANSWER
    assert multi.correct_indices == [0, 2]
    assert typed.card_type == CardType.TYPE_ANSWER
    assert colour.correct_indices == [0]
    assert [c.position for c in parsed.cards] == [0, 1, 2, 3, 4]


def test_card_ids_are_stable(parser: YAMLDeckParser, tmp_path: Path):
    path = create_yaml_file(tmp_path, "basics.yaml", VALID_YAML_MINIMAL_CONTENT)
    first = parser.parse_file(path).cards[0].card_id
    second = parser.parse_file(path).cards[0].card_id

    assert first == second
    assert derive_card_id("other-deck", "Hola") != first


def test_bad_cards_are_collected(parser: YAMLDeckParser, tmp_path: Path):
    path = create_yaml_file(tmp_path, "mixed.yaml", YAML_WITH_BAD_CARDS_CONTENT)

    parsed = parser.parse_file(path)

    assert [c.front for c in parsed.cards] == ["Good card", "First"]
    assert [e.card_index for e in parsed.errors] == [1, 2, 3, 4, 6]
    assert "not a dictionary" in parsed.errors[3].message
    assert "Duplicate card id 'dup'" in parsed.errors[4].message


@pytest.mark.parametrize(
    "content, message",
    [
        ("deck: [unclosed", "Invalid YAML syntax"),
        ("- just\n- a list\n", "Top level of YAML must be a dictionary"),
        ("deck: Not Kebab\ncards:\n  - q: a\n", "Validation error in field 'deck'"),
        ("deck: ok-deck\ncards: []\n", "Validation error in field 'cards'"),
        ("deck: ok-deck\ndifficulty: D9\ncards:\n  - q: a\n", "Validation error in field 'difficulty'"),
    ],
)
def test_file_level_errors(parser: YAMLDeckParser, tmp_path: Path, content: str, message: str):
    path = create_yaml_file(tmp_path, "bad.yaml", content)
    with pytest.raises(YAMLProcessingError, match=message):
        parser.parse_file(path)


def test_missing_file(parser: YAMLDeckParser, tmp_path: Path):
    with pytest.raises(YAMLProcessingError, match="File not found"):
        parser.parse_file(tmp_path / "nope.yaml")


def test_load_deck_file(tmp_path: Path):
    path = create_yaml_file(tmp_path, "verbs.yaml", VALID_YAML_COMPREHENSIVE_CONTENT)
    deck, cards, errors = load_deck_file(path)

    assert deck.deck_id == "spanish-verbs"
    assert len(cards) == 5
    assert errors == []


def test_processing_error_str(tmp_path: Path):
    error = YAMLProcessingError(
        file_path=tmp_path / "deck.yaml",
        message="Card validation failed",
        card_index=3,
        card_question_snippet="x" * 60,
    )
    text = str(error)

    assert text.startswith("File: deck.yaml | Card Index: 3 | Q: '")
    assert "..." in text
    assert text.endswith("| Error: Card validation failed")
