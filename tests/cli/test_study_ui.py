"""
Unit tests for the studycore.cli.study_ui module.
"""

from unittest.mock import MagicMock, patch

import pytest

from studycore.cli.study_ui import _parse_choices, display_outcome, start_study_flow
from studycore.exceptions import PersistenceUnavailableError
from studycore.models import AnswerStatus, Card, CardType, CompletionOutcome
from studycore.persistence import DeckSnapshot
from studycore.session_engine import StudySessionEngine


@pytest.fixture
def session_engine(mock_engine: StudySessionEngine, user) -> StudySessionEngine:
    mock_engine.create("spanish-a2", user)
    return mock_engine


def run_flow(engine: StudySessionEngine, inputs):
    with patch("rich.console.Console.input", side_effect=inputs):
        return start_study_flow(engine)


@pytest.mark.parametrize(
    "raw, expected",
    [("1", [0]), ("1,3", [0, 2]), (" 2 , 3 ", [1, 2]), ("4", None), ("0", None), ("a", None), ("", None)],
)
def test_parse_choices(raw, expected):
    assert _parse_choices(raw, 3) == expected


def test_study_flow_all_correct(session_engine: StudySessionEngine, mock_store: MagicMock, capsys):
    outcome = run_flow(session_engine, ["y"] * 5)

    assert outcome.score == 100
    assert outcome.correct_count == 5
    mock_store.complete_session.assert_called_once()
    assert not session_engine.autosave_enabled
    captured = capsys.readouterr()
    assert "Correct! +8 XP" in captured.out
    assert "Session Complete" in captured.out


def test_study_flow_navigation_and_quit(session_engine: StudySessionEngine, mock_store: MagicMock, capsys):
    outcome = run_flow(session_engine, ["", "y", "h", "y", "s", "b", "y", "q"])

    assert outcome is None
    assert not session_engine.has_session
    snapshot = mock_store.persist_progress.call_args.args[2]
    assert snapshot.answers == {
        "card-1": AnswerStatus.CORRECT,
        "card-2": AnswerStatus.CORRECT,
        "card-3": AnswerStatus.CORRECT,
    }
    assert snapshot.current_card_index == 3
    captured = capsys.readouterr()
    assert "Answer 1" in captured.out
    assert "Hint: starts with A" in captured.out
    assert "(-8 XP)" in captured.out
    assert "Progress saved." in captured.out


def test_study_flow_card_without_hint(session_engine: StudySessionEngine, capsys):
    run_flow(session_engine, ["h", "q"])
    assert "This card has no hint." in capsys.readouterr().out


def test_study_flow_invalid_input(session_engine: StudySessionEngine, capsys):
    run_flow(session_engine, ["maybe", "q"])
    assert "Invalid input." in capsys.readouterr().out


def test_study_flow_restart(session_engine: StudySessionEngine, mock_store: MagicMock, capsys):
    run_flow(session_engine, ["y", "r", "q"])

    snapshot = mock_store.persist_progress.call_args.args[2]
    assert snapshot.answers == {}
    assert snapshot.current_card_index == 0
    assert "Session restarted." in capsys.readouterr().out


def test_study_flow_shuffle(session_engine: StudySessionEngine, capsys):
    run_flow(session_engine, ["x", "q"])
    assert "Cards shuffled." in capsys.readouterr().out


def test_study_flow_quiz_card(mock_engine, mock_store, sample_deck, quiz_card, user, capsys):
    mock_store.load_deck.return_value = DeckSnapshot(deck=sample_deck, cards=[quiz_card])
    mock_engine.create(sample_deck.deck_id, user)

    outcome = run_flow(mock_engine, ["9", "2"])

    assert outcome.correct_count == 1
    assert "Invalid input." in capsys.readouterr().out


def test_study_flow_multiple_answer_card(mock_engine, mock_store, sample_deck, user):
    card = Card(
        card_id="multi-1",
        deck_id=sample_deck.deck_id,
        front="Pick the -ir verbs",
        back="vivir, escribir",
        card_type=CardType.MULTIPLE_ANSWER,
        options=["vivir", "comer", "escribir"],
        correct_indices=[0, 2],
    )
    mock_store.load_deck.return_value = DeckSnapshot(deck=sample_deck, cards=[card])
    mock_engine.create(sample_deck.deck_id, user)

    outcome = run_flow(mock_engine, ["1,2"])

    assert outcome.incorrect_count == 1


def test_study_flow_type_answer_card(mock_engine, mock_store, sample_deck, user, capsys):
    card = Card(
        card_id="typed-1",
        deck_id=sample_deck.deck_id,
        front="Capital of Spain",
        back="Madrid",
        card_type=CardType.TYPE_ANSWER,
    )
    mock_store.load_deck.return_value = DeckSnapshot(deck=sample_deck, cards=[card])
    mock_engine.create(sample_deck.deck_id, user)

    outcome = run_flow(mock_engine, ["", ":h", "  madrid "])

    assert outcome.correct_count == 1
    assert "This card has no hint." in capsys.readouterr().out


def test_study_flow_completion_failure(session_engine: StudySessionEngine, mock_store: MagicMock, capsys):
    mock_store.complete_session.side_effect = PersistenceUnavailableError("store offline")

    outcome = run_flow(session_engine, ["y"] * 5)

    assert outcome is None
    assert not session_engine.has_session
    mock_store.persist_progress.assert_called_once()
    captured = capsys.readouterr()
    assert "Could not save the results" in captured.out
    assert "studycore resume" in captured.out


def test_display_outcome_level_up(capsys):
    display_outcome(
        CompletionOutcome(
            score=80,
            correct_count=4,
            incorrect_count=1,
            skipped_count=0,
            duration_seconds=125,
            xp_earned=120,
            leveled_up=True,
            new_level=2,
            cards_learned=4,
        )
    )
    captured = capsys.readouterr()
    assert "2m 5s" in captured.out
    assert "Level up! You reached level 2." in captured.out
