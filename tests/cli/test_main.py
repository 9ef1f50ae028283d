# Standard library imports
import re
from pathlib import Path
from unittest.mock import patch
from uuid import uuid4

# Third-party imports
import pytest
from typer.testing import CliRunner

# Local application imports
from studycore.cli.main import app
from studycore.db.database import StudyDatabase
from studycore.models import SessionIdentity, SessionStatus


runner = CliRunner()

DECK_YAML = """
deck: spanish-a2
title: Spanish basics
difficulty: A2
cards:
  - id: card-1
    q: Hola
    a: Hello
  - id: card-2
    q: Adios
    a: Goodbye
    hint: starts with G
  - id: card-3
    q: Gracias
    a: Thanks
"""


def normalize_output(text: str) -> str:
    """Strip ANSI escape codes and table borders, then collapse whitespace."""
    text = re.sub(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])", "", text)
    text = re.sub(r"[\u2500-\u257f|]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def invoke(*args, inputs=None):
    """Run the app with STUDYCORE_* unset, feeding `inputs` to the study prompt."""
    env = {"STUDYCORE_DB": None, "STUDYCORE_USER": None}
    with patch("rich.console.Console.input", side_effect=inputs or []):
        return runner.invoke(app, list(args), env=env)


@pytest.fixture
def deck_file(tmp_path: Path) -> Path:
    path = tmp_path / "spanish.yaml"
    path.write_text(DECK_YAML, encoding="utf-8")
    return path


@pytest.fixture
def db_file(tmp_path: Path, deck_file: Path) -> Path:
    db_path = tmp_path / "study.db"
    result = invoke("import-deck", str(deck_file), "--db", str(db_path))
    assert result.exit_code == 0, result.output
    return db_path


def open_sessions(db_path: Path, user_id: str = "local"):
    with StudyDatabase(db_path) as db:
        return db.list_sessions(
            SessionIdentity.for_user(user_id),
            [SessionStatus.CREATED, SessionStatus.IN_PROGRESS],
        )


def test_missing_db_option():
    result = invoke("decks")
    assert result.exit_code == 1
    assert "--db is required" in normalize_output(result.output)


def test_db_from_envvar(db_file: Path):
    result = runner.invoke(app, ["decks"], env={"STUDYCORE_DB": str(db_file)})
    assert result.exit_code == 0
    assert "spanish-a2" in result.output


def test_import_deck(deck_file: Path, tmp_path: Path):
    db_path = tmp_path / "new.db"
    result = invoke("import-deck", str(deck_file), "--db", str(db_path))

    assert result.exit_code == 0
    assert "Imported deck 'spanish-a2': 3 cards ingested or updated." in normalize_output(result.output)
    with StudyDatabase(db_path) as db:
        assert len(db.get_cards_for_deck("spanish-a2")) == 3


def test_reimport_keeps_card_count(db_file: Path, deck_file: Path):
    result = invoke("import-deck", str(deck_file), "--db", str(db_file))
    assert result.exit_code == 0
    with StudyDatabase(db_file) as db:
        assert len(db.get_cards_for_deck("spanish-a2")) == 3


def test_import_invalid_file(tmp_path: Path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("deck: Not Kebab\ncards:\n  - q: a\n", encoding="utf-8")

    result = invoke("import-deck", str(bad), "--db", str(tmp_path / "x.db"))

    assert result.exit_code == 1
    assert "Validation error in field 'deck'" in normalize_output(result.output)


def test_import_without_valid_cards(tmp_path: Path):
    bad = tmp_path / "empty.yaml"
    bad.write_text("deck: empty-deck\ncards:\n  - q: ''\n", encoding="utf-8")

    result = invoke("import-deck", str(bad), "--db", str(tmp_path / "x.db"))

    output = normalize_output(result.output)
    assert result.exit_code == 1
    assert "Errors encountered during YAML processing" in output
    assert "No valid cards found to import." in output


def test_decks_command(db_file: Path):
    result = invoke("decks", "--db", str(db_file))
    output = normalize_output(result.output)

    assert result.exit_code == 0
    assert "spanish-a2" in output
    assert "Spanish basics" in output


def test_decks_empty(tmp_path: Path):
    result = invoke("decks", "--db", str(tmp_path / "empty.db"))
    assert result.exit_code == 0
    assert "No decks found." in result.output


def test_study_and_stats(db_file: Path):
    result = invoke("study", "spanish-a2", "--db", str(db_file), inputs=["y", "y", "n"])

    output = normalize_output(result.output)
    assert result.exit_code == 0, output
    assert "Starting All - 3 cards" in output
    assert "Session Complete" in output

    stats = normalize_output(invoke("stats", "--db", str(db_file)).output)
    assert "Stats for local" in stats
    assert "Total XP 16" in stats
    assert "learning 2" in stats
    assert "new 1" in stats


def test_study_quit_and_resume(db_file: Path):
    result = invoke("study", "spanish-a2", "--db", str(db_file), "--user", "alice", inputs=["y", "q"])
    assert result.exit_code == 0, result.output
    assert "Progress saved." in result.output

    sessions = open_sessions(db_file, "alice")
    assert len(sessions) == 1
    session_id = str(sessions[0].session_id)

    listing = invoke("sessions", "--db", str(db_file), "--user", "alice")
    assert listing.exit_code == 0
    assert "Sessions" in listing.output
    assert sessions[0].answers == {"card-1": "correct"}

    result = invoke("resume", session_id, "--db", str(db_file), "--user", "alice", inputs=["y", "y"])
    assert result.exit_code == 0, result.output
    assert "Session Complete" in result.output
    assert open_sessions(db_file, "alice") == []


def test_study_manual_cards(db_file: Path):
    result = invoke(
        "study", "spanish-a2", "--db", str(db_file), "-m", "manual",
        "--card-id", "card-3", "--card-id", "card-1",
        inputs=["q"],
    )
    assert result.exit_code == 0, result.output
    assert open_sessions(db_file)[0].card_ids == ["card-3", "card-1"]


def test_study_unknown_deck(db_file: Path):
    result = invoke("study", "nope", "--db", str(db_file))
    assert result.exit_code == 1
    assert "not found" in result.output


def test_guest_cannot_use_smart(db_file: Path):
    result = invoke("study", "spanish-a2", "--db", str(db_file), "--guest", "-m", "smart")
    assert result.exit_code == 1
    assert "not available for guest sessions" in normalize_output(result.output)


def test_guest_study_prints_token(db_file: Path):
    result = invoke("study", "spanish-a2", "--db", str(db_file), "--guest", "--seed", "7", inputs=["q"])
    assert result.exit_code == 0, result.output
    assert "Guest token:" in result.output
    assert "Guest - All - 3 cards" in normalize_output(result.output)


def test_resume_invalid_session_id(db_file: Path):
    result = invoke("resume", "not-a-uuid", "--db", str(db_file))
    assert result.exit_code == 1
    assert "is not a valid session id" in result.output


def test_resume_unknown_session(db_file: Path):
    result = invoke("resume", str(uuid4()), "--db", str(db_file))
    assert result.exit_code == 1
    assert "not found" in result.output


def test_invalid_guest_token(db_file: Path):
    result = invoke("sessions", "--db", str(db_file), "--guest-token", "abc")
    assert result.exit_code == 1
    assert "Invalid guest token" in result.output


def test_abandon_command(db_file: Path):
    invoke("study", "spanish-a2", "--db", str(db_file), inputs=["q"])
    session_id = str(open_sessions(db_file)[0].session_id)

    result = invoke("abandon", session_id, "--db", str(db_file))
    assert result.exit_code == 0
    assert "abandoned" in result.output
    assert open_sessions(db_file) == []

    again = invoke("abandon", session_id, "--db", str(db_file))
    assert again.exit_code == 1


def test_sessions_empty(db_file: Path):
    result = invoke("sessions", "--db", str(db_file), "--all")
    assert result.exit_code == 0
    assert "No sessions found." in result.output
