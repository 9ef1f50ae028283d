import logging
import random
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Generator, List
from unittest.mock import MagicMock

import pytest

from studycore.clock import Clock
from studycore.db import StudyDatabase
from studycore.models import (
    Card,
    CardType,
    CompletionAck,
    Deck,
    Difficulty,
    ProgressAck,
    SessionIdentity,
)
from studycore.persistence import DeckSnapshot, SessionStore
from studycore.session_engine import StudySessionEngine

UTC = timezone.utc
START = datetime(2024, 1, 1, 9, 0, 0, tzinfo=UTC)
GUEST_TOKEN = "0b7e8f6a-3c1d-4b2e-9f5a-6d7c8e9f0a1b"


class ManualClock(Clock):
    """Clock that only moves when a test says so."""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 0, **kwargs) -> None:
        self.current += timedelta(seconds=seconds, **kwargs)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def today(clock: ManualClock) -> date:
    return clock.today()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


# --- Identities ---
@pytest.fixture
def user() -> SessionIdentity:
    return SessionIdentity.for_user("alice")


@pytest.fixture
def guest() -> SessionIdentity:
    return SessionIdentity.for_guest(GUEST_TOKEN)


# --- Decks and Cards ---
def make_cards(deck_id: str, count: int, prefix: str = "card") -> List[Card]:
    return [
        Card(
            card_id=f"{prefix}-{i}",
            deck_id=deck_id,
            front=f"Question {i}",
            back=f"Answer {i}",
            position=i,
        )
        for i in range(1, count + 1)
    ]


@pytest.fixture
def sample_deck() -> Deck:
    return Deck(deck_id="spanish-a2", title="Spanish basics", difficulty=Difficulty.A2)


@pytest.fixture
def sample_cards(sample_deck: Deck) -> List[Card]:
    """Five standard cards; card-2 carries a hint."""
    cards = make_cards(sample_deck.deck_id, 5)
    cards[1] = cards[1].model_copy(update={"hint": "starts with A"})
    return cards


@pytest.fixture
def hard_deck() -> Deck:
    return Deck(deck_id="spanish-c2", title="Spanish advanced", difficulty=Difficulty.C2)


@pytest.fixture
def quiz_card(sample_deck: Deck) -> Card:
    return Card(
        card_id="quiz-1",
        deck_id=sample_deck.deck_id,
        front="Pick the verb",
        back="comer",
        card_type=CardType.QUIZ,
        options=["casa", "comer", "rojo"],
        correct_indices=[1],
    )


# --- Database Fixtures ---
@pytest.fixture
def db_path_file(tmp_path: Path) -> Path:
    return tmp_path / "test_study.db"


@pytest.fixture(params=["memory", "file"])
def db_manager(request, db_path_file: Path) -> Generator[StudyDatabase, None, None]:
    """A StudyDatabase, either in-memory or file-backed, closed on teardown."""
    if request.param == "memory":
        db_man = StudyDatabase(":memory:")
    else:
        db_man = StudyDatabase(db_path_file)
    try:
        yield db_man
    finally:
        db_man.close_connection()
        if request.param == "file" and db_path_file.exists():
            try:
                db_path_file.unlink()
            except OSError as e:
                logging.warning(f"Error removing temporary DB file in teardown: {e}")


@pytest.fixture
def initialized_db_manager(db_manager: StudyDatabase) -> StudyDatabase:
    db_manager.initialize_schema()
    return db_manager


@pytest.fixture
def memory_db() -> Generator[StudyDatabase, None, None]:
    with StudyDatabase(":memory:") as db:
        yield db


@pytest.fixture
def populated_db(
    memory_db: StudyDatabase,
    sample_deck: Deck,
    sample_cards: List[Card],
    hard_deck: Deck,
) -> StudyDatabase:
    memory_db.upsert_deck(sample_deck)
    memory_db.upsert_cards_batch(sample_cards)
    memory_db.upsert_deck(hard_deck)
    memory_db.upsert_cards_batch(make_cards(hard_deck.deck_id, 5, prefix="hard"))
    return memory_db


@pytest.fixture
def engine(populated_db: StudyDatabase, clock: ManualClock, rng: random.Random) -> StudySessionEngine:
    return StudySessionEngine(populated_db, clock=clock, rng=rng)


# --- Mock store for failure injection ---
@pytest.fixture
def mock_store(sample_deck: Deck, sample_cards: List[Card]) -> MagicMock:
    store = MagicMock(spec=SessionStore)
    store.load_deck.return_value = DeckSnapshot(deck=sample_deck, cards=list(sample_cards))
    store.get_active_session_card_ids.return_value = set()
    store.create_session.side_effect = lambda session: session
    store.persist_progress.return_value = ProgressAck()
    store.complete_session.side_effect = lambda session_id, identity, request: CompletionAck(
        xp_earned=request.session_xp
    )
    return store


@pytest.fixture
def mock_engine(mock_store: MagicMock, clock: ManualClock, rng: random.Random) -> StudySessionEngine:
    return StudySessionEngine(mock_store, clock=clock, rng=rng)


@pytest.fixture
def card_factory():
    """make_cards as a fixture, for tests that build their own decks."""
    return make_cards
