"""
Contract between the session engine and whatever stores decks, progress and
sessions. `studycore.db.StudyDatabase` is the DuckDB implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Set
from uuid import UUID

from .models import (
    Card,
    CompletionAck,
    CompletionRequest,
    Deck,
    ProgressAck,
    ProgressSnapshot,
    ReviewState,
    SessionIdentity,
    StudySession,
)


@dataclass
class DeckSnapshot:
    """A deck's cards plus the identity's review state for each of them."""

    deck: Deck
    cards: List[Card]
    review_states: Dict[str, ReviewState] = field(default_factory=dict)


class SessionStore(ABC):
    """
    Persistence collaborator used by StudySessionEngine.

    Implementations raise PersistenceError subclasses on failure. The engine
    treats failures of `persist_progress` as transient and failures of
    `complete_session` / `abandon_session` as user-visible.
    """

    @abstractmethod
    def load_deck(self, deck_id: str, identity: SessionIdentity) -> DeckSnapshot:
        """Cards of a deck with the identity's review states (none for guests)."""

    @abstractmethod
    def get_active_session_card_ids(self, identity: SessionIdentity) -> Set[str]:
        """Card ids used by the identity's sessions that are still open."""

    @abstractmethod
    def create_session(self, session: StudySession) -> StudySession:
        """Store the initial snapshot of a new session."""

    @abstractmethod
    def load_session(self, session_id: UUID, identity: SessionIdentity) -> StudySession:
        """Fetch a stored session owned by the identity."""

    @abstractmethod
    def persist_progress(
        self,
        session_id: UUID,
        identity: SessionIdentity,
        snapshot: ProgressSnapshot,
    ) -> ProgressAck:
        """Store in-progress state. May echo back updated user totals."""

    @abstractmethod
    def complete_session(
        self,
        session_id: UUID,
        identity: SessionIdentity,
        request: CompletionRequest,
    ) -> CompletionAck:
        """Finalize a session and store the batch of updated review states."""

    @abstractmethod
    def abandon_session(self, session_id: UUID, identity: SessionIdentity) -> None:
        """Close a session without scheduling anything."""
