"""
Pydantic models for decks, cards, review states and study sessions.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .constants import DEFAULT_EASE_FACTOR, MIN_EASE_FACTOR


class ReviewStatus(str, Enum):
    """Long-term learning status of a card for one user."""

    NEW = "new"
    LEARNING = "learning"
    REVIEWING = "reviewing"
    MASTERED = "mastered"


class AnswerStatus(str, Enum):
    """Outcome of a card within one session."""

    CORRECT = "correct"
    INCORRECT = "incorrect"
    SKIPPED = "skipped"
    UNANSWERED = "unanswered"

    @property
    def is_terminal(self) -> bool:
        return self in (AnswerStatus.CORRECT, AnswerStatus.INCORRECT)


class SelectionMethod(str, Enum):
    RANDOM = "random"
    SMART = "smart"
    MANUAL = "manual"
    ALL = "all"


class SessionStatus(str, Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


class CardType(str, Enum):
    STANDARD = "standard"
    QUIZ = "quiz"
    MULTIPLE_ANSWER = "multiple_answer"
    TYPE_ANSWER = "type_answer"


class Difficulty(str, Enum):
    """Deck difficulty tier. Each tier carries a fixed base XP reward."""

    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"


class IdentityKind(str, Enum):
    USER = "user"
    GUEST = "guest"


def _normalize_answer(text: str) -> str:
    """Lowercase, trim and collapse inner whitespace for free-text comparison."""
    return re.sub(r"\s+", " ", text).strip().lower()


class Card(BaseModel):
    """
    Flashcard content. Owned by its deck and never modified by a session.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    card_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        min_length=1,
        description="Unique card identifier.",
    )
    deck_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the deck the card belongs to.",
    )
    front: str = Field(
        ...,
        min_length=1,
        max_length=2048,
        description="Question text.",
    )
    back: str = Field(
        ...,
        max_length=2048,
        description="Answer text. For free-text cards, the expected answer.",
    )
    context: Optional[str] = Field(
        default=None,
        description="Optional sentence or note shown with the card.",
    )
    hint: Optional[str] = Field(
        default=None,
        description="Optional hint. Revealing it costs XP once per session.",
    )
    card_type: CardType = Field(
        default=CardType.STANDARD,
        description="Presentation and grading style of the card.",
    )
    options: List[str] = Field(
        default_factory=list,
        description="Choices for quiz and multiple-answer cards.",
    )
    correct_indices: List[int] = Field(
        default_factory=list,
        description="Indexes into `options` that are correct.",
    )
    position: int = Field(
        default=0,
        ge=0,
        description="Display position within the deck.",
    )

    @model_validator(mode="after")
    def check_choices(self) -> "Card":
        """Choice cards need options and in-range correct indexes."""
        if self.card_type not in (CardType.QUIZ, CardType.MULTIPLE_ANSWER):
            return self
        if len(self.options) < 2:
            raise ValueError(
                f"Card type '{self.card_type.value}' needs at least two options."
            )
        if not self.correct_indices:
            raise ValueError(
                f"Card type '{self.card_type.value}' needs at least one correct index."
            )
        for idx in self.correct_indices:
            if not 0 <= idx < len(self.options):
                raise ValueError(
                    f"Correct index {idx} is out of range for {len(self.options)} options."
                )
        if self.card_type == CardType.QUIZ and len(set(self.correct_indices)) != 1:
            raise ValueError("Quiz cards have exactly one correct option.")
        return self

    def is_correct_choice(self, selected: Iterable[int]) -> bool:
        """True when the selected option indexes are exactly the correct ones."""
        return set(selected) == set(self.correct_indices)

    def matches_text(self, response: str) -> bool:
        """Case and whitespace insensitive comparison against the back text."""
        return _normalize_answer(response) == _normalize_answer(self.back)


class Deck(BaseModel):
    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    deck_id: str = Field(..., min_length=1, description="Unique deck identifier.")
    title: str = Field(..., min_length=1, description="Human readable title.")
    difficulty: Difficulty = Field(
        default=Difficulty.A2,
        description="Difficulty tier used for XP rewards.",
    )
    description: Optional[str] = Field(default=None)


class ReviewState(BaseModel):
    """
    Per-user SM-2 scheduling state of one card.
    Created on the first completed answer, afterwards only updated.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    state_id: Optional[int] = Field(
        default=None,
        description="Database PK (None if not yet stored).",
    )
    card_id: str = Field(..., min_length=1)
    status: ReviewStatus = Field(default=ReviewStatus.NEW)
    ease_factor: float = Field(
        default=DEFAULT_EASE_FACTOR,
        ge=MIN_EASE_FACTOR,
        description="SM-2 ease factor, never below 1.3.",
    )
    interval: int = Field(
        default=0,
        ge=0,
        description="Current review interval in days.",
    )
    repetitions: int = Field(
        default=0,
        ge=0,
        description="Consecutive successful recalls.",
    )
    next_review_date: Optional[date] = Field(default=None)
    times_seen: int = Field(default=0, ge=0)
    times_correct: int = Field(default=0, ge=0)
    times_incorrect: int = Field(default=0, ge=0)
    last_reviewed_at: Optional[datetime] = Field(default=None)

    def is_due(self, on_date: date) -> bool:
        return self.next_review_date is not None and self.next_review_date <= on_date


class SessionIdentity(BaseModel):
    """
    Who a session belongs to: an authenticated user id or an opaque guest
    token. The engine treats both the same way.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: IdentityKind
    value: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_guest_token(self) -> "SessionIdentity":
        if self.kind == IdentityKind.GUEST:
            try:
                token = UUID(self.value)
            except ValueError:
                raise ValueError("Guest token must be a UUID v4 string.") from None
            if token.version != 4:
                raise ValueError("Guest token must be a UUID v4 string.")
        return self

    @classmethod
    def for_user(cls, user_id: str) -> "SessionIdentity":
        return cls(kind=IdentityKind.USER, value=user_id)

    @classmethod
    def for_guest(cls, token: Optional[str] = None) -> "SessionIdentity":
        return cls(kind=IdentityKind.GUEST, value=token or str(uuid.uuid4()))

    @property
    def is_guest(self) -> bool:
        return self.kind == IdentityKind.GUEST

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.value}"


class StudySession(BaseModel):
    """
    Stored state of one study session.
    The set of card ids is fixed at creation; only their order and answers change.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    session_id: UUID = Field(default_factory=uuid.uuid4)
    identity: SessionIdentity
    deck_id: Optional[str] = Field(
        default=None,
        description="Source deck (None once the deck is deleted).",
    )
    title: str = Field(default="")
    selection_method: SelectionMethod
    difficulty: Difficulty = Field(default=Difficulty.A2)
    card_ids: List[str] = Field(
        ...,
        min_length=1,
        description="Selected cards in current display order.",
    )
    current_card_index: int = Field(default=0, ge=0)
    answers: Dict[str, AnswerStatus] = Field(
        default_factory=dict,
        description="Answer per card id. Missing ids are unanswered.",
    )
    streak: int = Field(default=0, ge=0)
    session_xp: int = Field(default=0, ge=0)
    hinted_card_ids: List[str] = Field(
        default_factory=list,
        description="Cards whose hint was already paid for in this session.",
    )
    duration_seconds: int = Field(
        default=0,
        ge=0,
        description="Active seconds banked by previous pushes.",
    )
    status: SessionStatus = Field(default=SessionStatus.CREATED)
    score: Optional[int] = Field(default=None, ge=0, le=100)
    correct_count: Optional[int] = Field(default=None, ge=0)
    incorrect_count: Optional[int] = Field(default=None, ge=0)
    skipped_count: Optional[int] = Field(default=None, ge=0)
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    completed_at: Optional[datetime] = Field(default=None)
    last_activity_at: Optional[datetime] = Field(default=None)

    @field_validator("card_ids")
    @classmethod
    def check_unique_card_ids(cls, card_ids: List[str]) -> List[str]:
        if len(set(card_ids)) != len(card_ids):
            raise ValueError("A session cannot contain the same card twice.")
        return card_ids

    @field_validator("answers")
    @classmethod
    def drop_unanswered(
        cls, answers: Dict[str, AnswerStatus]
    ) -> Dict[str, AnswerStatus]:
        return {
            card_id: status
            for card_id, status in answers.items()
            if status != AnswerStatus.UNANSWERED
        }

    @model_validator(mode="after")
    def check_invariants(self) -> "StudySession":
        if self.current_card_index >= len(self.card_ids):
            raise ValueError(
                f"current_card_index {self.current_card_index} is outside "
                f"a session of {len(self.card_ids)} cards."
            )
        unknown = set(self.answers) - set(self.card_ids)
        if unknown:
            raise ValueError(f"Answers reference cards outside the session: {sorted(unknown)}")
        unknown_hints = set(self.hinted_card_ids) - set(self.card_ids)
        if unknown_hints:
            raise ValueError(
                f"Hints reference cards outside the session: {sorted(unknown_hints)}"
            )
        return self

    @property
    def total_cards(self) -> int:
        return len(self.card_ids)

    def answer_for(self, card_id: str) -> AnswerStatus:
        return self.answers.get(card_id, AnswerStatus.UNANSWERED)

    def answer_counts(self) -> Tuple[int, int, int, int]:
        """(correct, incorrect, skipped, unanswered) over the selected cards."""
        statuses = [self.answer_for(card_id) for card_id in self.card_ids]
        return (
            statuses.count(AnswerStatus.CORRECT),
            statuses.count(AnswerStatus.INCORRECT),
            statuses.count(AnswerStatus.SKIPPED),
            statuses.count(AnswerStatus.UNANSWERED),
        )


class ProgressSnapshot(BaseModel):
    """In-progress state pushed to the persistence collaborator."""

    current_card_index: int = Field(..., ge=0)
    answers: Dict[str, AnswerStatus] = Field(default_factory=dict)
    streak: int = Field(default=0, ge=0)
    session_xp: int = Field(default=0, ge=0)
    hinted_card_ids: List[str] = Field(default_factory=list)
    duration_seconds: int = Field(default=0, ge=0)


class UserTotals(BaseModel):
    """Account-wide XP and level, echoed back by the collaborator."""

    level: int = Field(default=1, ge=1)
    current_xp: int = Field(default=0, ge=0)
    next_level_xp: int = Field(default=100, ge=1)
    total_xp: int = Field(default=0, ge=0)


class ProgressAck(BaseModel):
    user_totals: Optional[UserTotals] = None


class CardProgressUpdate(BaseModel):
    card_id: str
    was_correct: bool
    time_spent_seconds: int = Field(default=0, ge=0)
    quality: int = Field(..., ge=0, le=5)


class CompletionRequest(BaseModel):
    score: int = Field(..., ge=0, le=100)
    correct_count: int = Field(..., ge=0)
    incorrect_count: int = Field(..., ge=0)
    skipped_count: int = Field(..., ge=0)
    duration_seconds: int = Field(..., ge=0)
    session_xp: int = Field(default=0, ge=0)
    card_progress_updates: List[CardProgressUpdate] = Field(default_factory=list)
    review_states: List[ReviewState] = Field(
        default_factory=list,
        description="Scheduler output for every answered, non-skipped card.",
    )


class CompletionAck(BaseModel):
    xp_earned: int = Field(default=0, ge=0)
    leveled_up: bool = False
    new_level: Optional[int] = None
    cards_learned: int = Field(default=0, ge=0)
    new_achievements: List[str] = Field(default_factory=list)
    user_totals: Optional[UserTotals] = None


class SessionCreation(BaseModel):
    session: StudySession
    available_count: int = Field(..., ge=0)
    mastered_count: int = Field(..., ge=0)


class CompletionOutcome(BaseModel):
    """What the learner sees when a session finishes."""

    score: int
    correct_count: int
    incorrect_count: int
    skipped_count: int
    duration_seconds: int
    xp_earned: int
    leveled_up: bool
    new_level: Optional[int] = None
    cards_learned: int = 0
    new_achievements: List[str] = Field(default_factory=list)
