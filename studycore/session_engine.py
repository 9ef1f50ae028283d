"""
Study session engine.

The StudySessionEngine owns the live state of one study session and applies
learner actions to it:
- Session lifecycle (create, resume, complete, abandon)
- Answers, skips and hint reveals with streak and XP bookkeeping
- Navigation (advance, undo) and resets (shuffle, restart)
- Active study time per card, capped per viewing
- Dirty tracking and periodic pushes to the persistence collaborator

All actions are synchronous. The only concurrent work is the autosave push,
which snapshots state under a lock and talks to the store without holding it,
so learner actions never wait on persistence.
"""

import logging
import math
import random
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, Field

from .autosave import AutosaveTimer
from .clock import Clock, SystemClock
from .constants import (
    AUTOSAVE_INTERVAL_SECONDS,
    GUEST_SELECTION_METHODS,
    HINT_COST_XP,
    MAX_CARD_SECONDS,
    QUALITY_CORRECT,
    QUALITY_INCORRECT,
)
from .events import EventChannel, SessionEvent, SessionEventType
from .exceptions import (
    InvalidSelectionError,
    InvariantViolationError,
    NoCardsAvailableError,
    PersistenceError,
    PersistenceFailedOnFinalizeError,
)
from .models import (
    AnswerStatus,
    Card,
    CardProgressUpdate,
    CompletionOutcome,
    CompletionRequest,
    ProgressSnapshot,
    ReviewState,
    SelectionMethod,
    SessionCreation,
    SessionIdentity,
    SessionStatus,
    StudySession,
)
from .persistence import SessionStore
from .review_processor import ReviewProcessor
from .rewards import apply_hint_cost, calculate_xp
from .scheduler import BaseScheduler, SM2Scheduler, round_half_up
from .selector import CardSelector, SelectionOptions, interleave_by_type

# Initialize logger
logger = logging.getLogger(__name__)


class EngineConfig(BaseModel):
    """Configuration for the StudySessionEngine."""

    autosave_interval_seconds: float = Field(default=AUTOSAVE_INTERVAL_SECONDS, gt=0)
    max_card_seconds: float = Field(default=MAX_CARD_SECONDS, gt=0)
    hint_cost: int = Field(default=HINT_COST_XP, ge=0)
    quality_correct: int = Field(default=QUALITY_CORRECT, ge=0, le=5)
    quality_incorrect: int = Field(default=QUALITY_INCORRECT, ge=0, le=5)
    interleave_card_types: bool = False


@dataclass
class CardViewState:
    """Transient UI state of the card on screen. Reset whenever the card changes."""

    flipped: bool = False
    hint_revealed: bool = False
    selected_option: Optional[int] = None
    selected_options: List[int] = field(default_factory=list)


class StudySessionEngine:
    """
    Runs one study session at a time.

    The engine is the single source of truth for an open session. It calls
    the selector when a session is created, the reward calculator on every
    answer and the scheduler when the session completes. External code can
    follow along through `events`.
    """

    def __init__(
        self,
        store: SessionStore,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        scheduler: Optional[BaseScheduler] = None,
        config: Optional[EngineConfig] = None,
        events: Optional[EventChannel] = None,
    ):
        """
        Create an engine bound to a persistence collaborator.

        Parameters:
            store (SessionStore): Loads decks and sessions and stores progress.
            clock (Optional[Clock]): Time source; defaults to the system clock.
            rng (Optional[random.Random]): Randomness for selection and shuffle.
                Pass a seeded instance for reproducible sessions.
            scheduler (Optional[BaseScheduler]): Defaults to SM2Scheduler.
            config (Optional[EngineConfig]): Engine tuning; defaults apply when omitted.
            events (Optional[EventChannel]): Channel to publish session events on.
        """
        self.store = store
        self.clock = clock or SystemClock()
        self.rng = rng or random.Random()
        self.scheduler = scheduler or SM2Scheduler()
        self.config = config or EngineConfig()
        self.events = events or EventChannel()
        self.selector = CardSelector(self.rng)
        self.review_processor = ReviewProcessor(self.scheduler)

        self._lock = threading.RLock()
        self._autosave: Optional[AutosaveTimer] = None
        self._reset_engine_state()

    def _reset_engine_state(self) -> None:
        self.session: Optional[StudySession] = None
        self.cards: Dict[str, Card] = {}
        self.review_states: Dict[str, ReviewState] = {}
        self.view = CardViewState()
        self.per_card_seconds: Dict[str, float] = {}
        self.total_active_seconds: float = 0.0
        self.baseline_duration: int = 0
        self.card_started_at: Optional[datetime] = None
        self.dirty: bool = False
        self._revision: int = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def has_session(self) -> bool:
        return self.session is not None

    @property
    def is_open(self) -> bool:
        return self.session is not None and not self.session.status.is_terminal

    @property
    def current_card_id(self) -> Optional[str]:
        if self.session is None:
            return None
        return self.session.card_ids[self.session.current_card_index]

    @property
    def current_card(self) -> Optional[Card]:
        card_id = self.current_card_id
        return self.cards.get(card_id) if card_id is not None else None

    @property
    def duration_seconds(self) -> int:
        """Banked duration from earlier viewings plus active time in this one."""
        return math.floor(self.baseline_duration + self.total_active_seconds)

    def snapshot(self) -> ProgressSnapshot:
        """The in-progress state as pushed to the persistence collaborator."""
        with self._lock:
            session = self._require_session()
            return ProgressSnapshot(
                current_card_index=session.current_card_index,
                answers=dict(session.answers),
                streak=session.streak,
                session_xp=session.session_xp,
                hinted_card_ids=list(session.hinted_card_ids),
                duration_seconds=self.duration_seconds,
            )

    def progress(self) -> Dict[str, Any]:
        """
        Summarize the open session for display.

        Returns:
            dict with `total_cards`, `correct`, `incorrect`, `skipped`,
            `unanswered`, `current_card_index`, `streak`, `session_xp`,
            `duration_seconds` and `status`.
        """
        with self._lock:
            session = self._require_session()
            correct, incorrect, skipped, unanswered = session.answer_counts()
            return {
                "total_cards": session.total_cards,
                "correct": correct,
                "incorrect": incorrect,
                "skipped": skipped,
                "unanswered": unanswered,
                "current_card_index": session.current_card_index,
                "streak": session.streak,
                "session_xp": session.session_xp,
                "duration_seconds": self.duration_seconds,
                "status": session.status.value,
            }

    # ------------------------------------------------------------------
    # Guards and bookkeeping
    # ------------------------------------------------------------------

    def _require_session(self) -> StudySession:
        if self.session is None:
            raise InvariantViolationError(
                "No active session. Create or resume a session first."
            )
        return self.session

    def _require_open(self) -> StudySession:
        session = self._require_session()
        if session.status.is_terminal:
            raise InvariantViolationError(
                f"Session {session.session_id} is {session.status.value}; "
                "no further actions are allowed."
            )
        return session

    def _require_card(self, session: StudySession, card_id: str) -> None:
        if card_id not in self.cards:
            raise InvariantViolationError(
                f"Card {card_id} is not part of session {session.session_id}."
            )

    def _record_card_time(self, now: datetime) -> None:
        """Bank the time spent on the current card and open a new window."""
        card_id = self.current_card_id
        if card_id is not None and self.card_started_at is not None:
            elapsed = (now - self.card_started_at).total_seconds()
            capped = min(max(elapsed, 0.0), self.config.max_card_seconds)
            self.per_card_seconds[card_id] = self.per_card_seconds.get(card_id, 0.0) + capped
            self.total_active_seconds += capped
        self.card_started_at = now

    def _reset_view(self) -> None:
        self.view = CardViewState(
            hint_revealed=self.session is not None
            and self.current_card_id in self.session.hinted_card_ids
        )

    def _touch(self, session: StudySession, now: datetime) -> None:
        """Mark the session as changed since the last successful push."""
        if session.status == SessionStatus.CREATED:
            session.status = SessionStatus.IN_PROGRESS
        session.last_activity_at = now
        self.dirty = True
        self._revision += 1

    def _emit(self, event_type: SessionEventType, **payload: Any) -> None:
        session_id = self.session.session_id if self.session is not None else None
        self.events.emit(SessionEvent(type=event_type, session_id=session_id, payload=payload))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        deck_id: str,
        identity: SessionIdentity,
        method: SelectionMethod = SelectionMethod.ALL,
        options: Optional[SelectionOptions] = None,
        exclude_active_session_cards: bool = False,
        title: Optional[str] = None,
    ) -> SessionCreation:
        """
        Select cards from a deck and open a new session on them.

        Parameters:
            deck_id (str): Deck to study.
            identity (SessionIdentity): Owner of the session (user or guest).
            method (SelectionMethod): Card selection strategy.
            options (Optional[SelectionOptions]): Count, ids and filters.
            exclude_active_session_cards (bool): Leave out cards that are in
                the identity's other open sessions.
            title (Optional[str]): Display title; derived from the method when omitted.

        Returns:
            SessionCreation: The stored session plus available and mastered counts.

        Raises:
            InvariantViolationError: If another session is still open.
            InvalidSelectionError: For a manual selection without ids, or a
                strategy not offered to guests.
            NoCardsAvailableError: If the selection is empty.
            PersistenceError: If the deck cannot be loaded or the session stored.
                Engine state is untouched in every failure case.
        """
        method = SelectionMethod(method)
        if identity.is_guest and method.value not in GUEST_SELECTION_METHODS:
            raise InvalidSelectionError(
                f"Selection method '{method.value}' is not available for guest sessions."
            )
        options = options or SelectionOptions()

        with self._lock:
            if self.is_open:
                raise InvariantViolationError(
                    "A session is already active. Complete or abandon it first."
                )

        snapshot = self.store.load_deck(deck_id, identity)
        if exclude_active_session_cards:
            active_ids = self.store.get_active_session_card_ids(identity)
            options = options.model_copy(
                update={"exclude_card_ids": set(options.exclude_card_ids) | set(active_ids)}
            )

        today = self.clock.today()
        result = self.selector.select(
            snapshot.cards, snapshot.review_states, method, options, today
        )
        if not result.cards:
            raise NoCardsAvailableError(
                f"No cards available in deck '{deck_id}' for a '{method.value}' session "
                f"({result.mastered_count} mastered cards excluded)."
            )

        cards = result.cards
        if self.config.interleave_card_types:
            cards = interleave_by_type(cards)

        if title is None:
            title = f"{method.value.title()} - {len(cards)} cards"
            if identity.is_guest:
                title = f"Guest - {title}"

        now = self.clock.now()
        session = StudySession(
            identity=identity,
            deck_id=deck_id,
            title=title,
            selection_method=method,
            difficulty=snapshot.deck.difficulty,
            card_ids=[card.card_id for card in cards],
            started_at=now,
            last_activity_at=now,
        )
        stored = self.store.create_session(session)

        with self._lock:
            self._reset_engine_state()
            self.session = stored
            self.cards = {card.card_id: card for card in cards}
            self.review_states = {
                card.card_id: snapshot.review_states[card.card_id]
                for card in cards
                if card.card_id in snapshot.review_states
            }
            self.card_started_at = now
            self._reset_view()

        logger.info(
            f"Created session {stored.session_id} for {identity.key} on deck '{deck_id}' "
            f"with {len(cards)} cards ({method.value})"
        )
        self._emit(
            SessionEventType.CREATED,
            card_count=len(cards),
            available_count=result.available_count,
            mastered_count=result.mastered_count,
        )
        return SessionCreation(
            session=stored.model_copy(deep=True),
            available_count=result.available_count,
            mastered_count=result.mastered_count,
        )

    def resume(self, saved: StudySession) -> StudySession:
        """
        Reopen a stored session.

        The starting card is recomputed instead of trusting the stored index:
        the first unanswered card, else the first skipped card, else (every
        card answered) the answers are cleared and the session starts over.
        Session XP and streak always restart at 0. Hints already paid for stay
        free. The recomputed state is pushed to the store right away.

        Autosave is paused while the session is loaded and restored afterwards,
        whether or not the resume succeeds.

        Parameters:
            saved (StudySession): The session as last stored.

        Returns:
            StudySession: A copy of the resumed session state.

        Raises:
            InvariantViolationError: If the session is already finished or a
                different session is still open in this engine.
            NoCardsAvailableError: If none of the session's cards still exist.
        """
        if saved.status.is_terminal:
            raise InvariantViolationError(
                f"Session {saved.session_id} is {saved.status.value} and cannot be resumed."
            )
        with self._lock:
            if self.is_open and self.session.session_id != saved.session_id:
                raise InvariantViolationError(
                    "A different session is already active. Complete or abandon it first."
                )
        if saved.deck_id is None:
            raise NoCardsAvailableError(
                f"The deck of session {saved.session_id} no longer exists."
            )

        was_autosaving = self._pause_autosave()
        try:
            session = self._load_resumed(saved)
        finally:
            if was_autosaving:
                self.enable_autosave()
        self._emit(SessionEventType.RESUMED, current_card_index=session.current_card_index)
        return session.model_copy(deep=True)

    def _load_resumed(self, saved: StudySession) -> StudySession:
        snapshot = self.store.load_deck(saved.deck_id, saved.identity)
        cards_by_id = {card.card_id: card for card in snapshot.cards}
        card_ids = [card_id for card_id in saved.card_ids if card_id in cards_by_id]
        missing = len(saved.card_ids) - len(card_ids)
        if missing:
            logger.warning(
                f"{missing} cards of session {saved.session_id} were deleted from the deck"
            )
        if not card_ids:
            raise NoCardsAvailableError(
                f"None of the cards of session {saved.session_id} exist anymore."
            )

        answers = {
            card_id: status
            for card_id, status in saved.answers.items()
            if card_id in card_ids
        }
        start_index = self._resume_index(card_ids, answers)
        if start_index is None:
            logger.info(f"Session {saved.session_id} was fully answered; starting over")
            answers = {}
            start_index = 0

        now = self.clock.now()
        data = saved.model_dump()
        data.update(
            card_ids=card_ids,
            answers=answers,
            hinted_card_ids=[
                card_id for card_id in saved.hinted_card_ids if card_id in card_ids
            ],
            current_card_index=start_index,
            streak=0,
            session_xp=0,
            status=SessionStatus.IN_PROGRESS,
            last_activity_at=now,
        )
        session = StudySession.model_validate(data)

        with self._lock:
            self._reset_engine_state()
            self.session = session
            self.cards = {card_id: cards_by_id[card_id] for card_id in card_ids}
            self.review_states = {
                card_id: snapshot.review_states[card_id]
                for card_id in card_ids
                if card_id in snapshot.review_states
            }
            self.baseline_duration = saved.duration_seconds
            self.card_started_at = now
            self._reset_view()
            self.dirty = True
            self._revision += 1

        logger.info(
            f"Resumed session {session.session_id} at card {start_index + 1} of {len(card_ids)}"
        )
        self.flush()
        return session

    def resume_by_id(self, session_id: UUID, identity: SessionIdentity) -> StudySession:
        """Load a stored session and resume it."""
        return self.resume(self.store.load_session(session_id, identity))

    @staticmethod
    def _resume_index(
        card_ids: Sequence[str], answers: Mapping[str, AnswerStatus]
    ) -> Optional[int]:
        for index, card_id in enumerate(card_ids):
            if card_id not in answers:
                return index
        for index, card_id in enumerate(card_ids):
            if answers[card_id] == AnswerStatus.SKIPPED:
                return index
        return None

    def complete(self, qualities: Optional[Mapping[str, int]] = None) -> CompletionOutcome:
        """
        Finish the session and schedule every answered card.

        Every card answered correct or incorrect gets a new review state from
        the scheduler (skipped and unanswered cards are left alone). The batch
        is handed to the store together with the final score and counts.

        Parameters:
            qualities (Optional[Mapping[str, int]]): Recall quality per card id.
                Cards not listed use the configured quality for a correct or
                incorrect answer.

        Returns:
            CompletionOutcome: Score, counts, duration, XP earned and level-up info.

        Raises:
            InvariantViolationError: If no open session exists.
            PersistenceFailedOnFinalizeError: If the store rejected the completion.
                The session stays open and can be completed again or resumed later.
        """
        qualities = qualities or {}
        with self._lock:
            self._require_open()
        was_autosaving = self._pause_autosave()

        with self._lock:
            session = self._require_open()
            now = self.clock.now()
            self._record_card_time(now)

            correct, incorrect, skipped, unanswered = session.answer_counts()
            score = round_half_up(correct / session.total_cards * 100)
            duration = self.duration_seconds

            updates: List[CardProgressUpdate] = []
            for card_id in session.card_ids:
                answer = session.answer_for(card_id)
                if not answer.is_terminal:
                    continue
                was_correct = answer == AnswerStatus.CORRECT
                default_quality = (
                    self.config.quality_correct if was_correct else self.config.quality_incorrect
                )
                updates.append(
                    CardProgressUpdate(
                        card_id=card_id,
                        was_correct=was_correct,
                        time_spent_seconds=math.floor(self.per_card_seconds.get(card_id, 0.0)),
                        quality=self.scheduler_quality(qualities.get(card_id, default_quality)),
                    )
                )
            new_states = self.review_processor.process_batch(
                updates, self.review_states, self.clock.today(), now
            )
            request = CompletionRequest(
                score=score,
                correct_count=correct,
                incorrect_count=incorrect,
                skipped_count=skipped + unanswered,
                duration_seconds=duration,
                session_xp=session.session_xp,
                card_progress_updates=updates,
                review_states=new_states,
            )
            session_id, identity = session.session_id, session.identity

        try:
            ack = self.store.complete_session(session_id, identity, request)
        except PersistenceError as e:
            logger.error(f"Failed to complete session {session_id}: {e}")
            if was_autosaving:
                self.enable_autosave()
            raise PersistenceFailedOnFinalizeError(
                f"Could not complete session {session_id}: {e}", original_exception=e
            ) from e

        with self._lock:
            session.status = SessionStatus.COMPLETED
            session.score = score
            session.correct_count = correct
            session.incorrect_count = incorrect
            session.skipped_count = skipped + unanswered
            session.duration_seconds = duration
            session.completed_at = now
            session.last_activity_at = now
            self.review_states.update({state.card_id: state for state in new_states})
            self.dirty = False

        outcome = CompletionOutcome(
            score=score,
            correct_count=correct,
            incorrect_count=incorrect,
            skipped_count=skipped + unanswered,
            duration_seconds=duration,
            xp_earned=ack.xp_earned,
            leveled_up=ack.leveled_up,
            new_level=ack.new_level,
            cards_learned=ack.cards_learned,
            new_achievements=list(ack.new_achievements),
        )
        logger.info(
            f"Completed session {session_id}. Score: {score}%, "
            f"correct {correct}, incorrect {incorrect}, skipped {skipped + unanswered}, "
            f"duration {duration}s, reviews scheduled {len(new_states)}"
        )
        self._emit(SessionEventType.COMPLETED, outcome=outcome.model_dump())
        if ack.user_totals is not None:
            self._emit(SessionEventType.USER_TOTALS_UPDATED, totals=ack.user_totals.model_dump())
        return outcome

    @staticmethod
    def scheduler_quality(quality: int) -> int:
        return max(0, min(5, int(quality)))

    def abandon(self) -> None:
        """
        Close the session without scheduling any card.

        Raises:
            InvariantViolationError: If no open session exists.
            PersistenceFailedOnFinalizeError: If the store rejected the request;
                the session stays open.
        """
        with self._lock:
            self._require_open()
        was_autosaving = self._pause_autosave()
        with self._lock:
            session = self._require_open()
            session_id, identity = session.session_id, session.identity

        try:
            self.store.abandon_session(session_id, identity)
        except PersistenceError as e:
            logger.error(f"Failed to abandon session {session_id}: {e}")
            if was_autosaving:
                self.enable_autosave()
            raise PersistenceFailedOnFinalizeError(
                f"Could not abandon session {session_id}: {e}", original_exception=e
            ) from e

        with self._lock:
            now = self.clock.now()
            session.status = SessionStatus.ABANDONED
            session.last_activity_at = now
            self.dirty = False
        logger.info(f"Abandoned session {session_id}")
        self._emit(SessionEventType.ABANDONED)

    def close(self) -> None:
        """Forget the current session. Unsaved progress is pushed once first."""
        self.disable_autosave()
        if self.is_open and self.dirty:
            self.flush()
        with self._lock:
            self._reset_engine_state()

    # ------------------------------------------------------------------
    # Learner actions
    # ------------------------------------------------------------------

    def answer(self, card_id: str, is_correct: bool) -> int:
        """
        Record an answer for a card.

        A card that already has a correct/incorrect answer is left untouched,
        so XP can never be awarded twice. A skipped card can still be answered
        and earns XP normally.

        Parameters:
            card_id (str): The answered card.
            is_correct (bool): Whether the learner got it right.

        Returns:
            int: XP awarded for this answer (0 when ignored or incorrect).

        Raises:
            InvariantViolationError: With no open session or a foreign card id.
        """
        with self._lock:
            session = self._require_open()
            self._require_card(session, card_id)
            if session.answer_for(card_id).is_terminal:
                logger.debug(f"Ignoring repeat answer for card {card_id}")
                return 0

            now = self.clock.now()
            self._record_card_time(now)
            xp = calculate_xp(is_correct, session.streak, session.difficulty)
            status = AnswerStatus.CORRECT if is_correct else AnswerStatus.INCORRECT
            session.answers = {**session.answers, card_id: status}
            session.streak = session.streak + 1 if is_correct else 0
            session.session_xp += xp
            self._touch(session, now)
            streak, session_xp = session.streak, session.session_xp

        logger.debug(f"Card {card_id} answered {status.value}: +{xp} XP, streak {streak}")
        self._emit(
            SessionEventType.ANSWERED,
            card_id=card_id,
            is_correct=is_correct,
            xp_earned=xp,
            streak=streak,
            session_xp=session_xp,
        )
        return xp

    def skip(self, card_id: str) -> None:
        """
        Mark a card as skipped. Streak and XP are unchanged. Cards that
        already have a correct/incorrect answer keep it.
        """
        with self._lock:
            session = self._require_open()
            self._require_card(session, card_id)
            if session.answer_for(card_id).is_terminal:
                logger.debug(f"Ignoring skip for already answered card {card_id}")
                return
            now = self.clock.now()
            self._record_card_time(now)
            session.answers = {**session.answers, card_id: AnswerStatus.SKIPPED}
            self._touch(session, now)

        logger.debug(f"Card {card_id} skipped")
        self._emit(SessionEventType.SKIPPED, card_id=card_id)

    def advance(self) -> int:
        """Move to the next card (staying on the last one). Returns the new index."""
        with self._lock:
            session = self._require_open()
            now = self.clock.now()
            self._record_card_time(now)
            new_index = min(session.current_card_index + 1, session.total_cards - 1)
            if new_index != session.current_card_index:
                session.current_card_index = new_index
                self._touch(session, now)
            self._reset_view()

        self._emit(SessionEventType.NAVIGATED, current_card_index=new_index)
        return new_index

    def undo(self) -> int:
        """
        Go back to the previous card. Its answer is kept, so progress
        indicators stay accurate. No-op on the first card.
        """
        with self._lock:
            session = self._require_open()
            if session.current_card_index == 0:
                return 0
            now = self.clock.now()
            self._record_card_time(now)
            session.current_card_index -= 1
            new_index = session.current_card_index
            self._reset_view()
            self._touch(session, now)

        self._emit(SessionEventType.NAVIGATED, current_card_index=new_index)
        return new_index

    def shuffle(self) -> None:
        """Shuffle the cards and start over. Banked time and paid hints are kept."""
        with self._lock:
            session = self._require_open()
            order = list(session.card_ids)
            self.rng.shuffle(order)
            self._reset_progress(session, order)
        logger.debug("Session shuffled and reset")
        self._emit(SessionEventType.RESET, shuffled=True)

    def restart(self) -> None:
        """Start over in the same order. Banked time and paid hints are kept."""
        with self._lock:
            session = self._require_open()
            self._reset_progress(session, list(session.card_ids))
        logger.debug("Session restarted")
        self._emit(SessionEventType.RESET, shuffled=False)

    def _reset_progress(self, session: StudySession, order: List[str]) -> None:
        now = self.clock.now()
        self._record_card_time(now)
        session.answers = {}
        session.card_ids = order
        session.current_card_index = 0
        session.streak = 0
        session.session_xp = 0
        self.per_card_seconds = {}
        self.card_started_at = now
        self._reset_view()
        self._touch(session, now)

    def reveal_hint(self, card_id: Optional[str] = None) -> int:
        """
        Reveal a card's hint (the current card by default).

        The first reveal of a card costs the configured hint price, bounded
        so session XP never drops below 0. Revealing it again is free for the
        rest of the session, including after a restart, shuffle or resume.

        Returns:
            int: XP actually deducted.
        """
        with self._lock:
            session = self._require_open()
            card_id = card_id or self.current_card_id
            self._require_card(session, card_id)
            if card_id == self.current_card_id:
                self.view.hint_revealed = True
            if card_id in session.hinted_card_ids:
                return 0
            before = session.session_xp
            session.session_xp = apply_hint_cost(before, self.config.hint_cost)
            deducted = before - session.session_xp
            session.hinted_card_ids = session.hinted_card_ids + [card_id]
            self._touch(session, self.clock.now())
            session_xp = session.session_xp

        self._emit(
            SessionEventType.HINT_REVEALED,
            card_id=card_id,
            xp_deducted=deducted,
            session_xp=session_xp,
        )
        return deducted

    def flip(self) -> bool:
        with self._lock:
            self._require_open()
            self.view.flipped = not self.view.flipped
            return self.view.flipped

    def select_option(self, index: Optional[int]) -> None:
        with self._lock:
            self._require_open()
            self.view.selected_option = index

    def toggle_option(self, index: int) -> List[int]:
        """Toggle an option of a multiple-answer card. Returns the selection."""
        with self._lock:
            self._require_open()
            selected = self.view.selected_options
            if index in selected:
                self.view.selected_options = [i for i in selected if i != index]
            else:
                self.view.selected_options = selected + [index]
            return list(self.view.selected_options)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def flush(self) -> bool:
        """
        Push the current snapshot if anything changed since the last push.

        The snapshot is taken under the lock; the store is called without it.
        If the learner acted while the push was in flight, the session stays
        dirty so the next tick pushes the newer state. A failed push only
        logs and keeps the session dirty.

        Returns:
            bool: True if a snapshot was stored.
        """
        with self._lock:
            session = self.session
            if session is None or session.status.is_terminal or not self.dirty:
                return False
            snapshot = self.snapshot()
            revision = self._revision
            session_id, identity = session.session_id, session.identity

        try:
            ack = self.store.persist_progress(session_id, identity, snapshot)
        except PersistenceError as e:
            logger.warning(f"Autosave of session {session_id} failed; will retry: {e}")
            self._emit(SessionEventType.PERSIST_FAILED, error=str(e))
            return False

        with self._lock:
            if (
                self.session is not None
                and self.session.session_id == session_id
                and self._revision == revision
            ):
                self.dirty = False

        logger.debug(
            f"Persisted session {session_id}: card {snapshot.current_card_index + 1}, "
            f"{snapshot.session_xp} XP, {snapshot.duration_seconds}s"
        )
        self._emit(SessionEventType.PROGRESS_PERSISTED, snapshot=snapshot.model_dump())
        if ack.user_totals is not None:
            self._emit(SessionEventType.USER_TOTALS_UPDATED, totals=ack.user_totals.model_dump())
        return True

    def enable_autosave(self, interval_seconds: Optional[float] = None) -> None:
        """Start pushing dirty state every `interval_seconds` (default from config)."""
        self.disable_autosave()
        self._autosave = AutosaveTimer(
            self.flush, interval_seconds or self.config.autosave_interval_seconds
        )
        self._autosave.start()

    def disable_autosave(self) -> None:
        if self._autosave is not None:
            self._autosave.stop()
            self._autosave = None

    @property
    def autosave_enabled(self) -> bool:
        return self._autosave is not None and self._autosave.is_running

    def _pause_autosave(self) -> bool:
        running = self.autosave_enabled
        self.disable_autosave()
        return running
