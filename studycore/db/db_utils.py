"""
Marshalling between the pydantic models and DuckDB rows.
Keeps column knowledge out of the StudyDatabase facade.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..exceptions import MarshallingError
from ..models import (
    AnswerStatus,
    Card,
    Deck,
    IdentityKind,
    ReviewState,
    SessionIdentity,
    StudySession,
    UserTotals,
)


def to_db_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes become naive UTC; naive ones are assumed to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def answers_to_json(answers: Dict[str, AnswerStatus]) -> str:
    return json.dumps(
        {card_id: AnswerStatus(status).value for card_id, status in answers.items()},
        sort_keys=True,
    )


def answers_from_json(raw: Optional[str]) -> Dict[str, AnswerStatus]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
        return {card_id: AnswerStatus(status) for card_id, status in data.items()}
    except (ValueError, AttributeError) as e:
        raise MarshallingError(
            f"Stored answers are not valid JSON: {raw!r}", original_exception=e
        ) from e


def deck_to_db_params(deck: Deck, now: datetime) -> Tuple:
    """(deck_id, title, difficulty, description, created_at, modified_at)"""
    stamp = to_db_timestamp(now)
    return (
        deck.deck_id,
        deck.title,
        deck.difficulty.value,
        deck.description,
        stamp,
        stamp,
    )


def db_row_to_deck(row_dict: Dict[str, Any]) -> Deck:
    data = {
        key: row_dict[key]
        for key in ("deck_id", "title", "difficulty", "description")
    }
    try:
        return Deck(**data)
    except ValidationError as e:
        raise MarshallingError(
            f"Failed to parse deck from DB row: {row_dict}. Error: {e}",
            original_exception=e,
        ) from e


def card_to_db_params_list(cards: Sequence[Card], now: datetime) -> List[Tuple]:
    """
    Rows for a bulk card upsert, in column order:
    (card_id, deck_id, front, back, context, hint, card_type, options,
    correct_indices, position, added_at, modified_at).
    """
    stamp = to_db_timestamp(now)
    return [
        (
            card.card_id,
            card.deck_id,
            card.front,
            card.back,
            card.context,
            card.hint,
            card.card_type.value,
            list(card.options) if card.options else None,
            list(card.correct_indices) if card.correct_indices else None,
            card.position,
            stamp,
            stamp,
        )
        for card in cards
    ]


def db_row_to_card(row_dict: Dict[str, Any]) -> Card:
    """
    Build a Card from a cards row. Bookkeeping timestamps are dropped.

    Raises:
        MarshallingError: If the row does not validate.
    """
    data = row_dict.copy()
    data.pop("added_at", None)
    data.pop("modified_at", None)
    data["options"] = data.get("options") or []
    data["correct_indices"] = data.get("correct_indices") or []
    try:
        return Card(**data)
    except ValidationError as e:
        raise MarshallingError(
            f"Failed to parse card from DB row: {row_dict}. Error: {e}",
            original_exception=e,
        ) from e


def review_state_to_db_params(user_id: str, state: ReviewState) -> Tuple:
    """
    (user_id, card_id, status, ease_factor, interval_days, repetitions,
    next_review_date, times_seen, times_correct, times_incorrect, last_reviewed_at)
    """
    return (
        user_id,
        state.card_id,
        state.status.value,
        state.ease_factor,
        state.interval,
        state.repetitions,
        state.next_review_date,
        state.times_seen,
        state.times_correct,
        state.times_incorrect,
        to_db_timestamp(state.last_reviewed_at),
    )


def db_row_to_review_state(row_dict: Dict[str, Any]) -> ReviewState:
    data = row_dict.copy()
    data.pop("user_id", None)
    data["interval"] = data.pop("interval_days")
    data["last_reviewed_at"] = from_db_timestamp(data.get("last_reviewed_at"))
    try:
        return ReviewState(**data)
    except ValidationError as e:
        raise MarshallingError(
            f"Failed to parse review state from DB row: {row_dict}. Error: {e}",
            original_exception=e,
        ) from e


def db_row_to_user_totals(row_dict: Dict[str, Any]) -> UserTotals:
    return UserTotals(
        level=row_dict["level"],
        current_xp=row_dict["current_xp"],
        next_level_xp=row_dict["next_level_xp"],
        total_xp=row_dict["total_xp"],
    )


def session_to_db_params(session: StudySession) -> Tuple:
    """
    Row for inserting a new session. Column order matches
    StudyDatabase._INSERT_SESSION_SQL.
    """
    return (
        session.session_id,
        session.identity.kind.value,
        session.identity.value,
        session.deck_id,
        session.title,
        session.selection_method.value,
        session.difficulty.value,
        list(session.card_ids),
        session.current_card_index,
        answers_to_json(session.answers),
        session.streak,
        session.session_xp,
        list(session.hinted_card_ids) if session.hinted_card_ids else None,
        session.duration_seconds,
        session.status.value,
        session.score,
        session.correct_count,
        session.incorrect_count,
        session.skipped_count,
        to_db_timestamp(session.started_at),
        to_db_timestamp(session.completed_at),
        to_db_timestamp(session.last_activity_at),
    )


def db_row_to_session(row_dict: Dict[str, Any]) -> StudySession:
    """
    Build a StudySession from a study_sessions row.

    Raises:
        MarshallingError: If the stored data does not form a valid session.
    """
    data = row_dict.copy()
    kind = data.pop("identity_kind")
    value = data.pop("identity_value")
    try:
        data["identity"] = SessionIdentity(kind=IdentityKind(kind), value=value)
        data["answers"] = answers_from_json(data.get("answers"))
        data["hinted_card_ids"] = data.get("hinted_card_ids") or []
        for key in ("started_at", "completed_at", "last_activity_at"):
            data[key] = from_db_timestamp(data.get(key))
        return StudySession(**data)
    except (ValidationError, ValueError) as e:
        raise MarshallingError(
            f"Data validation failed for session {row_dict.get('session_id')}: {e}",
            original_exception=e,
        ) from e
