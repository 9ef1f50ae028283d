"""
DuckDB database interactions for studycore.
Implements StudyDatabase, the reference SessionStore used by the CLI.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union
from uuid import UUID

import duckdb

from . import db_utils
from .connection import ConnectionHandler
from .schema_manager import SchemaManager
from ..exceptions import (
    CardOperationError,
    DatabaseConnectionError,
    DatabaseError,
    DeckNotFoundError,
    ReviewStateOperationError,
    SessionNotFoundError,
    SessionOperationError,
)
from ..models import (
    Card,
    CompletionAck,
    CompletionRequest,
    Deck,
    ProgressAck,
    ProgressSnapshot,
    ReviewState,
    ReviewStatus,
    SessionIdentity,
    SessionStatus,
    StudySession,
    UserTotals,
)
from ..persistence import DeckSnapshot, SessionStore
from ..rewards import add_xp

# --- Logging Setup ---
logger = logging.getLogger(__name__)

OPEN_STATUSES = (SessionStatus.CREATED.value, SessionStatus.IN_PROGRESS.value)


def _rows_to_dicts(cursor: duckdb.DuckDBPyConnection) -> List[Dict[str, Any]]:
    """Convert cursor results to list of dictionaries using column names."""
    rows = cursor.fetchall()
    if not rows or cursor.description is None:
        return []
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row, strict=True)) for row in rows]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StudyDatabase(SessionStore):
    """
    Facade over the DuckDB subsystem: decks, cards, per-user review states,
    user XP totals and study sessions.

    Coordinates the ConnectionHandler, SchemaManager and db_utils marshalling.
    Intended for use as a context manager; the schema is created the first
    time a new database is opened.
    """

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        """
        Args:
            db_path (str | Path): Database file, or ':memory:' for an in-memory database.
            read_only (bool): Open the database read-only.
        """
        self._handler = ConnectionHandler(db_path=db_path, read_only=read_only)
        self._schema_manager = SchemaManager(self._handler)

    @property
    def db_path_resolved(self) -> Path:
        return self._handler.db_path_resolved

    @property
    def read_only(self) -> bool:
        return self._handler.read_only

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self._handler.get_connection()

    def close_connection(self) -> None:
        self._handler.close_connection()

    def __enter__(self) -> "StudyDatabase":
        self.get_connection()
        if self._handler.is_new_db and not self._handler.read_only:
            self.initialize_schema()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_connection()

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        self._schema_manager.initialize_schema(
            force_recreate_tables=force_recreate_tables
        )

    def _require_writable(self, action: str) -> None:
        if self.read_only:
            raise DatabaseConnectionError(f"Cannot {action} in read-only mode.")

    @contextmanager
    def _transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """
        Yield a cursor inside BEGIN/COMMIT. Any exception rolls back and
        propagates unchanged.
        """
        conn = self.get_connection()
        with conn.cursor() as cursor:
            cursor.begin()
            try:
                yield cursor
            except BaseException:
                try:
                    cursor.rollback()
                    logger.info("Transaction rolled back.")
                except duckdb.Error as rb_err:
                    logger.error(f"Failed to rollback transaction: {rb_err}")
                raise
            cursor.commit()

    # --- Deck and Card Operations ---
    # fmt: off
    _UPSERT_DECK_SQL = """
        INSERT INTO decks (deck_id, title, difficulty, description, created_at, modified_at)
        VALUES ($1, $2, $3, $4, $5, $6)
        ON CONFLICT (deck_id) DO UPDATE SET
            title = EXCLUDED.title,
            difficulty = EXCLUDED.difficulty,
            description = EXCLUDED.description,
            modified_at = EXCLUDED.modified_at;
        """

    _UPSERT_CARDS_SQL = """
        INSERT INTO cards (card_id, deck_id, front, back, context, hint, card_type,
                           options, correct_indices, position, added_at, modified_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
        ON CONFLICT (card_id) DO UPDATE SET
            deck_id = EXCLUDED.deck_id,
            front = EXCLUDED.front,
            back = EXCLUDED.back,
            context = EXCLUDED.context,
            hint = EXCLUDED.hint,
            card_type = EXCLUDED.card_type,
            options = EXCLUDED.options,
            correct_indices = EXCLUDED.correct_indices,
            position = EXCLUDED.position,
            modified_at = EXCLUDED.modified_at;
        """
    # fmt: on

    def upsert_deck(self, deck: Deck) -> Deck:
        """Insert a deck or update its title, difficulty and description."""
        self._require_writable("upsert a deck")
        try:
            with self._transaction() as cursor:
                cursor.execute(
                    self._UPSERT_DECK_SQL, db_utils.deck_to_db_params(deck, _now())
                )
        except duckdb.Error as e:
            logger.error(f"Error upserting deck '{deck.deck_id}': {e}")
            raise CardOperationError(
                f"Failed to upsert deck '{deck.deck_id}': {e}", original_exception=e
            ) from e
        logger.info(f"Upserted deck '{deck.deck_id}'")
        return deck

    def upsert_cards_batch(self, cards: Sequence[Card]) -> int:
        """
        Upsert cards in a single transaction. Existing cards keep their
        added_at timestamp; review states are never touched.

        Returns:
            int: Number of cards processed.

        Raises:
            CardOperationError: If the batch fails. Nothing is written then.
        """
        if not cards:
            return 0
        self._require_writable("upsert cards")
        params = db_utils.card_to_db_params_list(cards, _now())
        try:
            with self._transaction() as cursor:
                cursor.executemany(self._UPSERT_CARDS_SQL, params)
        except duckdb.Error as e:
            logger.error(f"Error during batch card upsert: {e}")
            raise CardOperationError(
                f"Batch card upsert failed: {e}", original_exception=e
            ) from e
        logger.info(f"Upserted {len(params)} cards.")
        return len(params)

    def get_deck(self, deck_id: str) -> Optional[Deck]:
        conn = self.get_connection()
        try:
            cursor = conn.execute("SELECT * FROM decks WHERE deck_id = $1;", (deck_id,))
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error fetching deck '{deck_id}': {e}")
            raise CardOperationError(
                f"Failed to fetch deck '{deck_id}': {e}", original_exception=e
            ) from e
        return db_utils.db_row_to_deck(rows[0]) if rows else None

    def list_decks(self) -> List[Deck]:
        conn = self.get_connection()
        try:
            cursor = conn.execute("SELECT * FROM decks ORDER BY title, deck_id;")
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Could not list decks due to a database error: {e}")
            raise CardOperationError("Could not list decks.", original_exception=e) from e
        return [db_utils.db_row_to_deck(row) for row in rows]

    def get_cards_for_deck(self, deck_id: str) -> List[Card]:
        """Cards of a deck ordered by position, then front."""
        conn = self.get_connection()
        sql = "SELECT * FROM cards WHERE deck_id = $1 ORDER BY position, front;"
        try:
            cursor = conn.execute(sql, (deck_id,))
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error fetching cards for deck '{deck_id}': {e}")
            raise CardOperationError(
                f"Failed to fetch cards for deck '{deck_id}': {e}", original_exception=e
            ) from e
        return [db_utils.db_row_to_card(row) for row in rows]

    def delete_deck(self, deck_id: str) -> int:
        """
        Delete a deck and its cards. Sessions that used the deck keep their
        history but lose the link to it (deck_id becomes NULL).

        Returns:
            int: Number of cards deleted.

        Raises:
            DeckNotFoundError: If the deck does not exist.
        """
        self._require_writable("delete a deck")
        if self.get_deck(deck_id) is None:
            raise DeckNotFoundError(f"Deck '{deck_id}' not found.")
        try:
            with self._transaction() as cursor:
                count_row = cursor.execute(
                    "SELECT COUNT(*) FROM cards WHERE deck_id = $1;", (deck_id,)
                ).fetchone()
                cursor.execute("DELETE FROM cards WHERE deck_id = $1;", (deck_id,))
                cursor.execute(
                    "UPDATE study_sessions SET deck_id = NULL WHERE deck_id = $1;",
                    (deck_id,),
                )
                cursor.execute("DELETE FROM decks WHERE deck_id = $1;", (deck_id,))
        except duckdb.Error as e:
            logger.error(f"Error deleting deck '{deck_id}': {e}")
            raise CardOperationError(
                f"Failed to delete deck '{deck_id}': {e}", original_exception=e
            ) from e
        deleted = count_row[0] if count_row else 0
        logger.info(f"Deleted deck '{deck_id}' with {deleted} cards")
        return deleted

    def get_deck_stats(self, user_id: Optional[str], on_date: date) -> List[Dict[str, Any]]:
        """
        Per-deck card and due counts for a user.

        Returns:
            List of dicts with `deck_id`, `title`, `difficulty`, `card_count`
            and `due_count`, ordered by title.
        """
        conn = self.get_connection()
        sql = """
        SELECT
            d.deck_id,
            d.title,
            d.difficulty,
            COUNT(c.card_id) AS card_count,
            COUNT(CASE WHEN rs.next_review_date <= $2 THEN 1 END) AS due_count
        FROM decks d
        LEFT JOIN cards c ON c.deck_id = d.deck_id
        LEFT JOIN review_states rs ON rs.card_id = c.card_id AND rs.user_id = $1
        GROUP BY d.deck_id, d.title, d.difficulty
        ORDER BY d.title, d.deck_id;
        """
        try:
            cursor = conn.execute(sql, (user_id, on_date))
            return _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error computing deck statistics: {e}")
            raise CardOperationError(
                f"Failed to compute deck statistics: {e}", original_exception=e
            ) from e

    def get_due_card_count(self, deck_id: str, user_id: str, on_date: date) -> int:
        """Cards of the deck the user has scheduled on or before `on_date`."""
        conn = self.get_connection()
        sql = """
        SELECT COUNT(*)
        FROM cards c
        JOIN review_states rs ON rs.card_id = c.card_id
        WHERE c.deck_id = $1 AND rs.user_id = $2 AND rs.next_review_date <= $3;
        """
        try:
            result = conn.execute(sql, (deck_id, user_id, on_date)).fetchone()
            return result[0] if result else 0
        except duckdb.Error as e:
            logger.error(f"Error counting due cards for deck '{deck_id}': {e}")
            raise ReviewStateOperationError(
                f"Failed to count due cards: {e}", original_exception=e
            ) from e

    # --- Review State Operations ---
    _UPSERT_REVIEW_STATE_SQL = """
        INSERT INTO review_states (user_id, card_id, status, ease_factor, interval_days,
                                   repetitions, next_review_date, times_seen, times_correct,
                                   times_incorrect, last_reviewed_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
        ON CONFLICT (user_id, card_id) DO UPDATE SET
            status = EXCLUDED.status,
            ease_factor = EXCLUDED.ease_factor,
            interval_days = EXCLUDED.interval_days,
            repetitions = EXCLUDED.repetitions,
            next_review_date = EXCLUDED.next_review_date,
            times_seen = EXCLUDED.times_seen,
            times_correct = EXCLUDED.times_correct,
            times_incorrect = EXCLUDED.times_incorrect,
            last_reviewed_at = EXCLUDED.last_reviewed_at;
        """

    def _fetch_review_states(
        self,
        conn: duckdb.DuckDBPyConnection,
        user_id: str,
        card_ids: Optional[Sequence[str]] = None,
    ) -> Dict[str, ReviewState]:
        sql = "SELECT * FROM review_states WHERE user_id = $1"
        params: List[Any] = [user_id]
        if card_ids is not None:
            if not card_ids:
                return {}
            sql += " AND list_contains($2, card_id)"
            params.append(list(card_ids))
        rows = _rows_to_dicts(conn.execute(sql, params))
        states = [db_utils.db_row_to_review_state(row) for row in rows]
        return {state.card_id: state for state in states}

    def get_review_states(
        self, user_id: str, card_ids: Optional[Sequence[str]] = None
    ) -> Dict[str, ReviewState]:
        """Review states of a user keyed by card id, optionally limited to `card_ids`."""
        try:
            return self._fetch_review_states(self.get_connection(), user_id, card_ids)
        except duckdb.Error as e:
            logger.error(f"Error fetching review states for user '{user_id}': {e}")
            raise ReviewStateOperationError(
                f"Failed to fetch review states: {e}", original_exception=e
            ) from e

    def get_review_status_counts(self, user_id: str) -> Dict[ReviewStatus, int]:
        """Number of the user's cards in each review status (zero-filled)."""
        counts = {status: 0 for status in ReviewStatus}
        sql = "SELECT status, COUNT(*) AS n FROM review_states WHERE user_id = $1 GROUP BY status;"
        try:
            rows = _rows_to_dicts(self.get_connection().execute(sql, (user_id,)))
        except duckdb.Error as e:
            logger.error(f"Error counting review states for user '{user_id}': {e}")
            raise ReviewStateOperationError(
                f"Failed to count review states: {e}", original_exception=e
            ) from e
        for row in rows:
            counts[ReviewStatus(row["status"])] = row["n"]
        return counts

    # --- User Totals ---
    def _fetch_user_totals(self, conn: duckdb.DuckDBPyConnection, user_id: str) -> UserTotals:
        rows = _rows_to_dicts(
            conn.execute("SELECT * FROM users WHERE user_id = $1;", (user_id,))
        )
        return db_utils.db_row_to_user_totals(rows[0]) if rows else UserTotals()

    def _save_user_totals(
        self, conn: duckdb.DuckDBPyConnection, user_id: str, totals: UserTotals
    ) -> None:
        conn.execute(
            """
            INSERT INTO users (user_id, level, current_xp, next_level_xp, total_xp, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (user_id) DO UPDATE SET
                level = EXCLUDED.level,
                current_xp = EXCLUDED.current_xp,
                next_level_xp = EXCLUDED.next_level_xp,
                total_xp = EXCLUDED.total_xp,
                updated_at = EXCLUDED.updated_at;
            """,
            (
                user_id,
                totals.level,
                totals.current_xp,
                totals.next_level_xp,
                totals.total_xp,
                db_utils.to_db_timestamp(_now()),
            ),
        )

    def get_user_totals(self, user_id: str) -> UserTotals:
        """Level and XP of a user; a fresh level-1 record if the user is unknown."""
        try:
            return self._fetch_user_totals(self.get_connection(), user_id)
        except duckdb.Error as e:
            logger.error(f"Error fetching totals for user '{user_id}': {e}")
            raise DatabaseError(
                f"Failed to fetch user totals: {e}", original_exception=e
            ) from e

    # --- SessionStore: decks ---
    def load_deck(self, deck_id: str, identity: SessionIdentity) -> DeckSnapshot:
        """
        Cards of a deck plus the identity's review states for them.
        Guests never get review states.

        Raises:
            DeckNotFoundError: If the deck does not exist.
        """
        deck = self.get_deck(deck_id)
        if deck is None:
            raise DeckNotFoundError(f"Deck '{deck_id}' not found.")
        cards = self.get_cards_for_deck(deck_id)
        review_states: Dict[str, ReviewState] = {}
        if not identity.is_guest:
            review_states = self.get_review_states(
                identity.value, [card.card_id for card in cards]
            )
        return DeckSnapshot(deck=deck, cards=cards, review_states=review_states)

    # --- SessionStore: sessions ---
    # fmt: off
    _INSERT_SESSION_SQL = """
        INSERT INTO study_sessions (session_id, identity_kind, identity_value, deck_id, title,
                                    selection_method, difficulty, card_ids, current_card_index,
                                    answers, streak, session_xp, hinted_card_ids, duration_seconds,
                                    status, score, correct_count, incorrect_count, skipped_count,
                                    started_at, completed_at, last_activity_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17,
                $18, $19, $20, $21, $22);
        """
    # fmt: on

    def get_active_session_card_ids(self, identity: SessionIdentity) -> Set[str]:
        sql = """
        SELECT card_ids FROM study_sessions
        WHERE identity_kind = $1 AND identity_value = $2 AND list_contains($3, status);
        """
        try:
            rows = self.get_connection().execute(
                sql, (identity.kind.value, identity.value, list(OPEN_STATUSES))
            ).fetchall()
        except duckdb.Error as e:
            logger.error(f"Error fetching active session cards for {identity.key}: {e}")
            raise SessionOperationError(
                f"Failed to fetch active session cards: {e}", original_exception=e
            ) from e
        card_ids: Set[str] = set()
        for (ids,) in rows:
            card_ids.update(ids or [])
        return card_ids

    def create_session(self, session: StudySession) -> StudySession:
        """
        Insert the initial snapshot of a session.

        Raises:
            SessionOperationError: If the insert fails.
        """
        self._require_writable("create a session")
        try:
            with self._transaction() as cursor:
                cursor.execute(
                    self._INSERT_SESSION_SQL, db_utils.session_to_db_params(session)
                )
        except duckdb.Error as e:
            logger.error(f"Error creating session: {e}")
            raise SessionOperationError(
                f"Failed to create session: {e}", original_exception=e
            ) from e
        logger.info(f"Stored new session {session.session_id} for {session.identity.key}")
        return session

    def _fetch_session_row(
        self,
        conn: duckdb.DuckDBPyConnection,
        session_id: UUID,
        identity: SessionIdentity,
    ) -> Dict[str, Any]:
        rows = _rows_to_dicts(
            conn.execute(
                """
                SELECT * FROM study_sessions
                WHERE session_id = $1 AND identity_kind = $2 AND identity_value = $3;
                """,
                (session_id, identity.kind.value, identity.value),
            )
        )
        if not rows:
            raise SessionNotFoundError(
                f"Session {session_id} not found for {identity.key}."
            )
        return rows[0]

    def _fetch_open_session_row(
        self,
        conn: duckdb.DuckDBPyConnection,
        session_id: UUID,
        identity: SessionIdentity,
        action: str,
    ) -> Dict[str, Any]:
        row = self._fetch_session_row(conn, session_id, identity)
        if row["status"] not in OPEN_STATUSES:
            raise SessionOperationError(
                f"Cannot {action} session {session_id}: it is {row['status']}."
            )
        return row

    def load_session(self, session_id: UUID, identity: SessionIdentity) -> StudySession:
        """
        Raises:
            SessionNotFoundError: If the identity owns no such session.
        """
        try:
            row = self._fetch_session_row(self.get_connection(), session_id, identity)
        except duckdb.Error as e:
            logger.error(f"Error loading session {session_id}: {e}")
            raise SessionOperationError(
                f"Failed to load session {session_id}: {e}", original_exception=e
            ) from e
        return db_utils.db_row_to_session(row)

    def list_sessions(
        self,
        identity: SessionIdentity,
        statuses: Optional[Sequence[SessionStatus]] = None,
        limit: Optional[int] = None,
    ) -> List[StudySession]:
        """Sessions of an identity, most recently active first."""
        sql = "SELECT * FROM study_sessions WHERE identity_kind = $1 AND identity_value = $2"
        params: List[Any] = [identity.kind.value, identity.value]
        if statuses:
            sql += " AND list_contains($3, status)"
            params.append([SessionStatus(status).value for status in statuses])
        sql += " ORDER BY COALESCE(last_activity_at, started_at) DESC"
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        try:
            rows = _rows_to_dicts(self.get_connection().execute(sql, params))
        except duckdb.Error as e:
            logger.error(f"Error listing sessions for {identity.key}: {e}")
            raise SessionOperationError(
                f"Failed to list sessions: {e}", original_exception=e
            ) from e
        return [db_utils.db_row_to_session(row) for row in rows]

    def _credit_xp(
        self,
        conn: duckdb.DuckDBPyConnection,
        identity: SessionIdentity,
        session_xp: int,
        stored_xp: int,
    ) -> Tuple[Optional[UserTotals], bool]:
        """
        Add the XP earned since the last stored snapshot to the user's totals.

        Only increases count. A lower session XP (hint cost, restart, resume)
        credits nothing and becomes the new baseline for the next push.

        Returns:
            (updated totals or None for guests, leveled_up)
        """
        if identity.is_guest:
            return None, False
        totals = self._fetch_user_totals(conn, identity.value)
        delta = max(0, session_xp - stored_xp)
        if delta == 0:
            return totals, False
        updated, leveled_up = add_xp(totals, delta)
        self._save_user_totals(conn, identity.value, updated)
        if leveled_up:
            logger.info(f"User '{identity.value}' reached level {updated.level}")
        return updated, leveled_up

    def persist_progress(
        self,
        session_id: UUID,
        identity: SessionIdentity,
        snapshot: ProgressSnapshot,
    ) -> ProgressAck:
        """
        Store the in-progress state and credit newly earned XP.

        The user is credited with the increase of session XP over the stored
        snapshot. The stored value always follows the snapshot, so XP earned
        after a restart or resume is credited as well.

        Raises:
            SessionNotFoundError: If the identity owns no such session.
            SessionOperationError: If the session is finished or the write fails.
        """
        self._require_writable("store session progress")
        try:
            with self._transaction() as cursor:
                row = self._fetch_open_session_row(cursor, session_id, identity, "update")
                totals, _ = self._credit_xp(
                    cursor, identity, snapshot.session_xp, row["session_xp"]
                )
                cursor.execute(
                    """
                    UPDATE study_sessions SET
                        current_card_index = $1,
                        answers = $2,
                        streak = $3,
                        session_xp = $4,
                        hinted_card_ids = $5,
                        duration_seconds = $6,
                        status = $7,
                        last_activity_at = $8
                    WHERE session_id = $9;
                    """,
                    (
                        snapshot.current_card_index,
                        db_utils.answers_to_json(snapshot.answers),
                        snapshot.streak,
                        snapshot.session_xp,
                        list(snapshot.hinted_card_ids) if snapshot.hinted_card_ids else None,
                        snapshot.duration_seconds,
                        SessionStatus.IN_PROGRESS.value,
                        db_utils.to_db_timestamp(_now()),
                        session_id,
                    ),
                )
        except duckdb.Error as e:
            logger.error(f"Error storing progress of session {session_id}: {e}")
            raise SessionOperationError(
                f"Failed to store progress of session {session_id}: {e}",
                original_exception=e,
            ) from e
        return ProgressAck(user_totals=totals)

    def complete_session(
        self,
        session_id: UUID,
        identity: SessionIdentity,
        request: CompletionRequest,
    ) -> CompletionAck:
        """
        Finalize a session in one transaction.

        Marks the session completed with its score and counts, credits XP
        earned since the last stored snapshot and, for authenticated users,
        upserts the review state batch. `cards_learned` counts cards answered correctly
        for the first time ever.

        Raises:
            SessionNotFoundError: If the identity owns no such session.
            SessionOperationError: If the session is not open or the write fails.
        """
        self._require_writable("complete a session")
        cards_learned = 0
        try:
            with self._transaction() as cursor:
                row = self._fetch_open_session_row(cursor, session_id, identity, "complete")
                totals, leveled_up = self._credit_xp(
                    cursor, identity, request.session_xp, row["session_xp"]
                )
                if not identity.is_guest and request.review_states:
                    previous = self._fetch_review_states(
                        cursor,
                        identity.value,
                        [state.card_id for state in request.review_states],
                    )
                    cards_learned = sum(
                        1
                        for state in request.review_states
                        if state.times_correct > 0
                        and (
                            state.card_id not in previous
                            or previous[state.card_id].times_correct == 0
                        )
                    )
                    cursor.executemany(
                        self._UPSERT_REVIEW_STATE_SQL,
                        [
                            db_utils.review_state_to_db_params(identity.value, state)
                            for state in request.review_states
                        ],
                    )
                now = db_utils.to_db_timestamp(_now())
                cursor.execute(
                    """
                    UPDATE study_sessions SET
                        status = $1,
                        score = $2,
                        correct_count = $3,
                        incorrect_count = $4,
                        skipped_count = $5,
                        duration_seconds = $6,
                        session_xp = $7,
                        completed_at = $8,
                        last_activity_at = $8
                    WHERE session_id = $9;
                    """,
                    (
                        SessionStatus.COMPLETED.value,
                        request.score,
                        request.correct_count,
                        request.incorrect_count,
                        request.skipped_count,
                        request.duration_seconds,
                        request.session_xp,
                        now,
                        session_id,
                    ),
                )
        except duckdb.Error as e:
            logger.error(f"Error completing session {session_id}: {e}")
            raise SessionOperationError(
                f"Failed to complete session {session_id}: {e}", original_exception=e
            ) from e

        logger.info(
            f"Session {session_id} completed: {len(request.review_states)} review states "
            f"stored, {cards_learned} cards learned"
        )
        return CompletionAck(
            xp_earned=request.session_xp,
            leveled_up=leveled_up,
            new_level=totals.level if leveled_up and totals is not None else None,
            cards_learned=cards_learned,
            new_achievements=[],
            user_totals=totals,
        )

    def abandon_session(self, session_id: UUID, identity: SessionIdentity) -> None:
        """
        Raises:
            SessionNotFoundError: If the identity owns no such session.
            SessionOperationError: If the session is not open or the write fails.
        """
        self._require_writable("abandon a session")
        try:
            with self._transaction() as cursor:
                self._fetch_open_session_row(cursor, session_id, identity, "abandon")
                cursor.execute(
                    """
                    UPDATE study_sessions SET status = $1, last_activity_at = $2
                    WHERE session_id = $3;
                    """,
                    (
                        SessionStatus.ABANDONED.value,
                        db_utils.to_db_timestamp(_now()),
                        session_id,
                    ),
                )
        except duckdb.Error as e:
            logger.error(f"Error abandoning session {session_id}: {e}")
            raise SessionOperationError(
                f"Failed to abandon session {session_id}: {e}", original_exception=e
            ) from e
        logger.info(f"Session {session_id} abandoned")
