"""
DDL for the studycore DuckDB database.

Timestamps are stored as naive UTC TIMESTAMPs; db_utils converts them at the
boundary.
"""

DB_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS decks (
    deck_id VARCHAR PRIMARY KEY,
    title VARCHAR NOT NULL,
    difficulty VARCHAR NOT NULL DEFAULT 'A2',
    description VARCHAR,
    created_at TIMESTAMP NOT NULL,
    modified_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS cards (
    card_id VARCHAR PRIMARY KEY,
    deck_id VARCHAR NOT NULL,
    front VARCHAR NOT NULL,
    back VARCHAR NOT NULL,
    context VARCHAR,
    hint VARCHAR,
    card_type VARCHAR NOT NULL DEFAULT 'standard',
    options VARCHAR[],
    correct_indices INTEGER[],
    position INTEGER NOT NULL DEFAULT 0,
    added_at TIMESTAMP NOT NULL,
    modified_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_cards_deck_id ON cards(deck_id);

CREATE SEQUENCE IF NOT EXISTS review_state_id_seq START 1;

CREATE TABLE IF NOT EXISTS review_states (
    state_id BIGINT NOT NULL DEFAULT nextval('review_state_id_seq'),
    user_id VARCHAR NOT NULL,
    card_id VARCHAR NOT NULL,
    status VARCHAR NOT NULL DEFAULT 'new',
    ease_factor DOUBLE NOT NULL DEFAULT 2.5,
    interval_days INTEGER NOT NULL DEFAULT 0,
    repetitions INTEGER NOT NULL DEFAULT 0,
    next_review_date DATE,
    times_seen INTEGER NOT NULL DEFAULT 0,
    times_correct INTEGER NOT NULL DEFAULT 0,
    times_incorrect INTEGER NOT NULL DEFAULT 0,
    last_reviewed_at TIMESTAMP,
    PRIMARY KEY (user_id, card_id)
);

CREATE TABLE IF NOT EXISTS users (
    user_id VARCHAR PRIMARY KEY,
    level INTEGER NOT NULL DEFAULT 1,
    current_xp INTEGER NOT NULL DEFAULT 0,
    next_level_xp INTEGER NOT NULL DEFAULT 100,
    total_xp INTEGER NOT NULL DEFAULT 0,
    updated_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS study_sessions (
    session_id UUID PRIMARY KEY,
    identity_kind VARCHAR NOT NULL,
    identity_value VARCHAR NOT NULL,
    deck_id VARCHAR,
    title VARCHAR NOT NULL DEFAULT '',
    selection_method VARCHAR NOT NULL,
    difficulty VARCHAR NOT NULL DEFAULT 'A2',
    card_ids VARCHAR[] NOT NULL,
    current_card_index INTEGER NOT NULL DEFAULT 0,
    answers VARCHAR NOT NULL DEFAULT '{}',
    streak INTEGER NOT NULL DEFAULT 0,
    session_xp INTEGER NOT NULL DEFAULT 0,
    hinted_card_ids VARCHAR[],
    duration_seconds INTEGER NOT NULL DEFAULT 0,
    status VARCHAR NOT NULL DEFAULT 'created',
    score INTEGER,
    correct_count INTEGER,
    incorrect_count INTEGER,
    skipped_count INTEGER,
    started_at TIMESTAMP NOT NULL,
    completed_at TIMESTAMP,
    last_activity_at TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_study_sessions_identity
    ON study_sessions(identity_kind, identity_value);
"""

TABLE_NAMES = ("study_sessions", "users", "review_states", "cards", "decks")
