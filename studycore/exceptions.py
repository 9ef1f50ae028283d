from typing import Optional


class StudyCoreError(Exception):
    """Base exception for all studycore errors."""

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class NoCardsAvailableError(StudyCoreError):
    """Raised when card selection produces no cards for a new session."""

    pass


class InvalidSelectionError(StudyCoreError):
    """Raised for selection input that cannot produce a session (e.g. a
    manual selection without card ids, or a strategy a guest may not use)."""

    pass


class InvariantViolationError(StudyCoreError):
    """Raised when the engine is driven in a way correct integration never
    does, such as answering with no active session."""

    pass


class PersistenceError(StudyCoreError):
    """Base exception for failures of the persistence collaborator."""

    pass


class PersistenceUnavailableError(PersistenceError):
    """Transient failure reaching the persistence collaborator."""

    pass


class PersistenceFailedOnFinalizeError(PersistenceError):
    """Raised when complete or abandon could not be stored. The session is
    left open and can be resumed."""

    pass


class DatabaseError(PersistenceUnavailableError):
    """Base exception for database-related errors."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised for errors connecting to the database."""

    pass


class SchemaInitializationError(DatabaseError):
    """Raised for errors during schema setup."""

    pass


class MarshallingError(DatabaseError):
    """Indicates an error during data conversion between application models
    and DB format."""

    pass


class CardOperationError(DatabaseError):
    """Raised for errors during deck and card operations."""

    pass


class ReviewStateOperationError(DatabaseError):
    """Indicates an error reading or writing review states."""

    pass


class SessionOperationError(DatabaseError):
    """Indicates an error during a session-related database operation."""

    pass


class DeckNotFoundError(DatabaseError):
    """Raised when a specified deck is not found."""

    pass


class SessionNotFoundError(DatabaseError):
    """Raised when a session does not exist for the given identity."""

    pass
