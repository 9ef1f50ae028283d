import logging
from pathlib import Path
from typing import Optional, Union

import duckdb

from ..exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class ConnectionHandler:
    """Owns the single DuckDB connection of a StudyDatabase."""

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        """
        Parameters:
            db_path (Union[str, Path]): Database file, or ":memory:" (any case)
                for an in-memory database. File paths are resolved to absolute.
            read_only (bool): Open the database read-only.
        """
        if isinstance(db_path, str) and db_path.lower() == MEMORY_PATH:
            self.db_path_resolved = Path(MEMORY_PATH)
        else:
            self.db_path_resolved = Path(db_path).resolve()
        self.read_only = read_only
        self.is_new_db = False
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        logger.debug(f"ConnectionHandler ready for {self.db_path_resolved}")

    @property
    def is_memory(self) -> bool:
        return str(self.db_path_resolved) == MEMORY_PATH

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """
        Return the open connection, connecting on first use.

        `is_new_db` is set when the connection is opened: always for an
        in-memory database, and for a file database whose file did not exist.

        Raises:
            DatabaseConnectionError: If DuckDB cannot open the database.
        """
        if self._connection is not None:
            return self._connection
        try:
            if self.is_memory:
                self.is_new_db = True
            else:
                self.is_new_db = not self.db_path_resolved.exists()
                if self.read_only and self.is_new_db:
                    raise DatabaseConnectionError(
                        f"Database file {self.db_path_resolved} does not exist."
                    )
                self.db_path_resolved.parent.mkdir(parents=True, exist_ok=True)
            self._connection = duckdb.connect(
                database=str(self.db_path_resolved), read_only=self.read_only
            )
            logger.info(f"Connected to database at {self.db_path_resolved}")
        except duckdb.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to database: {e}", original_exception=e
            ) from e
        return self._connection

    def close_connection(self) -> None:
        """Close the connection if open. A later get_connection reconnects."""
        if self._connection is None:
            return
        try:
            self._connection.close()
            logger.info(f"Database connection to {self.db_path_resolved} closed.")
        except duckdb.Error as e:
            logger.error(f"Error closing the database connection: {e}")
        finally:
            self._connection = None
