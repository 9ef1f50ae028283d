import logging

import duckdb

from . import schema
from .connection import ConnectionHandler
from ..exceptions import DatabaseConnectionError, SchemaInitializationError

logger = logging.getLogger(__name__)


class SchemaManager:
    """Creates (and on request recreates) the studycore tables."""

    def __init__(self, handler: ConnectionHandler):
        self._handler = handler

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        """
        Create all tables inside one transaction.

        Parameters:
            force_recreate_tables (bool): Drop existing tables first. Refused for
                read-only databases and for file databases that still hold sessions.

        Raises:
            DatabaseConnectionError: If recreation is requested on a read-only database.
            SchemaInitializationError: If the DDL fails.
        """
        if self._handler.read_only:
            if force_recreate_tables:
                raise DatabaseConnectionError(
                    "Cannot force_recreate_tables in read-only mode."
                )
            logger.warning("Skipping schema initialization for a read-only database.")
            return

        conn = self._handler.get_connection()
        with conn.cursor() as cursor:
            cursor.begin()
            try:
                if force_recreate_tables:
                    self._drop_tables(cursor)
                cursor.execute(schema.DB_SCHEMA_SQL)
                cursor.commit()
            except SchemaInitializationError:
                cursor.rollback()
                raise
            except duckdb.Error as e:
                logger.error(
                    f"Error initializing database schema at {self._handler.db_path_resolved}: {e}"
                )
                try:
                    cursor.rollback()
                except duckdb.Error as rb_err:
                    logger.error(f"Failed to rollback transaction: {rb_err}")
                raise SchemaInitializationError(
                    f"Failed to initialize schema: {e}", original_exception=e
                ) from e
        logger.info(
            f"Database schema at {self._handler.db_path_resolved} initialized "
            "(or already existed)."
        )

    def _drop_tables(self, cursor: duckdb.DuckDBPyConnection) -> None:
        if not self._handler.is_memory:
            self._refuse_if_sessions_exist(cursor)
        logger.warning(
            f"Recreating tables in {self._handler.db_path_resolved}. Existing data is lost."
        )
        for table in schema.TABLE_NAMES:
            cursor.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
        cursor.execute("DROP SEQUENCE IF EXISTS review_state_id_seq;")

    def _refuse_if_sessions_exist(self, cursor: duckdb.DuckDBPyConnection) -> None:
        exists = cursor.execute(
            "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = 'study_sessions'"
        ).fetchone()
        if not exists or exists[0] == 0:
            return
        count = cursor.execute("SELECT COUNT(*) FROM study_sessions").fetchone()
        if count and count[0] > 0:
            raise SchemaInitializationError(
                f"Refusing to drop tables: {count[0]} study sessions would be lost."
            )
