"""
Import State Repository
=======================

Persists per-importer progress: state machine status, parse cursor and
counters. The stored cursor is the only checkpoint between ticks.
"""

from datetime import datetime, timezone
from typing import List
import sqlite3

from ..database.connection import DatabaseConnection
from ..database.models import ImportState
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class ImportStateRepository:
    """Repository for import progress records."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("state_repository")

    def get(self, importer_id: str) -> ImportState:
        """Load the state of an importer, or a fresh idle state.

        Raises:
            DatabaseError: If the read fails
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM import_states WHERE importer_id = ?", (importer_id,)
                ).fetchone()
        except sqlite3.Error as e:
            self.logger.error(f"Failed to load import state for {importer_id}: {e}")
            raise DatabaseError(
                f"Failed to load import state: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return ImportState.from_db_row(row) if row else ImportState(importer_id=importer_id)

    def save(self, state: ImportState) -> None:
        """Insert or replace the state of an importer.

        Raises:
            DatabaseError: If the write fails
        """
        state.updated_at = datetime.now(timezone.utc)
        try:
            with self.db.get_connection() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO import_states (
                        importer_id, status, source, fetched_path, cursor, total,
                        created, updated, skipped, failed, last_error, started_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        state.importer_id,
                        state.status.value,
                        state.source,
                        state.fetched_path,
                        state.cursor_json(),
                        state.total,
                        state.created,
                        state.updated,
                        state.skipped,
                        state.failed,
                        state.last_error,
                        state.started_at,
                        state.updated_at,
                    ),
                )
                conn.commit()

        except sqlite3.Error as e:
            self.logger.error(f"Failed to save import state for {state.importer_id}: {e}")
            raise DatabaseError(
                f"Failed to save import state: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def list_states(self) -> List[ImportState]:
        """All stored import states ordered by importer id."""
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    "SELECT * FROM import_states ORDER BY importer_id"
                ).fetchall()
            return [ImportState.from_db_row(row) for row in rows]

        except sqlite3.Error as e:
            self.logger.error(f"Failed to list import states: {e}")
            return []

    def delete(self, importer_id: str) -> bool:
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM import_states WHERE importer_id = ?", (importer_id,)
                )
                conn.commit()
            return cursor.rowcount > 0

        except sqlite3.Error as e:
            self.logger.error(f"Failed to delete import state for {importer_id}: {e}")
            return False
