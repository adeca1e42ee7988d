"""
Configuration Repository
========================

Durable key-value storage for configurable objects, keyed by
(class name, id) with the configuration serialized as JSON.
"""

from datetime import datetime, timezone
from typing import List, Optional
import sqlite3

from ..database.connection import DatabaseConnection
from ..database.models import ConfigurableRecord
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class ConfigRepository:
    """Repository for stored configurable configuration."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("config_repository")

    def save(self, record: ConfigurableRecord) -> None:
        """Insert or replace the configuration of one identity.

        Raises:
            DatabaseError: If the write fails
        """
        try:
            with self.db.get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO configurables (class_name, id, config, disabled, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(class_name, id) DO UPDATE SET
                        config = excluded.config,
                        disabled = excluded.disabled,
                        updated_at = excluded.updated_at
                """,
                    (
                        record.class_name,
                        record.id,
                        record.config_json(),
                        record.disabled,
                        datetime.now(timezone.utc),
                    ),
                )
                conn.commit()

            self.logger.debug(f"Saved configuration {record.class_name}:{record.id}")

        except sqlite3.Error as e:
            self.logger.error(f"Failed to save configuration {record.class_name}:{record.id}: {e}")
            raise DatabaseError(
                f"Failed to save configuration: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def load(self, class_name: str, configurable_id: str) -> Optional[ConfigurableRecord]:
        """Load the stored configuration, or None if nothing was saved.

        Raises:
            DatabaseError: If the read fails
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM configurables WHERE class_name = ? AND id = ?",
                    (class_name, configurable_id),
                ).fetchone()
        except sqlite3.Error as e:
            self.logger.error(f"Failed to load configuration {class_name}:{configurable_id}: {e}")
            raise DatabaseError(
                f"Failed to load configuration: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return ConfigurableRecord.from_db_row(row) if row else None

    def list_ids(self, class_name: str) -> List[str]:
        """List the ids stored for a class."""
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    "SELECT id FROM configurables WHERE class_name = ? ORDER BY id",
                    (class_name,),
                ).fetchall()
            return [row["id"] for row in rows]

        except sqlite3.Error as e:
            self.logger.error(f"Failed to list configurables of {class_name}: {e}")
            return []

    def delete(self, class_name: str, configurable_id: str) -> bool:
        """Delete stored configuration. Returns True if a row was removed."""
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM configurables WHERE class_name = ? AND id = ?",
                    (class_name, configurable_id),
                )
                conn.commit()
            return cursor.rowcount > 0

        except sqlite3.Error as e:
            self.logger.error(f"Failed to delete configuration {class_name}:{configurable_id}: {e}")
            return False
