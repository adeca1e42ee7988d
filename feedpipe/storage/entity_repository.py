"""
Entity Repository
=================

Create-or-update sink for records produced by the entity processor.
Entities are unique per (entity_type, guid).
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional
import sqlite3

from ..database.connection import DatabaseConnection
from ..database.models import Entity
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class EntityRepository:
    """Repository for imported entities."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("entity_repository")

    def get(self, entity_type: str, guid: str) -> Optional[Entity]:
        """Look up an entity by its unique key.

        Raises:
            DatabaseError: If the read fails
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM entities WHERE entity_type = ? AND guid = ?",
                    (entity_type, guid),
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to load entity {entity_type}:{guid}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return Entity.from_db_row(row) if row else None

    def create(self, entity: Entity) -> int:
        """Insert a new entity and return its id.

        Raises:
            DatabaseError: If the insert fails
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO entities (
                        entity_type, guid, importer_id, payload, content_hash, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        entity.entity_type,
                        entity.guid,
                        entity.importer_id,
                        entity.payload_json(),
                        entity.content_hash,
                        entity.created_at or datetime.now(timezone.utc),
                        entity.updated_at or datetime.now(timezone.utc),
                    ),
                )
                conn.commit()
                return cursor.lastrowid

        except sqlite3.Error as e:
            self.logger.error(f"Failed to create entity {entity}: {e}")
            raise DatabaseError(
                f"Failed to create entity: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def update(self, entity: Entity) -> bool:
        """Overwrite payload and hash of an existing entity.

        Raises:
            DatabaseError: If the update fails
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    UPDATE entities
                    SET payload = ?, content_hash = ?, importer_id = ?, updated_at = ?
                    WHERE entity_type = ? AND guid = ?
                """,
                    (
                        entity.payload_json(),
                        entity.content_hash,
                        entity.importer_id,
                        datetime.now(timezone.utc),
                        entity.entity_type,
                        entity.guid,
                    ),
                )
                conn.commit()
                return cursor.rowcount > 0

        except sqlite3.Error as e:
            self.logger.error(f"Failed to update entity {entity}: {e}")
            raise DatabaseError(
                f"Failed to update entity: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def list_for_importer(self, importer_id: str) -> List[Entity]:
        """All entities written by an importer, in insertion order."""
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    "SELECT * FROM entities WHERE importer_id = ? ORDER BY id",
                    (importer_id,),
                ).fetchall()
            return [Entity.from_db_row(row) for row in rows]

        except sqlite3.Error as e:
            self.logger.error(f"Failed to list entities for {importer_id}: {e}")
            return []

    def count_by_type(self) -> Dict[str, int]:
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    "SELECT entity_type, COUNT(*) AS total FROM entities GROUP BY entity_type"
                ).fetchall()
            return {row["entity_type"]: row["total"] for row in rows}

        except sqlite3.Error as e:
            self.logger.error(f"Failed to count entities: {e}")
            return {}

    def delete_for_importer(self, importer_id: str) -> int:
        """Delete every entity an importer created. Returns the count."""
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM entities WHERE importer_id = ?", (importer_id,)
                )
                conn.commit()

            self.logger.info(f"Deleted {cursor.rowcount} entities for importer {importer_id}")
            return cursor.rowcount

        except sqlite3.Error as e:
            self.logger.error(f"Failed to delete entities for {importer_id}: {e}")
            return 0
