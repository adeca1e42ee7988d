"""
FeedPipe Database Schema
========================

SQLite schema for the import pipeline:
- configurables: stored configuration per (class, id) identity
- import_states: per-importer progress and parse cursor
- entities: records created or updated by the entity processor
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class DatabaseSchema:
    """Database schema manager for the FeedPipe SQLite database."""

    TABLES = ("configurables", "import_states", "entities")

    def __init__(self, db_path: str = "data/feedpipe.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        with sqlite3.connect(self.db_path) as conn:
            self._create_configurables_table(conn)
            self._create_import_states_table(conn)
            self._create_entities_table(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_configurables_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS configurables (
                class_name TEXT NOT NULL,
                id TEXT NOT NULL,
                config TEXT NOT NULL DEFAULT '{}',  -- JSON object
                disabled BOOLEAN DEFAULT FALSE,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (class_name, id)
            )
        """
        )

    def _create_import_states_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS import_states (
                importer_id TEXT PRIMARY KEY,
                status TEXT NOT NULL DEFAULT 'idle' CHECK (status IN
                    ('idle', 'fetching', 'parsing', 'processing', 'complete', 'failed')),
                source TEXT,
                fetched_path TEXT,
                cursor TEXT NOT NULL DEFAULT '{}',  -- JSON ParseCursor
                total INTEGER DEFAULT 0,
                created INTEGER DEFAULT 0,
                updated INTEGER DEFAULT 0,
                skipped INTEGER DEFAULT 0,
                failed INTEGER DEFAULT 0,
                last_error TEXT,
                started_at TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_entities_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS entities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_type TEXT NOT NULL,
                guid TEXT NOT NULL,
                importer_id TEXT NOT NULL,
                payload TEXT NOT NULL DEFAULT '{}',  -- JSON object
                content_hash TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(entity_type, guid)
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_import_states_status ON import_states(status)",
            "CREATE INDEX IF NOT EXISTS idx_entities_importer ON entities(importer_id)",
            "CREATE INDEX IF NOT EXISTS idx_entities_hash ON entities(content_hash)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with sqlite3.connect(self.db_path) as conn:
            for table in reversed(self.TABLES):
                conn.execute(f"DROP TABLE IF EXISTS {table}")
            conn.commit()
            logger.info("All database tables dropped")

    def verify_schema(self) -> bool:
        """Verify all tables exist."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False

        tables = {row[0] for row in rows}
        missing = set(self.TABLES) - tables
        if missing:
            logger.error(f"Missing tables: {sorted(missing)}")
            return False

        logger.info("Database schema verification passed")
        return True
