"""
FeedPipe Database Layer
=======================

SQLite connection pooling, schema management and row models.
"""

from .connection import DatabaseConnection, get_db_manager
from .schema import DatabaseSchema
from .models import ConfigurableRecord, Entity, ImportState, ImportStatus, ParseCursor

__all__ = [
    "DatabaseConnection",
    "get_db_manager",
    "DatabaseSchema",
    "ConfigurableRecord",
    "Entity",
    "ImportState",
    "ImportStatus",
    "ParseCursor",
]
