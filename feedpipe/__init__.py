"""
FeedPipe - Resumable Feed Import Pipeline
=========================================

Configurable fetch, parse and process pipeline for CSV and RSS/Atom
sources with byte-offset resumable batching.

Main Components:
- Ingestion: byte offset iteration, encoding normalization, CSV stream parsing
- Plugins: configurable base, importer definition, instance registry
- Processing: fetcher, parser and processor stages plus the tick orchestrator
- Storage: SQLite repositories for configuration, import state and entities
"""

__version__ = "1.0.0"
__author__ = "FeedPipe Development Team"
__description__ = "Resumable batched feed import pipeline"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import FeedPipeError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "FeedPipeError",
]
