"""
FeedPipe Storage Layer
======================

Repository classes over the SQLite tables:
- Configuration of configurables
- Import progress per importer
- Imported entities
"""

from .config_repository import ConfigRepository
from .state_repository import ImportStateRepository
from .entity_repository import EntityRepository

__all__ = [
    "ConfigRepository",
    "ImportStateRepository",
    "EntityRepository",
]
