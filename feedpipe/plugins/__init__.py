"""
FeedPipe Plugin Layer
=====================

Configurable objects and the registry that hands out one live instance
per (class, id).
"""

from .configurable import Configurable, submit_form
from .importer import Importer, ImporterConfig
from .registry import ConfigurableRegistry, StageChain

__all__ = [
    "Configurable",
    "submit_form",
    "Importer",
    "ImporterConfig",
    "ConfigurableRegistry",
    "StageChain",
]
