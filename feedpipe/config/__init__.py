"""
FeedPipe Configuration
======================
"""

from .settings import FeedPipeSettings, get_settings, load_settings

__all__ = ["FeedPipeSettings", "get_settings", "load_settings"]
