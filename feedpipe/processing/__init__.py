"""
FeedPipe Processing Module
==========================

Pipeline stages and the tick-based import orchestrator.
"""

from .fetchers import FetchResult, FileFetcher, HTTPFetcher
from .parsers import CSVParser, ParseResult, SyndicationParser
from .processors import EntityProcessor, ProcessResult
from .pipeline import ImportPipeline, TickResult

__all__ = [
    "FetchResult",
    "FileFetcher",
    "HTTPFetcher",
    "CSVParser",
    "ParseResult",
    "SyndicationParser",
    "EntityProcessor",
    "ProcessResult",
    "ImportPipeline",
    "TickResult",
]
