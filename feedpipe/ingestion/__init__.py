"""
FeedPipe Ingestion Module
=========================

Low-level source reading.

This module handles:
- Line iteration with byte offsets over files and seekable streams
- Strict conversion of declared source encodings to UTF-8
- Resumable CSV parsing with quoted multi-line fields
- HTML cleanup for syndication content
"""

from .byte_iterator import ByteOffsetIterator
from .csv_parser import CSVStreamParser
from .encoding import EncodingNormalizer, normalize, to_text
from .content_cleaner import ContentCleaner

__all__ = [
    "ByteOffsetIterator",
    "CSVStreamParser",
    "EncodingNormalizer",
    "normalize",
    "to_text",
    "ContentCleaner",
]
