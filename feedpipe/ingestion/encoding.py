"""
Encoding Normalizer
===================

Converts source bytes from a declared encoding to UTF-8, the canonical
internal encoding. Conversion is strict: invalid input raises
EncodingConversionError instead of producing replacement characters.
"""

import codecs

from ..utils.exceptions import EncodingConversionError

CANONICAL_ENCODING = "utf-8"


def to_text(data: bytes, source_encoding: str = CANONICAL_ENCODING) -> str:
    """Decode ``data`` strictly from ``source_encoding``.

    Raises:
        EncodingConversionError: If the encoding is unknown or the bytes are
            not valid in it
    """
    try:
        codec = codecs.lookup(source_encoding)
    except LookupError as e:
        raise EncodingConversionError(
            f"Unknown encoding '{source_encoding}'", encoding=source_encoding
        ) from e

    try:
        return data.decode(codec.name, errors="strict")
    except UnicodeDecodeError as e:
        raise EncodingConversionError(
            f"Invalid {codec.name} byte sequence at position {e.start}: {e.reason}",
            encoding=codec.name,
            position=e.start,
        ) from e


def normalize(data: bytes, source_encoding: str) -> bytes:
    """Convert ``data`` from ``source_encoding`` to UTF-8 bytes."""
    text = to_text(data, source_encoding)
    try:
        return text.encode(CANONICAL_ENCODING, errors="strict")
    except UnicodeEncodeError as e:
        raise EncodingConversionError(
            f"Character at position {e.start} cannot be represented in {CANONICAL_ENCODING}",
            encoding=source_encoding,
            position=e.start,
        ) from e


class EncodingNormalizer:
    """Encoding conversion bound to one declared source encoding."""

    def __init__(self, source_encoding: str = CANONICAL_ENCODING):
        self.source_encoding = source_encoding

    def normalize(self, data: bytes) -> bytes:
        return normalize(data, self.source_encoding)

    def to_text(self, data: bytes) -> str:
        return to_text(data, self.source_encoding)
