"""
Byte Offset Iterator
====================

Line-by-line reader over a seekable byte stream that reports the byte
offset following each line, so a parse can stop after any line and later
resume at exactly that offset.
"""

import io
import os
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Tuple, Union

from ..utils.exceptions import SourceUnavailableError, ErrorCode


class ByteOffsetIterator:
    """Seekable line reader that tracks byte offsets.

    Lines are returned as raw bytes including their terminator; decoding
    is left to the parser. The iterator owns the stream only when it was
    opened from a path.
    """

    def __init__(self, source: Union[str, Path, BinaryIO]):
        """Open the byte source.

        Args:
            source: File path or an already open binary stream

        Raises:
            SourceUnavailableError: If the file cannot be opened
        """
        self._owns_stream = isinstance(source, (str, Path))
        self.name = str(source) if self._owns_stream else getattr(source, "name", "<stream>")

        if self._owns_stream:
            try:
                self._stream: BinaryIO = open(source, "rb")
            except OSError as e:
                raise SourceUnavailableError(
                    f"Cannot open {source}: {e}",
                    source=str(source),
                    error_code=ErrorCode.SOURCE_NOT_FOUND,
                ) from e
        else:
            if isinstance(source, io.TextIOBase) or not source.seekable():
                raise SourceUnavailableError(
                    "Source must be a seekable binary stream", source=self.name
                )
            self._stream = source

        self._position = 0
        self._size = self._measure()
        self.seek(0)

    def _measure(self) -> int:
        try:
            return os.fstat(self._stream.fileno()).st_size
        except (AttributeError, OSError, io.UnsupportedOperation):
            current = self._stream.tell()
            size = self._stream.seek(0, io.SEEK_END)
            self._stream.seek(current)
            return size

    @property
    def size(self) -> int:
        """Total size of the source in bytes."""
        return self._size

    @property
    def position(self) -> int:
        """Offset immediately after the last line returned."""
        return self._position

    def at_end(self) -> bool:
        return self._position >= self._size

    def seek(self, offset: int) -> None:
        """Position the stream so the next read starts at ``offset``.

        Raises:
            SourceUnavailableError: If the offset lies outside the source or
                the stream cannot be seeked
        """
        if offset < 0 or offset > self._size:
            raise SourceUnavailableError(
                f"Offset {offset} outside source of {self._size} bytes",
                source=self.name,
                context={"offset": offset, "size": self._size},
            )
        try:
            self._stream.seek(offset)
        except (OSError, ValueError) as e:
            raise SourceUnavailableError(
                f"Cannot seek {self.name} to {offset}: {e}", source=self.name
            ) from e
        self._position = offset

    def next_line(self) -> Tuple[Optional[bytes], int]:
        """Read the next newline-terminated line.

        Returns:
            ``(line, offset_after)``; ``line`` is None at end of stream
        """
        try:
            line = self._stream.readline()
        except (OSError, ValueError) as e:
            raise SourceUnavailableError(
                f"Cannot read {self.name}: {e}", source=self.name
            ) from e

        if not line:
            return None, self._position

        self._position += len(line)
        return line, self._position

    def __iter__(self) -> Iterator[Tuple[bytes, int]]:
        while True:
            line, offset = self.next_line()
            if line is None:
                return
            yield line, offset

    def close(self) -> None:
        if self._owns_stream:
            self._stream.close()

    def __enter__(self) -> "ByteOffsetIterator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
