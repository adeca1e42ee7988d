"""
CSV Stream Parser
=================

Incremental, resumable CSV parser working on byte offsets.

Each ``parse`` call reads from the configured start byte and returns at
most ``line_limit`` rows. ``last_line_pos()`` then reports where the next
call has to start, or 0 once the whole source has been consumed:

    parser.set_line_limit(50)
    rows = parser.parse(iterator)
    while parser.last_line_pos():
        parser.set_start_byte(parser.last_line_pos())
        rows = parser.parse(iterator)

Delimiter, quote, encoding and column settings have to be fixed before
the first call of an import. Changing them between calls of the same
import is unsupported.
"""

import codecs
import time
from typing import Dict, List, Optional, Sequence, Union

from .byte_iterator import ByteOffsetIterator
from .encoding import CANONICAL_ENCODING, to_text
from ..utils.exceptions import EncodingConversionError, InvalidArgumentError, ValidationError
from ..utils.validators import ConfigValidator

Row = Union[List[str], Dict[str, str]]

_LINE_ENDINGS = ("\r\n", "\n", "\r")


class CSVStreamParser:
    """Line-oriented CSV parser with byte-offset checkpoints."""

    def __init__(self):
        self.delimiter = ","
        self.quote_char: Optional[str] = '"'
        self.encoding: Optional[str] = None
        self.line_limit = 0
        self.skip_first_line = False
        self.column_names: Optional[List[str]] = None
        self.timeout = 0.0
        self.start_byte = 0
        self._last_line_pos = 0
        self._exhausted = False

    # Configuration

    def set_delimiter(self, delimiter: str) -> None:
        self.delimiter = self._checked(ConfigValidator.validate_delimiter, delimiter)

    def set_quote_char(self, quote_char: Optional[str]) -> None:
        """Set the quote character, or None to disable quoting."""
        if quote_char is not None and len(quote_char) != 1:
            raise InvalidArgumentError("Quote character must be one character", argument="quote_char")
        if quote_char is not None and quote_char == self.delimiter:
            raise InvalidArgumentError("Quote character must differ from the delimiter", argument="quote_char")
        self.quote_char = quote_char

    def set_encoding(self, encoding: Optional[str]) -> None:
        """Declare the source encoding; None means the bytes are UTF-8."""
        self.encoding = self._checked(ConfigValidator.validate_encoding, encoding)

    def set_line_limit(self, limit: int) -> None:
        """Maximum rows per ``parse`` call; 0 means unlimited."""
        if limit < 0:
            raise InvalidArgumentError("Line limit cannot be negative", argument="line_limit")
        self.line_limit = limit

    def set_skip_first_line(self, skip: bool) -> None:
        """Skip the first line of the source (only when starting at byte 0)."""
        self.skip_first_line = bool(skip)

    def set_column_names(self, names: Optional[Sequence[str]]) -> None:
        """Return rows as dicts keyed by these names instead of lists."""
        self.column_names = list(names) if names else None

    def set_timeout(self, seconds: float) -> None:
        """Stop a call after ``seconds`` and report its resume offset."""
        if seconds < 0:
            raise InvalidArgumentError("Timeout cannot be negative", argument="timeout")
        self.timeout = seconds

    def set_start_byte(self, offset: int) -> None:
        if offset < 0:
            raise InvalidArgumentError("Start byte cannot be negative", argument="start_byte")
        self.start_byte = offset

    @staticmethod
    def _checked(validator, value):
        try:
            return validator(value)
        except ValidationError as e:
            raise InvalidArgumentError(str(e), argument=e.context.get("field_name")) from e

    # Results

    def last_line_pos(self) -> int:
        """Offset to resume from, or 0 once the source is exhausted."""
        return 0 if self._exhausted else self._last_line_pos

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    # Parsing

    def parse(self, iterator: ByteOffsetIterator) -> List[Row]:
        """Parse up to ``line_limit`` rows starting at ``start_byte``.

        Raises:
            EncodingConversionError: If a line is not valid in the declared
                encoding. No rows are returned from the failed call.
            SourceUnavailableError: If the iterator cannot seek or read
        """
        self._exhausted = False
        self._last_line_pos = self.start_byte

        iterator.seek(self.start_byte)
        started = time.monotonic()
        skip_first = self.skip_first_line and self.start_byte == 0
        rows: List[Row] = []

        while True:
            cells = self._read_record(iterator)
            if cells is None:
                break

            if skip_first:
                skip_first = False
            else:
                rows.append(self._shape(cells))

            if self.line_limit and len(rows) >= self.line_limit:
                break
            if self.timeout and time.monotonic() - started >= self.timeout:
                break

        self._last_line_pos = iterator.position
        self._exhausted = iterator.at_end()
        return rows

    def _decode(self, line: bytes, line_start: int) -> str:
        encoding = self.encoding or CANONICAL_ENCODING
        if line_start == 0 and line.startswith(codecs.BOM_UTF8) and encoding in ("utf-8", "utf_8"):
            line = line[len(codecs.BOM_UTF8):]
        try:
            return to_text(line, encoding)
        except EncodingConversionError as e:
            e.context["line_offset"] = line_start
            raise

    def _read_record(self, iterator: ByteOffsetIterator) -> Optional[List[str]]:
        """Read one logical record, following quoted fields across lines."""
        line_start = iterator.position
        line, _ = iterator.next_line()
        if line is None:
            return None

        text = self._decode(line, line_start)
        delimiter = self.delimiter
        quote = self.quote_char
        cells: List[str] = []
        current: List[str] = []
        in_quotes = False
        field_quoted = False

        while True:
            i = 0
            length = len(text)
            while i < length:
                ch = text[i]
                if in_quotes:
                    if ch == quote:
                        if i + 1 < length and text[i + 1] == quote:
                            current.append(quote)
                            i += 2
                            continue
                        in_quotes = False
                    else:
                        current.append(ch)
                    i += 1
                    continue

                if ch == delimiter:
                    cells.append("".join(current))
                    current = []
                    field_quoted = False
                elif quote and ch == quote and not current and not field_quoted:
                    in_quotes = True
                    field_quoted = True
                elif ch in "\r\n" and text[i:] in _LINE_ENDINGS:
                    break
                else:
                    current.append(ch)
                i += 1

            if not in_quotes:
                break

            # Quoted field continues on the next physical line
            line_start = iterator.position
            line, _ = iterator.next_line()
            if line is None:
                break
            text = self._decode(line, line_start)

        cells.append("".join(current))
        return cells

    def _shape(self, cells: List[str]) -> Row:
        if not self.column_names:
            return cells
        row = {
            name: cells[index] if index < len(cells) else ""
            for index, name in enumerate(self.column_names)
        }
        # Cells beyond the named columns keep their position
        for index in range(len(self.column_names), len(cells)):
            row.setdefault(f"column_{index + 1}", cells[index])
        return row
