"""
Parser Stage
============

Parsers read one batch of items from a fetched source, starting at the
persisted cursor, and return the advanced cursor with the batch.

- ``CSVParser`` streams rows by byte offset, so a batch costs only the
  bytes it covers.
- ``SyndicationParser`` parses RSS/Atom with feedparser and slices the
  entry list by the number of items already handed out.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import feedparser
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from ..config.settings import FeedPipeSettings
from ..database.models import ParseCursor
from ..ingestion.byte_iterator import ByteOffsetIterator
from ..ingestion.content_cleaner import ContentCleaner
from ..ingestion.csv_parser import CSVStreamParser
from ..plugins.configurable import Configurable
from ..utils.exceptions import ErrorCode, ProcessingError, SourceUnavailableError, ValidationError
from ..utils.validators import ConfigValidator


@dataclass
class ParseResult:
    """One parsed batch and the cursor after it."""

    items: List[Dict[str, Any]]
    cursor: ParseCursor
    total: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def exhausted(self) -> bool:
        return self.cursor.exhausted


class Parser(Configurable):
    """Base class for parser plugins."""

    stage = "parser"

    def parse(self, path: Path, cursor: ParseCursor, settings: FeedPipeSettings) -> ParseResult:
        """Parse the batch that starts at ``cursor``.

        Raises:
            SourceUnavailableError: If the source cannot be read
            EncodingConversionError: If the source does not match its
                declared encoding
        """
        raise NotImplementedError


class CSVParserConfig(BaseModel):
    """CSV parser options."""
    delimiter: str = Field(default=",", description="Field delimiter, one character or TAB")
    enclosure: str = Field(default='"', description="Quote character (empty = no quoting)")
    encoding: str = Field(default="", description="Source encoding (empty = UTF-8)")
    no_headers: bool = Field(default=False, description="The first line is data, not column names")
    column_names: List[str] = Field(default_factory=list, description="Column names when there is no header line")

    @field_validator("delimiter")
    @classmethod
    def validate_delimiter(cls, v):
        try:
            return ConfigValidator.validate_delimiter(v)
        except ValidationError as e:
            raise ValueError(e.message) from e

    @field_validator("enclosure")
    @classmethod
    def validate_enclosure(cls, v, info: ValidationInfo):
        if len(v) > 1:
            raise ValueError("Quote character must be at most one character")
        if v and v == info.data.get("delimiter"):
            raise ValueError("Quote character must differ from the delimiter")
        return v

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v):
        try:
            return ConfigValidator.validate_encoding(v) or ""
        except ValidationError as e:
            raise ValueError(e.message) from e


class CSVParser(Parser):
    """Batched CSV parser producing one dict per row."""

    plugin_key = "csv"
    config_model = CSVParserConfig

    def fingerprint(self) -> str:
        """Digest of the settings that byte offsets depend on."""
        config = self.get_config()
        parts = [
            config["delimiter"],
            config["enclosure"],
            config["encoding"] or "utf-8",
            "1" if config["no_headers"] else "0",
        ]
        return hashlib.sha1("\x1f".join(parts).encode("utf-8")).hexdigest()[:16]

    def _stream_parser(self, settings: FeedPipeSettings) -> CSVStreamParser:
        config = self.get_config()
        parser = CSVStreamParser()
        parser.set_delimiter(config["delimiter"])
        parser.set_quote_char(config["enclosure"] or None)
        parser.set_encoding(config["encoding"] or None)
        parser.set_timeout(settings.processing.parse_timeout)
        return parser

    def _read_header(self, iterator: ByteOffsetIterator, settings: FeedPipeSettings):
        """Return (column names, offset after the header line)."""
        header_parser = self._stream_parser(settings)
        header_parser.set_line_limit(1)
        header_parser.set_start_byte(0)
        rows = header_parser.parse(iterator)
        if not rows:
            return [], iterator.size

        columns = []
        for index, name in enumerate(rows[0]):
            name = name.strip()
            if not name or name in columns:
                name = f"column_{index + 1}"
            columns.append(name)

        return columns, header_parser.last_line_pos() or iterator.size

    def parse(self, path: Path, cursor: ParseCursor, settings: FeedPipeSettings) -> ParseResult:
        config = self.get_config()
        fingerprint = self.fingerprint()

        if cursor.offset and cursor.fingerprint and cursor.fingerprint != fingerprint:
            raise ProcessingError(
                "CSV settings changed during a running import; reset the import first",
                importer_id=self.id,
                recoverable=False,
            )

        with ByteOffsetIterator(path) as iterator:
            if config["no_headers"]:
                columns = config["column_names"]
                data_start = 0
            else:
                columns, data_start = self._read_header(iterator, settings)

            parser = self._stream_parser(settings)
            parser.set_column_names(columns or None)
            parser.set_line_limit(cursor.line_limit)
            parser.set_start_byte(max(cursor.offset, data_start))
            rows = parser.parse(iterator)
            total = iterator.size

        items = [
            row if isinstance(row, dict)
            else {f"column_{index + 1}": value for index, value in enumerate(row)}
            for row in rows
        ]

        self.logger.debug(
            f"Parsed {len(items)} rows from {path} up to byte {parser.last_line_pos() or total}"
        )

        advanced = cursor.advance(parser.last_line_pos(), len(items), parser.exhausted)
        return ParseResult(
            items=items,
            cursor=advanced.model_copy(update={"fingerprint": fingerprint}),
            total=total,
            metadata={"columns": columns},
        )


class SyndicationParserConfig(BaseModel):
    """RSS/Atom parser options."""
    clean_html: bool = Field(default=True, description="Convert summaries and content to plain text")
    max_content_length: int = Field(default=50000, ge=100, description="Truncate cleaned text after this many characters")


class SyndicationParser(Parser):
    """RSS/Atom parser handing out feed entries in batches."""

    plugin_key = "syndication"
    config_model = SyndicationParserConfig

    def dependencies(self):
        return {"feedparser", "bs4"}

    def parse(self, path: Path, cursor: ParseCursor, settings: FeedPipeSettings) -> ParseResult:
        config = self.get_config()

        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise SourceUnavailableError(
                f"Cannot read {path}: {e}", source=str(path), error_code=ErrorCode.SOURCE_NOT_FOUND
            ) from e

        parsed_feed = feedparser.parse(data)

        # Check for parsing errors (bozo detection)
        if parsed_feed.bozo:
            if not parsed_feed.entries:
                raise ProcessingError(
                    f"Invalid feed {path}: {parsed_feed.bozo_exception}",
                    importer_id=self.id,
                    error_code=ErrorCode.SOURCE_PARSE_ERROR,
                    recoverable=False,
                )
            # Many feeds have minor formatting issues
            self.logger.warning(f"Feed parsing warning for {path}: {parsed_feed.bozo_exception}")

        entries = parsed_feed.entries
        start = cursor.rows_consumed
        end = start + cursor.line_limit if cursor.line_limit else len(entries)
        cleaner = ContentCleaner(max_length=config["max_content_length"]) if config["clean_html"] else None

        items = []
        for entry in entries[start:end]:
            items.append(self._extract_item(entry, cleaner))

        exhausted = end >= len(entries)
        self.logger.debug(f"Handed out feed entries {start}-{min(end, len(entries))} of {len(entries)}")

        feed = parsed_feed.get("feed", {})
        return ParseResult(
            items=items,
            cursor=cursor.advance(0, len(items), exhausted),
            total=len(entries),
            metadata={
                "title": feed.get("title", ""),
                "link": feed.get("link", ""),
                "version": parsed_feed.get("version", ""),
            },
        )

    def _extract_item(self, entry: Any, cleaner: Optional[ContentCleaner]) -> Dict[str, Any]:
        """Normalize one feedparser entry into a flat item."""
        title = (entry.get("title") or "").strip()
        link = (entry.get("link") or "").strip()

        summary = entry.get("summary") or entry.get("description") or ""
        content = ""
        if entry.get("content"):
            content = entry.content[0].get("value", "")

        links = []
        if cleaner is not None:
            links = [found["url"] for found in cleaner.extract_links(content or summary, base_url=link or None)]
            summary = cleaner.clean_html_content(summary)
            content = cleaner.clean_html_content(content)

        author = entry.get("author")
        if not author and isinstance(entry.get("author_detail"), dict):
            author = entry.author_detail.get("name") or entry.author_detail.get("email")

        categories = []
        for tag in entry.get("tags") or []:
            term = tag.get("term", "") if isinstance(tag, dict) else str(tag)
            if term and term.strip():
                categories.append(term.strip())

        enclosures = [
            {"url": enc.get("href", ""), "type": enc.get("type", ""), "length": enc.get("length", 0)}
            for enc in entry.get("enclosures") or []
            if isinstance(enc, dict)
        ]

        return {
            "guid": entry.get("id") or entry.get("guid") or link or None,
            "title": title,
            "link": link,
            "summary": summary.strip(),
            "content": content.strip(),
            "author": author.strip() if author else None,
            "published": self._timestamp(entry.get("published_parsed")),
            "updated": self._timestamp(entry.get("updated_parsed")),
            "categories": categories,
            "enclosures": enclosures,
            "links": links,
        }

    @staticmethod
    def _timestamp(parsed_time) -> Optional[str]:
        if not parsed_time:
            return None
        try:
            return datetime(*parsed_time[:6], tzinfo=timezone.utc).isoformat()
        except (ValueError, TypeError):
            return None
