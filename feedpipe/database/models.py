"""
FeedPipe Data Models
====================

Pydantic models for the rows FeedPipe persists: configurable records,
per-importer import state with its parse cursor, and imported entities.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
import hashlib
import json

from pydantic import BaseModel, Field, field_validator


class ImportStatus(str, Enum):
    """Import state machine states."""
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class ParseCursor(BaseModel):
    """Resume point of a batched parse.

    ``offset`` is a byte offset for stream parsers and unused by item
    parsers, which advance ``rows_consumed`` instead.
    """
    offset: int = Field(default=0, ge=0, description="Byte offset to resume from")
    rows_consumed: int = Field(default=0, ge=0, description="Rows or items handed out so far")
    line_limit: int = Field(default=0, ge=0, description="Rows per parse call (0 = unlimited)")
    exhausted: bool = Field(default=False, description="Whole source consumed")
    fingerprint: Optional[str] = Field(default=None, description="Parser settings the offsets belong to")

    def advance(self, offset: int, rows: int, exhausted: bool) -> "ParseCursor":
        """Return the cursor after a parse call that produced ``rows`` rows."""
        return self.model_copy(update={
            "offset": 0 if exhausted else offset,
            "rows_consumed": self.rows_consumed + rows,
            "exhausted": exhausted,
        })

    def reset(self) -> "ParseCursor":
        """Return a fresh cursor keeping only the configured limit."""
        return ParseCursor(line_limit=self.line_limit)


class ConfigurableRecord(BaseModel):
    """Stored configuration of one configurable identity."""
    id: str = Field(..., min_length=1, description="Configurable id")
    class_name: str = Field(..., min_length=1, description="Configurable class or plugin key")
    config: Dict[str, Any] = Field(default_factory=dict)
    disabled: bool = Field(default=False)
    updated_at: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))

    def config_json(self) -> str:
        return json.dumps(self.config, sort_keys=True)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "ConfigurableRecord":
        data = dict(row)
        if isinstance(data.get("config"), str):
            data["config"] = json.loads(data["config"])
        data["disabled"] = bool(data.get("disabled"))
        return cls(**data)


class ImportState(BaseModel):
    """Persisted progress of one importer across ticks."""
    importer_id: str = Field(..., min_length=1)
    status: ImportStatus = Field(default=ImportStatus.IDLE)
    source: Optional[str] = Field(default=None, description="URL or path given to the fetcher")
    fetched_path: Optional[str] = Field(default=None, description="Local copy of the fetched source")
    cursor: ParseCursor = Field(default_factory=ParseCursor)
    total: int = Field(default=0, ge=0, description="Source size in bytes, or item count")
    created: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    last_error: Optional[str] = Field(default=None)
    started_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def progress(self) -> float:
        """Fraction of the source consumed, 1.0 once complete."""
        if self.status == ImportStatus.COMPLETE:
            return 1.0
        if not self.total:
            return 0.0
        done = self.cursor.offset or self.cursor.rows_consumed
        return min(done / self.total, 1.0)

    @property
    def in_progress(self) -> bool:
        """True while a fetched source still has unconsumed input."""
        return self.fetched_path is not None and not self.cursor.exhausted

    def reset_counters(self) -> None:
        self.created = self.updated = self.skipped = self.failed = 0

    def cursor_json(self) -> str:
        return self.cursor.model_dump_json()

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "ImportState":
        data = dict(row)
        if isinstance(data.get("cursor"), str):
            data["cursor"] = ParseCursor.model_validate_json(data["cursor"])
        return cls(**data)

    def __str__(self) -> str:
        return f"ImportState({self.importer_id}:{self.status.value} {self.progress:.0%})"


class Entity(BaseModel):
    """Opaque record created or updated by the entity processor."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    entity_type: str = Field(..., min_length=1, max_length=100)
    guid: str = Field(..., min_length=1, description="Unique key within the entity type")
    importer_id: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict, description="Mapped field values")
    content_hash: str = Field(default="")
    created_at: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))

    def __init__(self, **data):
        """Initialize entity with a hash of its field values."""
        if not data.get("content_hash"):
            data["content_hash"] = Entity.hash_payload(data.get("payload") or {})
        super().__init__(**data)

    @staticmethod
    def hash_payload(payload: Dict[str, Any]) -> str:
        encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    @field_validator("guid")
    @classmethod
    def validate_guid(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("guid cannot be empty")
        return v

    def payload_json(self) -> str:
        return json.dumps(self.payload, sort_keys=True, default=str)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Entity":
        data = dict(row)
        if isinstance(data.get("payload"), str):
            data["payload"] = json.loads(data["payload"])
        return cls(**data)

    def __str__(self) -> str:
        return f"Entity({self.entity_type}:{self.guid})"
