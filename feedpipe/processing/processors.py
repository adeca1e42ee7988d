"""
Processor Stage
===============

Processors turn parsed items into persisted entities. Processing is
at-least-once: after a failed tick the same batch may be handed out again,
so processors have to tolerate items they already stored.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..database.models import Entity
from ..plugins.configurable import Configurable
from ..storage.entity_repository import EntityRepository


@dataclass
class ProcessResult:
    """Counters for one processed batch."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated + self.skipped + self.failed


class Processor(Configurable):
    """Base class for processor plugins."""

    stage = "processor"

    def process(self, items: List[Dict[str, Any]], entities: EntityRepository) -> ProcessResult:
        """Persist one batch of items.

        Raises:
            DatabaseError: If the entity storage fails
        """
        raise NotImplementedError


class FieldMapping(BaseModel):
    """Maps one item key onto one entity field."""
    source: str = Field(..., min_length=1, description="Key in the parsed item")
    target: str = Field(default="", description="Entity field name (empty = same as source)")
    unique: bool = Field(default=False, description="Part of the entity's unique key")


class EntityProcessorConfig(BaseModel):
    """Entity processor options."""
    entity_type: str = Field(default="item", min_length=1, description="Type of the created entities")
    update_existing: int = Field(
        default=2, ge=0, le=2,
        description="Existing entities: 0 = skip, 1 = replace, 2 = update mapped fields",
    )
    mappings: List[FieldMapping] = Field(default_factory=list, description="Item to entity field mappings (empty = copy all)")
    skip_hash_check: bool = Field(default=False, description="Rewrite entities even when unchanged")

    @field_validator("entity_type")
    @classmethod
    def validate_entity_type(cls, v):
        return v.strip().lower()


class EntityProcessor(Processor):
    """Creates or updates one entity per item."""

    plugin_key = "entity"
    config_model = EntityProcessorConfig

    UPDATE_SKIP = 0
    UPDATE_REPLACE = 1
    UPDATE_MERGE = 2

    DEFAULT_KEYS = ("guid", "id", "link")

    def map_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Apply the configured mappings to one item."""
        mappings = self.get_config()["mappings"]
        if not mappings:
            return dict(item)
        return {
            mapping.get("target") or mapping["source"]: item.get(mapping["source"])
            for mapping in mappings
        }

    def unique_key(self, item: Dict[str, Any], payload: Dict[str, Any]) -> Optional[str]:
        """Key identifying the entity of ``item``.

        Uses the unique mappings when configured, then the usual id fields,
        and finally the content hash.
        """
        unique = [m["source"] for m in self.get_config()["mappings"] if m.get("unique")]
        if unique:
            values = [item.get(source) for source in unique]
            if any(value in (None, "") for value in values):
                return None
            return "|".join(str(value) for value in values)

        for key in self.DEFAULT_KEYS:
            if item.get(key):
                return str(item[key])

        return Entity.hash_payload(payload)

    def process(self, items: List[Dict[str, Any]], entities: EntityRepository) -> ProcessResult:
        config = self.get_config()
        result = ProcessResult()

        for item in items:
            payload = self.map_item(item)
            guid = self.unique_key(item, payload)
            if not guid:
                self.logger.warning(f"Skipping item without unique key: {item}")
                result.failed += 1
                continue

            try:
                entity = Entity(
                    entity_type=config["entity_type"],
                    guid=guid,
                    importer_id=self.id,
                    payload=payload,
                )
            except PydanticValidationError as e:
                self.logger.warning(f"Invalid item {guid}: {e}")
                result.failed += 1
                continue

            existing = entities.get(entity.entity_type, entity.guid)
            if existing is None:
                entities.create(entity)
                result.created += 1
                continue

            if config["update_existing"] == self.UPDATE_SKIP:
                result.skipped += 1
                continue

            if config["update_existing"] == self.UPDATE_MERGE:
                entity = entity.model_copy(update={
                    "payload": {**existing.payload, **payload},
                    "content_hash": Entity.hash_payload({**existing.payload, **payload}),
                })

            if not config["skip_hash_check"] and entity.content_hash == existing.content_hash:
                result.skipped += 1
                continue

            entities.update(entity)
            result.updated += 1

        self.logger.debug(
            f"Processed {len(items)} items: {result.created} created, {result.updated} updated, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result
