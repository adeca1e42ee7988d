"""
Importer
========

An importer names the fetcher, parser and processor plugins that make up
one import and carries the batching options shared by them. Each stage is
configured separately under the importer's id.
"""

from typing import Dict

from pydantic import BaseModel, Field, field_validator

from .configurable import Configurable


class ImporterConfig(BaseModel):
    """Importer options."""
    name: str = Field(default="", description="Human readable importer name")
    description: str = Field(default="", description="What this importer imports")
    fetcher: str = Field(default="http", description="Fetcher plugin key")
    parser: str = Field(default="csv", description="Parser plugin key")
    processor: str = Field(default="entity", description="Processor plugin key")
    process_limit: int = Field(default=0, ge=0, description="Rows per tick (0 = application default)")

    @field_validator("fetcher", "parser", "processor")
    @classmethod
    def validate_plugin_key(cls, v):
        v = v.strip().lower()
        if not v:
            raise ValueError("plugin key cannot be empty")
        return v


class Importer(Configurable):
    """Configurable describing one import chain."""

    plugin_key = "importer"
    config_model = ImporterConfig

    def plugin_keys(self) -> Dict[str, str]:
        """Plugin key per stage."""
        config = self.get_config()
        return {
            "fetcher": config["fetcher"],
            "parser": config["parser"],
            "processor": config["processor"],
        }

    def batch_size(self, default: int) -> int:
        """Rows handed out per tick."""
        return self.get_config()["process_limit"] or default

    @property
    def name(self) -> str:
        return self.get_config()["name"] or self.id
