"""
FeedPipe Configuration System
=============================

Application settings from environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.

Per-importer configuration (delimiters, mappings, plugin choices) is not
kept here; it lives with each configurable in the database.
"""

from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ProcessingSettings(BaseModel):
    """Import batching configuration."""
    process_limit: int = Field(default=50, ge=1, le=10000, description="Rows or items handled per tick")
    parse_timeout: float = Field(default=0.0, ge=0.0, description="Seconds a single parse call may run (0 = no limit)")
    max_ticks_per_run: int = Field(default=1000, ge=1, description="Safety cap on ticks for a single run command")


class LimitsSettings(BaseModel):
    """Network limits for fetchers."""
    request_timeout: int = Field(default=30, ge=1, le=300, description="Request timeout in seconds")
    max_retries: int = Field(default=3, ge=0, le=10, description="HTTP retries for transient errors")
    max_download_mb: int = Field(default=100, ge=1, description="Largest accepted HTTP download")


class FetchSettings(BaseModel):
    """Where fetched sources are stored between ticks."""
    download_dir: str = Field(default="data/downloads", description="Directory for downloaded sources")
    user_agent: str = Field(default="FeedPipe/1.0", description="User-Agent for HTTP requests")

    @field_validator("user_agent")
    @classmethod
    def validate_user_agent(cls, v):
        if not v or not v.strip():
            raise ValueError("user_agent cannot be empty")
        return v.strip()


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/feedpipe.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/feedpipe.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class FeedPipeSettings(BaseSettings):
    """Main application settings."""

    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="FeedPipe", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "FEEDPIPE_",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration and create working directories."""
        errors = []

        for label, raw_path in (
            ("database path", self.database.path),
            ("log file path", self.logging.file_path),
        ):
            if not raw_path:
                continue
            try:
                Path(raw_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid {label}: {e}")

        try:
            Path(self.fetch.download_dir).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid download directory: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID,
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> FeedPipeSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        # Precedence: environment, then .env, then Field defaults
        settings = FeedPipeSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID,
        ) from e


_settings: Optional[FeedPipeSettings] = None


def get_settings(reload: bool = False) -> FeedPipeSettings:
    """Get global settings instance.

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
