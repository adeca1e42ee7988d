"""
FeedPipe Logging Configuration
==============================

Console and rotating file output for CLI runs. Loggers live under the
``feedpipe`` namespace; components get adapters that stamp the importer,
plugin and source they work for onto every record.
"""

import logging
import logging.handlers
import sys
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Any, Optional

if TYPE_CHECKING:
    from ..config.settings import LoggingSettings


ROOT_LOGGER = "feedpipe"

# Adapter fields promoted to top-level keys of structured records
CONTEXT_FIELDS = ("component", "importer_id", "plugin_key", "source")

_STANDARD_ATTRS = set(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            if key in CONTEXT_FIELDS:
                log_data[key] = value
            else:
                extra[key] = value

        if extra:
            log_data["extra"] = extra
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short colored lines tagged with the importer being worked on."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        origin = getattr(record, "component", record.name)
        importer_id = getattr(record, "importer_id", None)
        if importer_id:
            origin = f"{origin}[{importer_id}]"

        line = f"{color}[{timestamp}] {record.levelname:8}{self.RESET} {origin} - {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logger(
    name: str = ROOT_LOGGER,
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    structured: bool = False,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and file handlers to ``name``, replacing earlier ones.

    The file handler always writes structured records; ``structured``
    switches the console to JSON as well.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level.upper())
    logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(StructuredFormatter() if structured else ConsoleFormatter())
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger


def configure_application_logging(config: "LoggingSettings", level: Optional[str] = None) -> logging.Logger:
    """Configure the ``feedpipe`` logger from the logging settings.

    Args:
        config: Logging section of the application settings
        level: Overrides ``config.level`` (the CLI's --debug flag)
    """
    logger = setup_logger(
        level=level or config.level.value,
        log_file=config.file_path,
        console=config.console_logging,
        structured=config.structured_logging,
        max_file_size_mb=config.max_file_size_mb,
        backup_count=config.backup_count,
    )

    for noisy in ("urllib3", "requests", "feedparser"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """Adapter merging fixed context into every record's extra."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger_for_component(
    component_name: str,
    importer_id: Optional[str] = None,
    plugin_key: Optional[str] = None,
    source: Optional[str] = None,
) -> LoggerAdapter:
    """Logger adapter for one component, optionally bound to an import.

    Args:
        component_name: Name of the component (e.g. 'pipeline', 'config_repository')
        importer_id: Importer the component works for
        plugin_key: Plugin key of the pipeline stage
        source: Source URL or path being imported
    """
    context = {"component": component_name}
    if importer_id:
        context["importer_id"] = importer_id
    if plugin_key:
        context["plugin_key"] = plugin_key
    if source:
        context["source"] = source

    return LoggerAdapter(logging.getLogger(f"{ROOT_LOGGER}.{component_name}"), context)


def get_import_logger(importer_id: Optional[str] = None, source: Optional[str] = None) -> LoggerAdapter:
    return get_logger_for_component("pipeline", importer_id=importer_id, source=source)


def get_plugin_logger(plugin_key: str, importer_id: Optional[str] = None) -> LoggerAdapter:
    return get_logger_for_component(
        f"plugins.{plugin_key}", importer_id=importer_id, plugin_key=plugin_key
    )


class PerformanceLogger:
    """Times a block and logs its outcome.

    ``duration`` is available after the block, also when it raised.
    """

    def __init__(self, logger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: Optional[datetime] = None
        self.duration: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = datetime.now(timezone.utc)
        self.logger.debug(f"Starting {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        context = {**self.context, "duration_seconds": self.duration, "success": exc_type is None}

        if exc_type:
            self.logger.error(f"Failed {self.operation} in {self.duration:.3f}s", extra=context)
        else:
            self.logger.info(f"Completed {self.operation} in {self.duration:.3f}s", extra=context)
