"""
Foundation Tests for FeedPipe
=============================

Test suite for core foundation components including database,
configuration, logging, and validation systems.
"""

import pytest
import sqlite3
import os
import json
import logging
from unittest.mock import patch

from feedpipe.database.schema import DatabaseSchema
from feedpipe.database.connection import DatabaseConnection, get_db_manager
from feedpipe.database.models import Entity, ImportState, ImportStatus, ParseCursor
from feedpipe.config.settings import FeedPipeSettings, LoggingSettings, get_settings
from feedpipe.utils.logging import setup_logger, configure_application_logging, get_logger_for_component, PerformanceLogger
from feedpipe.utils.exceptions import (
    FeedPipeError, ConfigurationError, DatabaseError, ValidationError, SourceUnavailableError,
    EncodingConversionError, ErrorCode, handle_exception, is_retryable_error, get_user_friendly_message
)
from feedpipe.utils.validators import URLValidator, ConfigValidator, validate_file_path, validate_url


class TestDatabaseSchema:
    """Test database schema creation and validation."""

    def test_create_tables(self, tmp_path):
        """Test database table creation."""
        db_path = tmp_path / "test.db"
        schema = DatabaseSchema(str(db_path))

        schema.create_tables()

        with sqlite3.connect(db_path) as conn:
            cursor = conn.execute("""
                SELECT name FROM sqlite_master
                WHERE type='table' AND name NOT LIKE 'sqlite_%'
            """)
            tables = [row[0] for row in cursor.fetchall()]

        assert set(tables) == {"configurables", "import_states", "entities"}

    def test_verify_schema(self, tmp_path):
        """Test schema verification."""
        schema = DatabaseSchema(str(tmp_path / "test.db"))

        assert not schema.verify_schema()

        schema.create_tables()
        assert schema.verify_schema()

        schema.drop_tables()
        assert not schema.verify_schema()

    def test_status_constraint(self, temp_db):
        """Import states only accept known statuses."""
        with sqlite3.connect(temp_db) as conn:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    "INSERT INTO import_states (importer_id, status) VALUES ('shop', 'sleeping')"
                )


class TestDatabaseConnection:
    """Test database connection management and pooling."""

    def test_connection_pooling(self, tmp_path):
        """More contexts than pooled connections still work."""
        db_manager = DatabaseConnection(str(tmp_path / "test.db"), pool_size=2)

        for _ in range(3):
            with db_manager.get_connection() as conn:
                assert conn.execute("SELECT 1").fetchone()[0] == 1

        db_manager.close_all_connections()

    def test_transaction_management(self, db_connection):
        """Test transaction rollback on errors."""
        with db_connection.transaction() as conn:
            conn.execute("INSERT INTO configurables (class_name, id) VALUES ('csv', 'shop')")

        assert db_connection.execute_one(
            "SELECT id FROM configurables WHERE class_name = ?", ("csv",)
        )["id"] == "shop"

        with pytest.raises(ValueError):
            with db_connection.transaction() as conn:
                conn.execute("INSERT INTO configurables (class_name, id) VALUES ('csv', 'news')")
                raise ValueError("Test error")

        assert db_connection.execute_one(
            "SELECT id FROM configurables WHERE id = ?", ("news",)
        ) is None

    def test_database_info(self, db_connection):
        db_connection.execute_update("INSERT INTO configurables (class_name, id) VALUES ('csv', 'shop')")

        info = db_connection.get_database_info()

        assert info["table_counts"] == {"configurables": 1, "import_states": 0, "entities": 0}
        assert info["database_size_mb"] > 0

    def test_global_manager_follows_path(self, tmp_path):
        first = get_db_manager(str(tmp_path / "a.db"), pool_size=1)

        assert get_db_manager(str(tmp_path / "a.db"), pool_size=1) is first
        assert get_db_manager(str(tmp_path / "b.db"), pool_size=1) is not first


class TestDataModels:
    """Test Pydantic data models."""

    def test_cursor_advance(self):
        cursor = ParseCursor(line_limit=2)

        advanced = cursor.advance(120, 2, exhausted=False)
        assert (advanced.offset, advanced.rows_consumed, advanced.exhausted) == (120, 2, False)
        assert cursor.offset == 0

        finished = advanced.advance(300, 1, exhausted=True)
        assert (finished.offset, finished.rows_consumed, finished.exhausted) == (0, 3, True)

    def test_cursor_reset_keeps_limit(self):
        cursor = ParseCursor(offset=10, rows_consumed=5, line_limit=2, fingerprint="abc")
        assert cursor.reset() == ParseCursor(line_limit=2)

    def test_negative_offset_rejected(self):
        with pytest.raises(Exception):
            ParseCursor(offset=-1)

    def test_import_state_progress(self):
        state = ImportState(importer_id="shop", total=200, cursor=ParseCursor(offset=50))
        assert state.progress == 0.25

        item_state = ImportState(importer_id="news", total=4, cursor=ParseCursor(rows_consumed=3))
        assert item_state.progress == 0.75

        assert ImportState(importer_id="idle").progress == 0.0
        assert ImportState(importer_id="done", status=ImportStatus.COMPLETE).progress == 1.0

    def test_import_state_in_progress(self):
        state = ImportState(importer_id="shop")
        assert not state.in_progress

        state.fetched_path = "/tmp/shop.csv"
        assert state.in_progress

        state.cursor = state.cursor.advance(0, 3, exhausted=True)
        assert not state.in_progress

    def test_import_state_from_db_row(self):
        row = {
            "importer_id": "shop",
            "status": "parsing",
            "cursor": ParseCursor(offset=42, line_limit=2).model_dump_json(),
            "total": 100,
        }

        state = ImportState.from_db_row(row)

        assert state.status == ImportStatus.PARSING
        assert state.cursor.offset == 42

    def test_entity_hash(self):
        first = Entity(entity_type="item", guid="a", importer_id="shop", payload={"x": 1, "y": 2})
        second = Entity(entity_type="item", guid="b", importer_id="shop", payload={"y": 2, "x": 1})
        third = Entity(entity_type="item", guid="a", importer_id="shop", payload={"x": 2})

        assert first.content_hash == second.content_hash
        assert first.content_hash != third.content_hash

    def test_entity_guid_validation(self):
        assert Entity(entity_type="item", guid="  a  ", importer_id="shop").guid == "a"
        with pytest.raises(Exception):
            Entity(entity_type="item", guid="   ", importer_id="shop")


class TestConfiguration:
    """Test configuration system."""

    def test_defaults(self):
        settings = FeedPipeSettings()

        assert settings.processing.process_limit == 50
        assert settings.limits.request_timeout == 30
        assert settings.fetch.user_agent == "FeedPipe/1.0"

    def test_environment_overrides(self):
        with patch.dict(os.environ, {
            "FEEDPIPE_PROCESSING__PROCESS_LIMIT": "7",
            "FEEDPIPE_FETCH__DOWNLOAD_DIR": "/tmp/feedpipe-downloads",
            "FEEDPIPE_LOGGING__LEVEL": "WARNING",
        }):
            settings = FeedPipeSettings()

        assert settings.processing.process_limit == 7
        assert settings.fetch.download_dir == "/tmp/feedpipe-downloads"
        assert settings.logging.level.value == "WARNING"

    def test_invalid_configuration(self):
        with pytest.raises(Exception):
            FeedPipeSettings(processing={"process_limit": 0})

        with pytest.raises(Exception):
            FeedPipeSettings(fetch={"user_agent": "   "})

    def test_validate_configuration_creates_directories(self, tmp_path):
        settings = FeedPipeSettings(
            database={"path": str(tmp_path / "db" / "feedpipe.db")},
            fetch={"download_dir": str(tmp_path / "downloads")},
            logging={"file_path": None},
        )

        settings.validate_configuration()

        assert (tmp_path / "db").is_dir()
        assert (tmp_path / "downloads").is_dir()

    def test_debug_log_level(self):
        assert FeedPipeSettings(debug=True).get_effective_log_level() == "DEBUG"
        assert FeedPipeSettings(debug=False).get_effective_log_level() == "INFO"

    def test_get_settings_is_cached(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FEEDPIPE_DATABASE__PATH", str(tmp_path / "feedpipe.db"))
        monkeypatch.setenv("FEEDPIPE_FETCH__DOWNLOAD_DIR", str(tmp_path / "downloads"))
        monkeypatch.setenv("FEEDPIPE_LOGGING__FILE_PATH", str(tmp_path / "logs" / "feedpipe.log"))

        settings = get_settings(reload=True)

        assert get_settings() is settings
        assert settings.database.path == str(tmp_path / "feedpipe.db")


class TestLogging:
    """Test logging system."""

    def test_logger_setup(self, tmp_path):
        """Test logger configuration."""
        log_file = tmp_path / "test.log"
        logger = setup_logger(
            name="test_logger",
            level="INFO",
            log_file=str(log_file),
            console=False,
        )

        logger.info("Test message")
        logger.error("Test error message")

        records = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert [record["message"] for record in records] == ["Test message", "Test error message"]
        assert records[1]["level"] == "ERROR"

    def test_component_context_in_file(self, tmp_path):
        log_file = tmp_path / "feedpipe.log"
        configure_application_logging(
            LoggingSettings(file_path=str(log_file), console_logging=False), level="DEBUG"
        )

        get_logger_for_component("pipeline", importer_id="shop").info("tick", extra={"rows": 2})

        record = json.loads(log_file.read_text().splitlines()[-1])
        assert record["component"] == "pipeline"
        assert record["importer_id"] == "shop"
        assert record["extra"] == {"rows": 2}

        logging.getLogger("feedpipe").handlers.clear()

    def test_performance_logger(self, caplog):
        """Test performance logging context manager."""
        caplog.set_level(logging.INFO)
        logger = logging.getLogger("test")
        logger.setLevel(logging.INFO)

        with PerformanceLogger(logger, "test_operation", param1="value1") as perf:
            pass

        assert "Completed test_operation" in caplog.text
        assert perf.duration is not None


class TestExceptions:
    """Test exception handling system."""

    def test_feedpipe_error(self):
        """Test FeedPipe error creation and serialization."""
        error = FeedPipeError(
            message="Test error",
            error_code=ErrorCode.CONFIG_INVALID,
            context={"key": "value"},
            user_message="User-friendly message",
            recoverable=True
        )

        assert str(error) == "[C001] Test error"
        assert error.message == "Test error"
        assert error.user_message == "User-friendly message"

        error_dict = error.to_dict()
        assert error_dict["error_code"] == "C001"
        assert error_dict["context"]["key"] == "value"

    def test_specific_errors(self):
        db_error = DatabaseError(message="Connection failed", query="SELECT * FROM test")
        assert db_error.context["query"] == "SELECT * FROM test"

        config_error = ConfigurationError(message="Invalid config", config_key="database.path")
        assert config_error.context["config_key"] == "database.path"

        encoding_error = EncodingConversionError("bad byte", encoding="shift_jis", position=3)
        assert encoding_error.context == {"encoding": "shift_jis", "position": 3}
        assert not encoding_error.recoverable

    def test_exception_handling(self):
        """Test exception handling utility."""
        logger = logging.getLogger("test")

        handled_error = handle_exception(
            ValueError("Test value error"),
            logger,
            "test_operation",
            {"context_key": "context_value"}
        )

        assert isinstance(handled_error, FeedPipeError)
        assert handled_error.context["operation"] == "test_operation"
        assert handled_error.context["context_key"] == "context_value"

        missing = handle_exception(FileNotFoundError("gone.csv"), logger, "open")
        assert missing.error_code == ErrorCode.SOURCE_NOT_FOUND

        original = SourceUnavailableError("down")
        assert handle_exception(original, logger, "fetch") is original

    def test_retryable_errors(self):
        assert is_retryable_error(SourceUnavailableError("Network timeout"))
        assert not is_retryable_error(ValidationError(message="Invalid input"))
        assert not is_retryable_error(SourceUnavailableError("Too large", recoverable=False))

    def test_user_friendly_message(self):
        assert get_user_friendly_message(SourceUnavailableError("down")) == "Source unavailable: down"
        assert "unexpected" in get_user_friendly_message(RuntimeError("boom"))


class TestValidators:
    """Test validation utilities."""

    def test_url_validator(self):
        assert URLValidator.validate_source_url("https://example.com/feed.xml") == "https://example.com/feed.xml"
        assert URLValidator.validate_source_url("HTTP://EXAMPLE.COM/RSS") == "http://example.com/RSS"

        for invalid in ("", "javascript:alert(1)", "ftp://example.com/feed", "https://"):
            with pytest.raises(ValidationError):
                URLValidator.validate_source_url(invalid)

        assert validate_url("https://example.com/a")
        assert not validate_url("mailto:someone@example.com")

    def test_config_validator(self):
        assert ConfigValidator.validate_identifier("shop_2") == "shop_2"
        for invalid in ("", "Shop", "shop-2", "shop 2"):
            with pytest.raises(ValidationError):
                ConfigValidator.validate_identifier(invalid)

        assert ConfigValidator.validate_delimiter("TAB") == "\t"
        assert ConfigValidator.validate_delimiter(";") == ";"
        with pytest.raises(ValidationError):
            ConfigValidator.validate_delimiter("\r")

        assert ConfigValidator.validate_encoding("Latin-1") == "iso8859-1"
        assert ConfigValidator.validate_encoding("") is None

    def test_file_path_validator(self, tmp_path):
        existing = tmp_path / "rows.csv"
        existing.write_text("a\n")

        assert validate_file_path(str(existing), must_exist=True) == existing.resolve()
        assert validate_file_path(str(tmp_path / "new.csv")).name == "new.csv"
        with pytest.raises(ValidationError):
            validate_file_path(str(tmp_path / "missing.csv"), must_exist=True)
        with pytest.raises(ValidationError):
            validate_file_path("")
