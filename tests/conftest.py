"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for FeedPipe tests.

Every test gets its own SQLite file under pytest's tmp_path, so tests can
run in any order without clearing tables.
"""

import pytest
import os
import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
os.environ["FEEDPIPE_DEBUG"] = "true"
os.environ["FEEDPIPE_LOGGING__CONSOLE_LOGGING"] = "false"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def temp_db(tmp_path):
    """Create a database file with the full schema."""
    from feedpipe.database.schema import DatabaseSchema

    db_path = tmp_path / "feedpipe_test.db"
    schema = DatabaseSchema(str(db_path))
    schema.create_tables()

    yield str(db_path)


@pytest.fixture
def db_connection(temp_db):
    """Create a database connection manager for testing."""
    from feedpipe.database.connection import DatabaseConnection

    connection = DatabaseConnection(temp_db, pool_size=2)
    yield connection

    # Cleanup connections
    connection.close_all_connections()


@pytest.fixture
def config_repository(db_connection):
    from feedpipe.storage.config_repository import ConfigRepository

    return ConfigRepository(db_connection)


@pytest.fixture
def registry(config_repository):
    """Registry backed by the test database."""
    from feedpipe.plugins.registry import ConfigurableRegistry

    registry = ConfigurableRegistry(config_repository)
    yield registry
    registry.clear()


# ============================================================================
# Settings and Pipeline Fixtures
# ============================================================================


@pytest.fixture
def test_settings(tmp_path, temp_db):
    """Settings pointing every path into tmp_path."""
    from feedpipe.config.settings import (
        DatabaseSettings,
        FeedPipeSettings,
        FetchSettings,
        LoggingSettings,
        ProcessingSettings,
    )

    return FeedPipeSettings(
        database=DatabaseSettings(path=temp_db, pool_size=2),
        fetch=FetchSettings(download_dir=str(tmp_path / "downloads")),
        logging=LoggingSettings(file_path=None, console_logging=False),
        processing=ProcessingSettings(process_limit=2),
    )


@pytest.fixture
def pipeline(db_connection, test_settings, registry):
    """Import pipeline sharing the test registry."""
    from feedpipe.processing.pipeline import ImportPipeline

    return ImportPipeline(db_connection, settings=test_settings, registry=registry)


# ============================================================================
# Source Fixtures
# ============================================================================


SAMPLE_HEADER = ["sku", "name", "price"]

SAMPLE_ROWS = [
    ["A-001", "Espresso cup", "4.50"],
    ["A-002", "Latte glass", "6.00"],
    ["A-003", "Milk jug, steel", "12.90"],
    ["A-004", 'The "Barista" tamper', "24.00"],
    ["A-005", "Grinder\nwith two lines", "129.00"],
    ["A-006", "", "0.00"],
    ["A-007", "Filter papers", "3.20"],
    ["A-008", "Kettle", "39.99"],
    ["A-009", "Scale", "19.50"],
    ["A-010", "Cleaning tablets", "8.75"],
]


def to_csv(rows, delimiter=",", line_ending="\n", quote='"'):
    """Render rows as CSV text, quoting only where needed."""
    specials = (delimiter, quote, "\n", "\r")

    def render(cell):
        if any(ch in cell for ch in specials):
            return quote + cell.replace(quote, quote * 2) + quote
        return cell

    return "".join(delimiter.join(render(c) for c in row) + line_ending for row in rows)


@pytest.fixture
def render_csv():
    return to_csv


@pytest.fixture
def sample_rows():
    return [list(row) for row in SAMPLE_ROWS]


@pytest.fixture
def write_source(tmp_path):
    """Factory writing bytes or text into a file under tmp_path."""

    def _write(name, content, encoding="utf-8"):
        path = tmp_path / name
        data = content if isinstance(content, bytes) else content.encode(encoding)
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def products_csv(write_source):
    """Header plus ten product rows."""
    return write_source("products.csv", to_csv([SAMPLE_HEADER] + SAMPLE_ROWS))


@pytest.fixture
def sample_rss():
    return """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Roastery News</title>
    <link>https://example.com/</link>
    <description>Updates from the roastery</description>
    <item>
      <title>New single origin</title>
      <link>https://example.com/posts/1</link>
      <guid>post-1</guid>
      <description>&lt;p&gt;Fresh beans from &lt;b&gt;Ethiopia&lt;/b&gt;&lt;/p&gt;&lt;script&gt;alert(1)&lt;/script&gt;</description>
      <category>beans</category>
      <pubDate>Mon, 06 Jan 2025 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Brewing workshop</title>
      <link>https://example.com/posts/2</link>
      <guid>post-2</guid>
      <description>Learn pour-over in two hours, see &lt;a href="https://example.com/workshops"&gt;workshops&lt;/a&gt;.</description>
    </item>
    <item>
      <title>Holiday hours</title>
      <link>https://example.com/posts/3</link>
      <guid>post-3</guid>
      <description>Closed on the 25th.</description>
    </item>
  </channel>
</rss>
"""
