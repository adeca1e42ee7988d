"""
Import Pipeline Integration Tests
=================================

Full fetch, parse and process ticks against a real SQLite database,
local CSV files and a mocked HTTP feed.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from feedpipe.database.models import ImportStatus, ParseCursor
from feedpipe.plugins.configurable import submit_form
from feedpipe.processing.parsers import CSVParser
from feedpipe.processing.processors import EntityProcessor
from feedpipe.utils.exceptions import (
    DatabaseError,
    ErrorCode,
    InvalidArgumentError,
    NotExistingError,
    ProcessingError,
    SourceUnavailableError,
)

pytestmark = pytest.mark.integration


@pytest.fixture
def csv_importer(pipeline):
    """Importer reading local CSV files into product entities."""
    assert submit_form(pipeline.importer("shop"), {"name": "Shop", "fetcher": "file"}) == {}
    processor = pipeline.registry.instance(EntityProcessor, "shop")
    assert submit_form(processor, {
        "entity_type": "product",
        "mappings": [
            {"source": "sku", "unique": True},
            {"source": "name"},
            {"source": "price"},
        ],
    }) == {}
    return pipeline.importer("shop")


def stored_skus(pipeline, importer_id="shop"):
    return [entity.guid for entity in pipeline.entity_repository.list_for_importer(importer_id)]


class TestCSVImport:
    """Batched CSV imports with the local file fetcher."""

    def test_import_in_batches(self, pipeline, csv_importer, products_csv):
        results = pipeline.run("shop", str(products_csv))

        assert [result.rows for result in results] == [2, 2, 2, 2, 2]
        assert [result.status for result in results] == [ImportStatus.IDLE] * 4 + [ImportStatus.COMPLETE]
        assert stored_skus(pipeline) == [f"A-{i:03d}" for i in range(1, 11)]

        product = pipeline.entity_repository.get("product", "A-005")
        assert product.payload == {"sku": "A-005", "name": "Grinder\nwith two lines", "price": "129.00"}

    def test_state_after_each_tick(self, pipeline, csv_importer, products_csv):
        first = pipeline.tick("shop", str(products_csv))
        state = pipeline.status("shop")

        assert first.success
        assert first.created == 2
        assert 0 < first.progress < 1
        assert state.status == ImportStatus.IDLE
        assert state.cursor.offset == first.offset > 0
        assert state.cursor.rows_consumed == 2
        assert state.fetched_path is not None
        assert state.source == str(products_csv)

        second = pipeline.tick("shop")

        assert second.offset > first.offset
        assert pipeline.status("shop").created == 4

    def test_completion_resets_cursor(self, pipeline, csv_importer, products_csv):
        pipeline.run("shop", str(products_csv))
        state = pipeline.status("shop")

        assert state.status == ImportStatus.COMPLETE
        assert state.cursor == ParseCursor(line_limit=2)
        assert state.fetched_path is None
        assert state.progress == 1.0
        assert state.created == 10
        assert products_csv.exists()

    def test_rerun_skips_unchanged_rows(self, pipeline, csv_importer, products_csv):
        pipeline.run("shop", str(products_csv))

        results = pipeline.run("shop")

        assert sum(result.skipped for result in results) == 10
        assert sum(result.created for result in results) == 0
        assert pipeline.status("shop").skipped == 10

    def test_importer_batch_size(self, pipeline, csv_importer, products_csv):
        assert submit_form(csv_importer, {"process_limit": 4}) == {}

        results = pipeline.run("shop", str(products_csv))

        assert [result.rows for result in results] == [4, 4, 2]

    def test_max_ticks_cap(self, pipeline, csv_importer, products_csv):
        results = pipeline.run("shop", str(products_csv), max_ticks=2)

        assert len(results) == 2
        assert pipeline.status("shop").status == ImportStatus.IDLE
        assert pipeline.progress("shop") < 1


class TestFailures:
    """A failed tick keeps the last committed cursor."""

    def test_processor_failure_retries_same_batch(self, pipeline, csv_importer, products_csv):
        pipeline.tick("shop", str(products_csv))
        committed = pipeline.status("shop").cursor

        with patch.object(EntityProcessor, "process", side_effect=RuntimeError("disk full")):
            failed = pipeline.tick("shop")

        state = pipeline.status("shop")
        assert failed.status == ImportStatus.FAILED
        assert isinstance(failed.error, ProcessingError)
        assert state.cursor == committed
        assert "disk full" in state.last_error

        retried = pipeline.tick("shop")

        assert retried.success
        assert retried.created == 2
        assert pipeline.status("shop").last_error is None
        assert stored_skus(pipeline) == ["A-001", "A-002", "A-003", "A-004"]

    def test_unsaved_failure_still_reported(self, pipeline, csv_importer, products_csv):
        pipeline.tick("shop", str(products_csv))
        save = pipeline.state_repository.save

        def save_unless_failed(state):
            if state.status == ImportStatus.FAILED:
                raise DatabaseError("database is locked")
            save(state)

        with patch.object(EntityProcessor, "process", side_effect=RuntimeError("crash")), \
                patch.object(pipeline.state_repository, "save", side_effect=save_unless_failed):
            failed = pipeline.tick("shop")

        assert failed.status == ImportStatus.FAILED
        assert "crash" in str(failed.error)

    def test_interrupted_import_completes_without_duplicates(self, pipeline, csv_importer, products_csv):
        pipeline.tick("shop", str(products_csv))
        pipeline.tick("shop")

        with patch.object(EntityProcessor, "process", side_effect=RuntimeError("crash")):
            pipeline.tick("shop")

        pipeline.run("shop")

        assert stored_skus(pipeline) == [f"A-{i:03d}" for i in range(1, 11)]
        assert pipeline.status("shop").status == ImportStatus.COMPLETE

    def test_missing_source(self, pipeline, csv_importer, tmp_path):
        result = pipeline.tick("shop", str(tmp_path / "missing.csv"))

        assert result.status == ImportStatus.FAILED
        assert isinstance(result.error, SourceUnavailableError)
        assert result.error.error_code == ErrorCode.SOURCE_NOT_FOUND
        assert result.error.recoverable

    def test_no_source(self, pipeline, csv_importer):
        result = pipeline.tick("shop")

        assert isinstance(result.error, InvalidArgumentError)
        assert pipeline.status("shop").status == ImportStatus.FAILED

    def test_empty_importer_id(self, pipeline):
        with pytest.raises(InvalidArgumentError):
            pipeline.tick("")

    def test_disabled_stage(self, pipeline, csv_importer, products_csv):
        pipeline.registry.instance(CSVParser, "shop").disable()

        result = pipeline.tick("shop", str(products_csv))

        assert isinstance(result.error, NotExistingError)
        assert pipeline.status("shop").cursor == ParseCursor()

    def test_encoding_mismatch(self, pipeline, csv_importer, write_source):
        path = write_source("sjis.csv", "sku,name,price\nB-1,湯呑み,9.00\n", encoding="shift_jis")

        result = pipeline.tick("shop", str(path))

        assert result.status == ImportStatus.FAILED
        assert not result.error.recoverable
        assert stored_skus(pipeline) == []

        parser = pipeline.registry.instance(CSVParser, "shop")
        assert submit_form(parser, {"encoding": "shift_jis"}) == {}
        pipeline.reset("shop")

        assert pipeline.run("shop")[-1].status == ImportStatus.COMPLETE
        assert pipeline.entity_repository.get("product", "B-1").payload["name"] == "湯呑み"

    def test_parser_settings_changed_mid_import(self, pipeline, csv_importer, products_csv):
        pipeline.tick("shop", str(products_csv))

        parser = pipeline.registry.instance(CSVParser, "shop")
        assert submit_form(parser, {"delimiter": ";"}) == {}

        result = pipeline.tick("shop")

        assert isinstance(result.error, ProcessingError)
        assert not result.error.recoverable

    def test_fetched_copy_disappeared(self, pipeline, csv_importer, products_csv):
        pipeline.tick("shop", str(products_csv))
        content = products_csv.read_bytes()
        products_csv.unlink()

        result = pipeline.tick("shop")

        assert result.status == ImportStatus.FAILED
        assert not result.error.recoverable

        products_csv.write_bytes(content)
        pipeline.reset("shop")

        assert pipeline.run("shop")[-1].status == ImportStatus.COMPLETE


class TestStateManagement:

    def test_reset_starts_over(self, pipeline, csv_importer, products_csv):
        pipeline.tick("shop", str(products_csv))
        pipeline.tick("shop")

        state = pipeline.reset("shop")

        assert state.status == ImportStatus.IDLE
        assert state.cursor == ParseCursor()
        assert state.source == str(products_csv)

        restarted = pipeline.tick("shop")
        assert restarted.skipped == 2
        assert pipeline.status("shop").cursor.rows_consumed == 2

    def test_new_source_restarts_import(self, pipeline, csv_importer, products_csv, write_source, render_csv):
        pipeline.tick("shop", str(products_csv))
        other = write_source("other.csv", render_csv([["sku", "name", "price"], ["Z-1", "Tray", "2.00"]]))

        result = pipeline.tick("shop", str(other))

        assert result.status == ImportStatus.COMPLETE
        assert pipeline.entity_repository.get("product", "Z-1") is not None
        assert pipeline.status("shop").source == str(other)

    def test_statuses(self, pipeline, csv_importer, products_csv):
        pipeline.tick("shop", str(products_csv))
        pipeline.tick("news")

        assert [state.importer_id for state in pipeline.statuses()] == ["news", "shop"]


class TestSyndicationImport:
    """RSS import over HTTP with the download reused across ticks."""

    URL = "https://example.com/news/feed.xml"

    @pytest.fixture
    def news_importer(self, pipeline):
        assert submit_form(pipeline.importer("news"), {"fetcher": "http", "parser": "syndication"}) == {}
        processor = pipeline.registry.instance(EntityProcessor, "news")
        assert submit_form(processor, {"entity_type": "post"}) == {}
        return pipeline.importer("news")

    @pytest.fixture
    def mock_feed(self, sample_rss):
        with patch("requests.Session.get") as mock_get:
            response = MagicMock()
            response.__enter__.return_value = response
            response.__exit__.return_value = False
            response.iter_content.side_effect = lambda chunk_size: iter([sample_rss.encode("utf-8")])
            response.headers = {"Content-Type": "application/rss+xml"}
            mock_get.return_value = response
            yield mock_get

    def test_feed_import(self, pipeline, news_importer, mock_feed):
        results = pipeline.run("news", self.URL)

        assert [result.rows for result in results] == [2, 1]
        assert results[-1].status == ImportStatus.COMPLETE
        assert mock_feed.call_count == 1

        posts = pipeline.entity_repository.list_for_importer("news")
        assert [post.guid for post in posts] == ["post-1", "post-2", "post-3"]
        assert posts[0].entity_type == "post"
        assert "Ethiopia" in posts[0].payload["summary"]
        assert "alert" not in posts[0].payload["summary"]

    def test_download_removed_after_completion(self, pipeline, news_importer, mock_feed):
        pipeline.tick("news", self.URL)
        downloaded = pipeline.status("news").fetched_path

        assert downloaded is not None
        assert pipeline.status("news").total == 3

        pipeline.tick("news")

        assert pipeline.status("news").fetched_path is None
        assert not Path(downloaded).exists()

    def test_network_failure(self, pipeline, news_importer):
        with patch("requests.Session.get", side_effect=requests.ConnectionError("unreachable")):
            result = pipeline.tick("news", self.URL)

        assert result.error.error_code == ErrorCode.SOURCE_NETWORK_ERROR
        assert result.error.recoverable
        assert pipeline.status("news").fetched_path is None
