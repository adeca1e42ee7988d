"""
Import Pipeline Orchestrator
============================

Runs imports as a sequence of ticks. Each tick fetches the source (or
reuses the copy fetched earlier in the same import), parses one batch from
the persisted cursor, hands the batch to the processor and stores the
advanced cursor.

State per importer:

    idle -> fetching -> parsing -> processing -> idle | complete | failed

A failed tick leaves the stored cursor where the last successful tick put
it, so the next tick retries the same batch.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ..config.settings import FeedPipeSettings, get_settings
from ..database.connection import DatabaseConnection
from ..database.models import ImportState, ImportStatus, ParseCursor
from ..plugins.importer import Importer
from ..plugins.registry import ConfigurableRegistry, StageChain
from ..storage.config_repository import ConfigRepository
from ..storage.entity_repository import EntityRepository
from ..storage.state_repository import ImportStateRepository
from ..utils.exceptions import (
    DatabaseError,
    ErrorCode,
    FeedPipeError,
    InvalidArgumentError,
    SourceUnavailableError,
    handle_exception,
    is_retryable_error,
)
from ..utils.logging import PerformanceLogger, get_import_logger, get_logger_for_component


@dataclass
class TickResult:
    """Outcome of one tick."""

    importer_id: str
    status: ImportStatus
    rows: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    offset: int = 0
    progress: float = 0.0
    duration_seconds: Optional[float] = None
    error: Optional[FeedPipeError] = None

    @property
    def success(self) -> bool:
        return self.status != ImportStatus.FAILED

    @property
    def finished(self) -> bool:
        return self.status in (ImportStatus.COMPLETE, ImportStatus.FAILED)


class ImportPipeline:
    """Tick-based import orchestrator."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        settings: Optional[FeedPipeSettings] = None,
        registry: Optional[ConfigurableRegistry] = None,
    ):
        """Initialize import pipeline.

        Args:
            db_connection: Database connection manager
            settings: Application settings (default: global settings)
            registry: Configurable registry (default: a new one backed by
                the configuration table)
        """
        self.db = db_connection
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("pipeline")

        self.config_repository = ConfigRepository(db_connection)
        self.state_repository = ImportStateRepository(db_connection)
        self.entity_repository = EntityRepository(db_connection)
        self.registry = registry or ConfigurableRegistry(self.config_repository)

    def importer(self, importer_id: str) -> Importer:
        return self.registry.importer(importer_id)

    # Ticks

    def tick(self, importer_id: str, source: Optional[str] = None) -> TickResult:
        """Run one fetch, parse and process step of an import.

        Args:
            importer_id: Importer to advance
            source: Path or URL; starts a new import when it differs from
                the source of the running one

        Returns:
            TickResult; stage failures are reported in ``error`` with the
            state set to failed

        Raises:
            InvalidArgumentError: If the importer id is empty
        """
        importer = self.importer(importer_id)
        state = self.state_repository.get(importer_id)
        logger = get_import_logger(importer_id, source or state.source)
        committed_cursor = state.cursor

        result = TickResult(importer_id=importer_id, status=state.status)

        try:
            with PerformanceLogger(logger, f"import tick for {importer_id}") as perf:
                chain = self.registry.stage_chain(importer)

                state.status = ImportStatus.FETCHING
                path = self._fetch(chain, state, source)
                committed_cursor = state.cursor

                state.status = ImportStatus.PARSING
                cursor = state.cursor.model_copy(update={
                    "line_limit": importer.batch_size(self.settings.processing.process_limit)
                })
                parsed = chain.parser.parse(path, cursor, self.settings)
                state.total = parsed.total
                result.rows = len(parsed.items)

                if parsed.items:
                    state.status = ImportStatus.PROCESSING
                    processed = chain.processor.process(parsed.items, self.entity_repository)
                    del parsed.items[:]

                    state.created += processed.created
                    state.updated += processed.updated
                    state.skipped += processed.skipped
                    state.failed += processed.failed
                    result.created = processed.created
                    result.updated = processed.updated
                    result.skipped = processed.skipped
                    result.failed = processed.failed

                state.cursor = parsed.cursor
                state.last_error = None
                result.offset = parsed.cursor.offset

                if parsed.exhausted:
                    self._complete(chain, state)
                    logger.info(
                        f"Import {importer_id} complete: {state.created} created, "
                        f"{state.updated} updated, {state.skipped} skipped, {state.failed} failed"
                    )
                else:
                    state.status = ImportStatus.IDLE

                self.state_repository.save(state)

            result.duration_seconds = perf.duration

        except Exception as e:
            error = e if isinstance(e, FeedPipeError) else handle_exception(
                e, logger, f"import tick for {importer_id}", {"importer_id": importer_id}
            )
            retry_hint = "will retry" if is_retryable_error(error) else "reset required"
            logger.error(f"Import tick failed for {importer_id} ({retry_hint}): {error}")

            state.status = ImportStatus.FAILED
            state.cursor = committed_cursor
            state.last_error = str(error)
            try:
                self.state_repository.save(state)
            except DatabaseError as save_error:
                logger.error(f"Could not record failed state for {importer_id}: {save_error}")

            result.error = error

        result.status = state.status
        result.progress = state.progress
        return result

    def _fetch(self, chain: StageChain, state: ImportState, source: Optional[str]) -> Path:
        """Return the local source of the running import, fetching it if needed."""
        if source and state.fetched_path and source != state.source:
            self.logger.info(f"New source for {state.importer_id}, restarting import")
            chain.fetcher.release(state.fetched_path)
            state.fetched_path = None
            state.source = source
            state.cursor = ParseCursor()

        if state.fetched_path:
            path = Path(state.fetched_path)
            if not path.is_file():
                raise SourceUnavailableError(
                    f"Fetched copy {path} disappeared; reset the import",
                    source=state.source,
                    error_code=ErrorCode.SOURCE_NOT_FOUND,
                    recoverable=False,
                )
            return path

        source = source or state.source
        if not source:
            raise InvalidArgumentError(
                f"No source given for importer {state.importer_id}", argument="source"
            )

        fetched = chain.fetcher.fetch(source, self.settings)

        state.source = source
        state.fetched_path = str(fetched.path)
        state.total = fetched.size
        state.cursor = ParseCursor()
        state.reset_counters()
        state.started_at = datetime.now(timezone.utc)
        return fetched.path

    def _complete(self, chain: StageChain, state: ImportState) -> None:
        chain.fetcher.release(state.fetched_path)
        state.fetched_path = None
        state.cursor = state.cursor.reset()
        state.status = ImportStatus.COMPLETE

    def run(
        self, importer_id: str, source: Optional[str] = None, max_ticks: Optional[int] = None
    ) -> List[TickResult]:
        """Tick until the import completes or fails.

        Args:
            importer_id: Importer to run
            source: Path or URL for the first tick
            max_ticks: Upper bound on ticks (default from settings)

        Returns:
            Results of every tick, in order
        """
        limit = max_ticks or self.settings.processing.max_ticks_per_run
        results: List[TickResult] = []

        self.logger.info(f"Running import {importer_id}")
        for number in range(limit):
            result = self.tick(importer_id, source if number == 0 else None)
            results.append(result)
            if result.finished:
                break
        else:
            self.logger.warning(f"Import {importer_id} stopped after {limit} ticks")

        return results

    # State

    def reset(self, importer_id: str) -> ImportState:
        """Restart an import from the beginning of its source."""
        state = self.state_repository.get(importer_id)

        if state.fetched_path:
            try:
                chain = self.registry.stage_chain(self.importer(importer_id))
                chain.fetcher.release(state.fetched_path)
            except FeedPipeError as e:
                self.logger.warning(f"Could not release fetched source of {importer_id}: {e}")

        fresh = ImportState(importer_id=importer_id, source=state.source)
        self.state_repository.save(fresh)
        self.logger.info(f"Reset import {importer_id}")
        return fresh

    def status(self, importer_id: str) -> ImportState:
        return self.state_repository.get(importer_id)

    def statuses(self) -> List[ImportState]:
        return self.state_repository.list_states()

    def progress(self, importer_id: str) -> float:
        """Fraction of the current import already processed."""
        return self.status(importer_id).progress
