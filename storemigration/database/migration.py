"""One-time migration of the legacy store into the new store.

This module holds the run-once guard, the persistent migration marker and the
orchestrator that sequences schema upgrade, table copy, marker creation and
consumer pause/resume. Every outcome is contained so that the host process
keeps starting up whatever happens here.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .connection_helper import ConnectionFactory, count_rows
from .copier import TableCopier, TableCopyResult
from .locator import resolve_locator_path, storage_file_for
from .schema_upgrade import SchemaUpgrader
from .tables import TableOrder
from ..exceptions import TableCopyError
from ..loggers import get_logger
from ..services.consumers import ConsumerCoordinator

LOGGER = get_logger("storemigration.database.migration")

DEFAULT_STORAGE_SUFFIX = ".mv.db"
MARKER_SUFFIX = ".migrated"
DEFAULT_IDENTITY_TABLE = "USER"


class MigrationStatus(Enum):
    """Outcome of a migration attempt."""

    NOT_ATTEMPTED = "not_attempted"
    SKIPPED_NOT_FILE = "skipped_not_file"
    SKIPPED_ALREADY_MIGRATED = "skipped_already_migrated"
    SKIPPED_NO_SOURCE = "skipped_no_source"
    SKIPPED_DESTINATION_NOT_EMPTY = "skipped_destination_not_empty"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def skipped(self) -> bool:
        return self.value.startswith("skipped_")


class MarkerPolicy(Enum):
    """When the migration marker is written after an attempt."""

    ALWAYS = "always"
    ON_SUCCESS = "on_success"


@dataclass(slots=True)
class GuardDecision:
    """Result of evaluating the run-once guard."""

    should_run: bool
    status: MigrationStatus
    reason: str
    source_file: Optional[Path] = None
    marker_path: Optional[Path] = None


@dataclass
class MigrationResult:
    """What happened during one call of :meth:`DatabaseMigration.run`."""

    status: MigrationStatus
    reason: str = ""
    source_file: Optional[Path] = None
    marker_path: Optional[Path] = None
    tables: List[TableCopyResult] = field(default_factory=list)
    failed_table: Optional[str] = None
    error: Optional[str] = None
    duration_seconds: Optional[float] = None
    marker_written: bool = False
    completed_at: Optional[str] = None
    resume_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == MigrationStatus.COMPLETED

    @property
    def rows_copied(self) -> int:
        return sum(table.rows_copied for table in self.tables)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": self.reason,
            "source_file": str(self.source_file) if self.source_file else None,
            "marker_path": str(self.marker_path) if self.marker_path else None,
            "tables_migrated": [table.to_dict() for table in self.tables],
            "rows_copied": self.rows_copied,
            "failed_table": self.failed_table,
            "error": self.error,
            "duration_seconds": (
                round(self.duration_seconds, 3) if self.duration_seconds is not None else None
            ),
            "marker_written": self.marker_written,
            "completed_at": self.completed_at,
            "resume_error": self.resume_error,
        }


class MigrationMarker:
    """Sentinel file recording that a migration attempt took place.

    Existence is the only thing the guard looks at. The body carries a JSON
    summary of the attempt so that partial runs can be told apart from
    complete ones.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @classmethod
    def for_source_file(cls, source_file: str | Path) -> "MigrationMarker":
        source_file = Path(source_file)
        return cls(source_file.with_name(source_file.name + MARKER_SUFFIX))

    def exists(self) -> bool:
        return self.path.exists()

    def create(self, summary: Dict[str, Any]) -> None:
        """Create the marker file.

        Raises:
            FileExistsError: If another attempt already created it.
            OSError: If the file cannot be written.
        """
        with self.path.open("x", encoding="utf-8") as handle:
            json.dump(summary, handle, indent=2)

    def read(self) -> Optional[Dict[str, Any]]:
        """Return the recorded summary, ``{}`` for an empty or unreadable marker, or ``None``."""
        if not self.path.exists():
            return None
        try:
            content = self.path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            LOGGER.warning("Could not read migration marker %s: %s", self.path, exc)
            return {}
        if not content:
            return {}
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            LOGGER.warning("Migration marker %s does not contain a summary", self.path)
            return {}
        return data if isinstance(data, dict) else {}


class MigrationGuard:
    """Decides whether a migration attempt should run.

    The checks run in order and stop at the first failing one: file-backed
    locator, no marker yet, source file present, destination empty. The
    destination is only counted when all earlier checks pass.
    """

    def __init__(self, storage_suffix: str = DEFAULT_STORAGE_SUFFIX) -> None:
        self.storage_suffix = storage_suffix

    def should_run(
        self,
        source_locator: Optional[str],
        destination_row_count: Callable[[], int],
    ) -> GuardDecision:
        LOGGER.info("Source locator: %s", source_locator)
        path = resolve_locator_path(source_locator)
        if path is None:
            reason = f"The source locator ({source_locator}) does not refer to a file store, aborting migration"
            LOGGER.warning(reason)
            return GuardDecision(False, MigrationStatus.SKIPPED_NOT_FILE, reason)

        source_file = Path(path + self.storage_suffix)
        marker = MigrationMarker.for_source_file(source_file)
        LOGGER.info("Source store file: %s", source_file)

        if marker.exists():
            reason = "The legacy store has already been migrated, aborting migration"
            LOGGER.info(reason)
            return GuardDecision(
                False, MigrationStatus.SKIPPED_ALREADY_MIGRATED, reason, source_file, marker.path
            )

        if not source_file.exists():
            reason = f"The legacy store file does not exist: {source_file}, aborting migration"
            LOGGER.warning(reason)
            return GuardDecision(False, MigrationStatus.SKIPPED_NO_SOURCE, reason, source_file, marker.path)

        if destination_row_count() != 0:
            reason = "The destination store already contains data, aborting migration"
            LOGGER.warning(reason)
            return GuardDecision(
                False, MigrationStatus.SKIPPED_DESTINATION_NOT_EMPTY, reason, source_file, marker.path
            )

        return GuardDecision(True, MigrationStatus.NOT_ATTEMPTED, "Migration required", source_file, marker.path)


class DatabaseMigration:
    """Runs the legacy store migration once, at startup."""

    def __init__(
        self,
        source_locator: Optional[str],
        source_factory: ConnectionFactory,
        destination_factory: ConnectionFactory,
        schema_upgrader: SchemaUpgrader,
        consumers: ConsumerCoordinator,
        table_order: Optional[TableOrder] = None,
        batch_size: int = 500,
        storage_suffix: str = DEFAULT_STORAGE_SUFFIX,
        identity_table: str = DEFAULT_IDENTITY_TABLE,
        marker_policy: MarkerPolicy = MarkerPolicy.ALWAYS,
        copier: Optional[TableCopier] = None,
        count_factory: Optional[ConnectionFactory] = None,
    ) -> None:
        self.source_locator = source_locator
        self.source_factory = source_factory
        self.destination_factory = destination_factory
        self.schema_upgrader = schema_upgrader
        self.consumers = consumers
        self.table_order = table_order or TableOrder()
        self.identity_table = identity_table
        self.marker_policy = marker_policy
        self.guard = MigrationGuard(storage_suffix=storage_suffix)
        self.copier = copier or TableCopier(source_factory, destination_factory, batch_size=batch_size)
        # Opens the destination for the emptiness check only
        self.count_factory = count_factory or destination_factory

    def destination_row_count(self) -> int:
        return count_rows(self.count_factory, self.identity_table)

    def run(self) -> MigrationResult:
        """Evaluate the guard and, if it passes, perform a single migration attempt."""
        LOGGER.info("Initiating database migration from the legacy store")
        decision = self.guard.should_run(self.source_locator, self.destination_row_count)
        if not decision.should_run:
            return MigrationResult(
                status=decision.status,
                reason=decision.reason,
                source_file=decision.source_file,
                marker_path=decision.marker_path,
            )

        marker = MigrationMarker(decision.marker_path)
        result = MigrationResult(
            status=MigrationStatus.FAILED,
            source_file=decision.source_file,
            marker_path=marker.path,
        )

        try:
            try:
                self.consumers.pause()
            except Exception as exc:
                LOGGER.error("Could not pause consumers, migration not attempted", exc_info=exc)
                result.reason = "Consumers could not be paused"
                result.error = str(exc)
                return result

            self.perform_migration(result)
            self._write_marker(marker, result)
        finally:
            self._resume_consumers(result)

        LOGGER.info("Migration finished with status %s", result.status.value)
        return result

    def _resume_consumers(self, result: MigrationResult) -> None:
        try:
            self.consumers.resume()
        except Exception as exc:
            LOGGER.error("Could not resume consumers after the migration", exc_info=exc)
            result.resume_error = str(exc)

    def perform_migration(self, result: MigrationResult) -> MigrationResult:
        """Upgrade the legacy schema and copy every table, recording the outcome in ``result``.

        Failures are logged and reported through ``result.status``; nothing is raised.
        """
        started = time.perf_counter()
        try:
            LOGGER.info("Migrating the legacy store to the latest schema version")
            self.schema_upgrader.upgrade(self.source_factory)
            result.tables = self.copier.copy_all(self.table_order)
            result.status = MigrationStatus.COMPLETED
            result.reason = "All tables migrated"
        except TableCopyError as exc:
            result.tables = exc.completed
            result.failed_table = exc.table
            result.error = _describe(exc)
            result.status = MigrationStatus.PARTIAL if exc.completed or exc.rows_copied else MigrationStatus.FAILED
            result.reason = f"Copy stopped at table {exc.table}"
            LOGGER.error("Error while migrating the legacy store", exc_info=exc)
        except Exception as exc:
            result.error = _describe(exc)
            result.status = MigrationStatus.FAILED
            result.reason = "Migration failed before any table was copied"
            LOGGER.error("Error while migrating the legacy store", exc_info=exc)
        finally:
            result.duration_seconds = time.perf_counter() - started
            result.completed_at = datetime.now(UTC).isoformat()

        LOGGER.info(
            "Migration performed in %.2fs: %d tables, %d rows",
            result.duration_seconds,
            len(result.tables),
            result.rows_copied,
        )
        return result

    def _write_marker(self, marker: MigrationMarker, result: MigrationResult) -> None:
        if self.marker_policy == MarkerPolicy.ON_SUCCESS and not result.succeeded:
            LOGGER.warning(
                "Migration ended with status %s, leaving no marker so the next start retries",
                result.status.value,
            )
            return

        LOGGER.info("Creating migration marker: %s", marker.path)
        try:
            marker.create({**result.to_dict(), "marker_written": True})
            result.marker_written = True
        except OSError as exc:
            LOGGER.error("Could not create migration marker %s", marker.path, exc_info=exc)


def _describe(exc: BaseException) -> str:
    cause = exc.__cause__
    if cause is not None:
        return f"{exc}: {cause}"
    return str(exc)


def marker_path_for(source_locator: Optional[str], storage_suffix: str = DEFAULT_STORAGE_SUFFIX) -> Optional[Path]:
    """Return the marker path for ``source_locator``, or ``None`` for non-file locators."""
    source_file = storage_file_for(source_locator, storage_suffix)
    if source_file is None:
        return None
    return MigrationMarker.for_source_file(source_file).path


__all__ = [
    "DatabaseMigration",
    "GuardDecision",
    "MarkerPolicy",
    "MigrationGuard",
    "MigrationMarker",
    "MigrationResult",
    "MigrationStatus",
    "marker_path_for",
]
