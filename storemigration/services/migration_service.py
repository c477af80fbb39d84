"""High-level migration service wiring config, connections and the orchestrator."""

from __future__ import annotations

from threading import Lock
from typing import Any, Callable, Dict, Optional

from ..config import Config
from ..database.connection_helper import ConnectionFactory, sqlite_connection_factory
from ..database.locator import storage_file_for
from ..database.migration import (
    DatabaseMigration,
    MigrationMarker,
    MigrationResult,
    MigrationStatus,
)
from ..database.schema_upgrade import NoopSchemaUpgrader, ScriptSchemaUpgrader, SchemaUpgrader
from ..loggers import get_logger
from .consumers import ConsumerCoordinator, NullConsumerCoordinator

LOGGER = get_logger("storemigration.services.migration")

MigrationFactory = Callable[["MigrationService"], DatabaseMigration]


class MigrationService:
    """Facade used by the host at startup and by the status API."""

    def __init__(
        self,
        config: Config,
        consumers: Optional[ConsumerCoordinator] = None,
        source_factory: Optional[ConnectionFactory] = None,
        destination_factory: Optional[ConnectionFactory] = None,
        schema_upgrader: Optional[SchemaUpgrader] = None,
        migration_factory: Optional[MigrationFactory] = None,
    ) -> None:
        self.config = config
        self.consumers = consumers or NullConsumerCoordinator()
        self._source_factory = source_factory
        self._destination_factory = destination_factory
        self._schema_upgrader = schema_upgrader
        self._migration_factory: MigrationFactory = migration_factory or (
            lambda service: service.build_migration()
        )
        self._lock = Lock()
        self._last_result: Optional[MigrationResult] = None

    @property
    def last_result(self) -> Optional[MigrationResult]:
        return self._last_result

    @property
    def source_file(self) -> Optional[str]:
        return storage_file_for(self.config.migration.source_url, self.config.migration.storage_suffix)

    def build_migration(self) -> DatabaseMigration:
        """Create the orchestrator from configuration.

        Raises:
            ConfigError: If the configuration is invalid.
            ValueError: If no destination connection can be built.
        """
        settings = self.config.migration
        settings.validate()
        if self._destination_factory is not None:
            destination_factory = self._destination_factory
            count_factory = None
        else:
            destination_factory = self._default_destination_factory()
            count_factory = sqlite_connection_factory(settings.destination_path, read_only=True)
        return DatabaseMigration(
            source_locator=settings.source_url,
            source_factory=self._source_factory or self._default_source_factory(),
            destination_factory=destination_factory,
            count_factory=count_factory,
            schema_upgrader=self._schema_upgrader or self._default_schema_upgrader(),
            consumers=self.consumers,
            table_order=settings.table_order,
            batch_size=settings.batch_size,
            storage_suffix=settings.storage_suffix,
            identity_table=settings.identity_table,
            marker_policy=settings.policy,
        )

    def _default_source_factory(self) -> ConnectionFactory:
        source_file = self.source_file
        if source_file is None:
            # The guard rejects non-file locators before any connection is opened
            def unavailable():
                raise ValueError(f"No file store behind {self.config.migration.source_url!r}")

            return unavailable
        return sqlite_connection_factory(source_file)

    def _default_destination_factory(self) -> ConnectionFactory:
        destination = self.config.migration.destination_path
        if not destination:
            raise ValueError("migration.destination_path is required when no destination factory is given")
        return sqlite_connection_factory(destination)

    def _default_schema_upgrader(self) -> SchemaUpgrader:
        locations = self.config.migration.schema_locations
        if not locations:
            return NoopSchemaUpgrader()
        return ScriptSchemaUpgrader(locations)

    def run_at_startup(self) -> MigrationResult:
        """Run the migration once; never raises.

        Returns:
            The migration result. Errors outside the orchestrator's own handling,
            such as invalid configuration, are reported as ``FAILED``.
        """
        with self._lock:
            if not self.config.migration.enabled:
                LOGGER.info("Legacy store migration disabled by configuration")
                result = MigrationResult(status=MigrationStatus.NOT_ATTEMPTED, reason="Migration disabled")
            else:
                try:
                    result = self._migration_factory(self).run()
                except Exception as exc:
                    LOGGER.error("Legacy store migration could not run", exc_info=exc)
                    result = MigrationResult(
                        status=MigrationStatus.FAILED,
                        reason="Migration could not run",
                        error=str(exc),
                    )
            self._last_result = result
            LOGGER.info(
                "Migration run completed",
                extra={"status": result.status.value, "rows_copied": result.rows_copied},
            )
            return result

    def get_migration_info(self) -> Dict[str, Any]:
        """Return a snapshot describing the migration state for the status API."""
        with self._lock:
            settings = self.config.migration
            source_file = self.source_file
            marker = MigrationMarker.for_source_file(source_file) if source_file else None
            marker_summary = marker.read() if marker else None
            return {
                "status": self._status(marker_summary),
                "enabled": settings.enabled,
                "source_url": settings.source_url,
                "source_file": source_file,
                "marker_path": str(marker.path) if marker else None,
                "marker_exists": marker_summary is not None,
                "marker": marker_summary,
                "marker_policy": settings.marker_policy,
                "last_result": self._last_result.to_dict() if self._last_result else None,
            }

    def get_status(self) -> str:
        return self.get_migration_info()["status"]

    def _status(self, marker_summary: Optional[Dict[str, Any]]) -> str:
        if self._last_result is not None:
            return self._last_result.status.value
        if marker_summary is not None:
            # Markers without a summary still record an attempt of unknown outcome
            return marker_summary.get("status") or "attempted"
        return MigrationStatus.NOT_ATTEMPTED.value
