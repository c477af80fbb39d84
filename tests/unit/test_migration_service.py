"""Unit tests for MigrationService."""

import sqlite3
from unittest.mock import Mock

import pytest

from storemigration.config import Config
from storemigration.database.migration import MigrationMarker, MigrationResult, MigrationStatus
from storemigration.database.schema_upgrade import NoopSchemaUpgrader, ScriptSchemaUpgrader
from storemigration.services.consumers import CompositeConsumerCoordinator, NullConsumerCoordinator
from storemigration.services.migration_service import MigrationService


def journal_mode(path):
    conn = sqlite3.connect(str(path))
    try:
        return conn.execute("PRAGMA journal_mode").fetchone()[0].lower()
    finally:
        conn.close()


@pytest.fixture
def config(tmp_path, monkeypatch, legacy_store, destination_store):
    """Config pointing at the test stores, isolated from the environment."""
    for name in [
        "STOREMIGRATION_SOURCE_URL",
        "STOREMIGRATION_DESTINATION_PATH",
        "STOREMIGRATION_BATCH_SIZE",
        "STOREMIGRATION_MARKER_POLICY",
        "STOREMIGRATION_ENABLED",
        "STOREMIGRATION_LOG_LEVEL",
    ]:
        monkeypatch.delenv(name, raising=False)
    config = Config(str(tmp_path / "absent.json"))
    config.migration.source_url = legacy_store.locator
    config.migration.destination_path = str(destination_store.path)
    return config


class TestBuildMigration:
    """Tests for wiring the orchestrator from configuration."""

    def test_defaults(self, config):
        service = MigrationService(config)
        migration = service.build_migration()

        assert isinstance(service.consumers, NullConsumerCoordinator)
        assert isinstance(migration.schema_upgrader, NoopSchemaUpgrader)
        assert migration.copier.batch_size == 500
        assert migration.source_factory.db_path == service.source_file
        assert migration.count_factory.read_only is True
        assert migration.count_factory.db_path == config.migration.destination_path

    def test_injected_destination_is_used_for_counting(self, config):
        destination = Mock()
        migration = MigrationService(config, destination_factory=destination).build_migration()
        assert migration.count_factory is destination

    def test_schema_locations_enable_script_upgrader(self, config, tmp_path):
        config.migration.schema_locations = [str(tmp_path)]
        migration = MigrationService(config).build_migration()
        assert isinstance(migration.schema_upgrader, ScriptSchemaUpgrader)

    def test_destination_required(self, config):
        config.migration.destination_path = None
        with pytest.raises(ValueError):
            MigrationService(config).build_migration()


class TestRunAtStartup:
    """Tests for MigrationService.run_at_startup."""

    def test_migrates_populated_store(self, config, populated_legacy_store, destination_store):
        legacy_store, _ = populated_legacy_store
        consumers = NullConsumerCoordinator()
        service = MigrationService(config, consumers=consumers)

        result = service.run_at_startup()

        assert result.status == MigrationStatus.COMPLETED
        assert destination_store.rows("BOOK") == legacy_store.rows("BOOK")
        assert not consumers.paused
        assert service.last_result is result

    def test_resume_failure_does_not_hide_result(self, config, populated_legacy_store, legacy_store):
        consumer = Mock()
        consumer.name = "scheduler"
        consumer.start.side_effect = RuntimeError("scheduler did not restart")
        service = MigrationService(config, consumers=CompositeConsumerCoordinator([consumer]))

        result = service.run_at_startup()

        assert result.status == MigrationStatus.COMPLETED
        assert result.rows_copied > 0
        assert result.resume_error == "scheduler did not restart"
        assert service.get_status() == "completed"
        assert MigrationMarker.for_source_file(legacy_store.path).read()["status"] == "completed"

    def test_skip_leaves_destination_untouched(self, config, populated_legacy_store, destination_store):
        conn = destination_store.connect()
        conn.execute("INSERT INTO USER VALUES ('admin', 'admin@example.org', 'x', 1)")
        conn.commit()
        conn.close()
        before = destination_store.path.read_bytes()

        result = MigrationService(config).run_at_startup()

        assert result.status == MigrationStatus.SKIPPED_DESTINATION_NOT_EMPTY
        assert journal_mode(destination_store.path) == "delete"
        assert destination_store.path.read_bytes() == before

    def test_missing_destination_is_not_created(self, config, populated_legacy_store, tmp_path):
        missing = tmp_path / "absent.db"
        config.migration.destination_path = str(missing)

        result = MigrationService(config).run_at_startup()

        assert result.status == MigrationStatus.FAILED
        assert not missing.exists()

    def test_disabled(self, config):
        config.migration.enabled = False
        factory = Mock()

        result = MigrationService(config, migration_factory=factory).run_at_startup()

        assert result.status == MigrationStatus.NOT_ATTEMPTED
        factory.assert_not_called()

    def test_invalid_config_is_contained(self, config):
        config.migration.batch_size = -1

        result = MigrationService(config).run_at_startup()

        assert result.status == MigrationStatus.FAILED
        assert "batch_size" in result.error

    def test_unexpected_error_is_contained(self, config):
        def factory(service):
            raise RuntimeError("cannot build")

        result = MigrationService(config, migration_factory=factory).run_at_startup()

        assert result.status == MigrationStatus.FAILED
        assert result.error == "cannot build"


class TestMigrationInfo:
    """Tests for the status snapshot."""

    def test_not_attempted(self, config, legacy_store):
        info = MigrationService(config).get_migration_info()

        assert info["status"] == "not_attempted"
        assert info["source_file"] == str(legacy_store.path)
        assert info["marker_exists"] is False
        assert info["marker"] is None
        assert info["last_result"] is None

    def test_reads_marker_from_previous_run(self, config, legacy_store):
        MigrationMarker.for_source_file(legacy_store.path).create({"status": "partial"})

        info = MigrationService(config).get_migration_info()

        assert info["status"] == "partial"
        assert info["marker_exists"] is True

    def test_empty_marker_reports_attempted(self, config, legacy_store):
        MigrationMarker.for_source_file(legacy_store.path).path.touch()
        assert MigrationService(config).get_status() == "attempted"

    def test_last_result_wins(self, config):
        migration = Mock()
        migration.run.return_value = MigrationResult(status=MigrationStatus.SKIPPED_NO_SOURCE)
        service = MigrationService(config, migration_factory=lambda service: migration)
        service.run_at_startup()

        info = service.get_migration_info()

        assert info["status"] == "skipped_no_source"
        assert info["last_result"]["status"] == "skipped_no_source"

    def test_non_file_locator(self, config):
        config.migration.source_url = "jdbc:h2:mem:test"
        info = MigrationService(config).get_migration_info()

        assert info["source_file"] is None
        assert info["marker_path"] is None
        assert info["status"] == "not_attempted"
