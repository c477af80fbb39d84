"""Database package for storemigration."""

from .copier import TableCopier, TableCopyResult
from .locator import resolve_locator_path
from .migration import (
    DatabaseMigration,
    MarkerPolicy,
    MigrationGuard,
    MigrationMarker,
    MigrationResult,
    MigrationStatus,
)
from .schema_upgrade import NoopSchemaUpgrader, ScriptSchemaUpgrader
from .tables import DEFAULT_TABLES, TableOrder

__all__ = [
    'DEFAULT_TABLES',
    'DatabaseMigration',
    'MarkerPolicy',
    'MigrationGuard',
    'MigrationMarker',
    'MigrationResult',
    'MigrationStatus',
    'NoopSchemaUpgrader',
    'ScriptSchemaUpgrader',
    'TableCopier',
    'TableCopyResult',
    'TableOrder',
    'resolve_locator_path',
]
