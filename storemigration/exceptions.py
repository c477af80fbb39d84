"""Exception hierarchy for storemigration."""

from __future__ import annotations

from typing import Any, List, Optional


class StoreMigrationError(Exception):
    """Base class for all storemigration errors."""

    pass


class ConfigError(StoreMigrationError):
    """Raised when configuration values are missing or invalid."""

    pass


class TableOrderError(StoreMigrationError):
    """Raised when a table order is malformed or breaks foreign key order."""

    pass


class SchemaUpgradeError(StoreMigrationError):
    """Raised when the legacy store cannot be brought to its latest schema."""

    def __init__(self, message: str, version: Optional[str] = None):
        super().__init__(message)
        self.version = version


class TableCopyError(StoreMigrationError):
    """Raised when copying a table fails.

    ``completed`` holds the results of the tables fully copied before the
    failing one when raised from a multi-table copy.
    """

    def __init__(
        self,
        table: str,
        rows_copied: int = 0,
        completed: Optional[List[Any]] = None,
    ):
        super().__init__(f"Failed to copy table {table} after {rows_copied} rows")
        self.table = table
        self.rows_copied = rows_copied
        self.completed = list(completed or [])
