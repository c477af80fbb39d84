"""
Database connection helpers.
Builds consistently configured sqlite connections and scoped handles that are
always released, even when closing one of them fails.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from ..loggers import get_logger

LOGGER = get_logger("storemigration.database.connection")

ConnectionFactory = Callable[[], Any]


def connect_sqlite(
    db_path: str | Path,
    wal: bool = False,
    timeout: float = 30.0,
    read_only: bool = False,
) -> sqlite3.Connection:
    """Open a sqlite connection with the settings used by the migration.

    Args:
        db_path: Path to database file
        wal: Switch the database to WAL journaling (persists in the file)
        timeout: Seconds to wait on a locked database
        read_only: Open without write access; a missing file is an error
            instead of being created
    """
    if read_only:
        conn = sqlite3.connect(Path(db_path).resolve().as_uri() + "?mode=ro", timeout=timeout, uri=True)
        conn.execute("PRAGMA busy_timeout=10000")
        return conn

    conn = sqlite3.connect(str(db_path), timeout=timeout)
    if wal:
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=10000")  # 10 seconds
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA temp_store=MEMORY")
    return conn


def sqlite_connection_factory(
    db_path: str | Path,
    wal: bool = False,
    read_only: bool = False,
) -> ConnectionFactory:
    """Return a zero-argument factory opening new connections to ``db_path``."""

    def factory() -> sqlite3.Connection:
        return connect_sqlite(db_path, wal=wal, read_only=read_only)

    factory.db_path = str(db_path)  # type: ignore[attr-defined]
    factory.read_only = read_only  # type: ignore[attr-defined]
    return factory


def close_quietly(resource: Any, label: str) -> bool:
    """Close ``resource``, logging instead of raising on failure.

    Returns:
        True if the resource was closed (or was ``None``), False otherwise
    """
    if resource is None:
        return True
    try:
        resource.close()
        return True
    except Exception as exc:  # noqa: BLE001 - release must continue with the next resource
        LOGGER.warning("Failed to close %s: %s", label, exc)
        return False


@contextmanager
def scoped(resource: Any, label: str) -> Iterator[Any]:
    """Yield ``resource`` and close it quietly on exit."""
    try:
        yield resource
    finally:
        close_quietly(resource, label)


def count_rows(connection_factory: ConnectionFactory, table: str) -> int:
    """Return the number of rows in ``table``."""
    with scoped(connection_factory(), f"connection counting {table}") as conn:
        cursor = conn.cursor()
        try:
            cursor.execute(f'select count(*) from "{table}"')
            return int(cursor.fetchone()[0])
        finally:
            close_quietly(cursor, f"cursor counting {table}")
