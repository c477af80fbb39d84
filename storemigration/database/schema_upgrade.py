"""Versioned schema upgrades for the legacy store.

Before any table is read, the legacy store is brought to the latest version
known for the configured table list. Upgrade scripts are plain SQL files named
``V<version>__<description>.sql``; applied versions are recorded in a
``schema_history`` table inside the upgraded store itself.
"""

from __future__ import annotations

import hashlib
import re
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

from .connection_helper import ConnectionFactory, close_quietly
from ..exceptions import SchemaUpgradeError
from ..loggers import get_logger

LOGGER = get_logger("storemigration.database.schema_upgrade")

SCRIPT_PATTERN = re.compile(r"^V(?P<version>\d+(?:[._]\d+)*)__(?P<description>.+)\.sql$", re.IGNORECASE)
HISTORY_TABLE = "schema_history"


class SchemaUpgrader(Protocol):
    """Brings a store to its latest schema version."""

    def upgrade(self, connection_factory: ConnectionFactory) -> None:
        ...


class NoopSchemaUpgrader:
    """Upgrader for stores that are already at their latest version."""

    def upgrade(self, connection_factory: ConnectionFactory) -> None:
        LOGGER.info("Schema upgrade disabled, using legacy schema as-is")


@dataclass(frozen=True, slots=True)
class UpgradeScript:
    """A versioned SQL script found in one of the script locations."""

    version: tuple
    version_label: str
    description: str
    path: Path

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.path.read_bytes()).hexdigest()

    @property
    def sql(self) -> str:
        return self.path.read_text(encoding="utf-8")


def discover_scripts(locations: Iterable[str | Path]) -> List[UpgradeScript]:
    """Collect upgrade scripts from ``locations`` sorted by version.

    Raises:
        SchemaUpgradeError: If a location is missing or two scripts share a version.
    """
    scripts: Dict[tuple, UpgradeScript] = {}
    for location in locations:
        directory = Path(location)
        if not directory.is_dir():
            raise SchemaUpgradeError(f"Schema script location does not exist: {directory}")

        for path in sorted(directory.iterdir()):
            match = SCRIPT_PATTERN.match(path.name)
            if not match or not path.is_file():
                continue
            label = match.group("version").replace("_", ".")
            version = tuple(int(part) for part in label.split("."))
            if version in scripts:
                raise SchemaUpgradeError(
                    f"Found more than one schema script with version {label}: "
                    f"{scripts[version].path} and {path}",
                    version=label,
                )
            scripts[version] = UpgradeScript(
                version=version,
                version_label=label,
                description=match.group("description").replace("_", " "),
                path=path,
            )

    return [scripts[version] for version in sorted(scripts)]


class ScriptSchemaUpgrader:
    """Applies pending ``V<n>__*.sql`` scripts to a sqlite store in version order."""

    def __init__(self, locations: Iterable[str | Path]) -> None:
        self.locations = [Path(location) for location in locations]

    def upgrade(self, connection_factory: ConnectionFactory) -> None:
        scripts = discover_scripts(self.locations)
        conn = connection_factory()
        try:
            self._ensure_history_table(conn)
            applied = self._applied_checksums(conn)

            pending = []
            for script in scripts:
                recorded = applied.get(script.version_label)
                if recorded is None:
                    pending.append(script)
                elif recorded != script.checksum:
                    raise SchemaUpgradeError(
                        f"Checksum mismatch for applied schema version {script.version_label} "
                        f"({script.path.name})",
                        version=script.version_label,
                    )

            if not pending:
                LOGGER.info("Legacy schema is up to date (%d versions applied)", len(applied))
                return

            LOGGER.info("Applying %d pending legacy schema versions", len(pending))
            for script in pending:
                self._apply(conn, script)
        finally:
            close_quietly(conn, "schema upgrade connection")

    def current_version(self, connection_factory: ConnectionFactory) -> Optional[str]:
        """Return the highest applied version label, or ``None``."""
        conn = connection_factory()
        try:
            self._ensure_history_table(conn)
            labels = list(self._applied_checksums(conn))
        finally:
            close_quietly(conn, "schema version connection")
        if not labels:
            return None
        return max(labels, key=lambda label: tuple(int(part) for part in label.split(".")))

    def _ensure_history_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {HISTORY_TABLE} (
                version TEXT PRIMARY KEY,
                description TEXT NOT NULL,
                script TEXT NOT NULL,
                checksum TEXT NOT NULL,
                installed_on TEXT NOT NULL,
                success INTEGER NOT NULL
            )
            """
        )
        conn.commit()

    def _applied_checksums(self, conn: sqlite3.Connection) -> Dict[str, str]:
        rows = conn.execute(
            f"SELECT version, checksum FROM {HISTORY_TABLE} WHERE success = 1"
        ).fetchall()
        return {str(row[0]): str(row[1]) for row in rows}

    def _apply(self, conn: sqlite3.Connection, script: UpgradeScript) -> None:
        LOGGER.info("Migrating legacy schema to version %s - %s", script.version_label, script.description)
        # Scripts may end in a comment or without a semicolon
        body = script.sql.rstrip()
        try:
            # executescript commits any pending transaction first, so the
            # script and its history row are wrapped explicitly
            conn.executescript(
                "BEGIN;\n"
                + body
                + "\n;\n"
                + f"INSERT INTO {HISTORY_TABLE} (version, description, script, checksum, installed_on, success) "
                + "VALUES ({}, {}, {}, {}, {}, 1);\n".format(
                    _quote(script.version_label),
                    _quote(script.description),
                    _quote(script.path.name),
                    _quote(script.checksum),
                    _quote(datetime.now(UTC).isoformat()),
                )
                + "COMMIT;"
            )
        except sqlite3.Error as exc:
            try:
                conn.rollback()
            except sqlite3.Error as rollback_exc:
                LOGGER.warning("Rollback after failed schema version %s failed: %s",
                               script.version_label, rollback_exc)
            raise SchemaUpgradeError(
                f"Failed to apply schema version {script.version_label} ({script.path.name}): {exc}",
                version=script.version_label,
            ) from exc


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"
