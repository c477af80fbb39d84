"""Table ordering for the legacy store copy.

Tables are listed in creation order so that every table comes after the
tables it references through a foreign key. The list is maintained by hand
alongside the schema scripts.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from ..exceptions import TableOrderError
from ..loggers import get_logger

LOGGER = get_logger("storemigration.database.tables")

DEFAULT_TABLES: Tuple[str, ...] = (
    "LIBRARY",
    "USER",
    "USER_LIBRARY_SHARING",
    "SERIES",
    "SERIES_METADATA",
    "BOOK",
    "MEDIA",
    "MEDIA_PAGE",
    "MEDIA_FILE",
    "BOOK_METADATA",
    "BOOK_METADATA_AUTHOR",
    "READ_PROGRESS",
    "COLLECTION",
    "COLLECTION_SERIES",
)


@dataclass(frozen=True, slots=True)
class TableDescriptor:
    """A table name and its position in the copy order."""

    name: str
    position: int


class TableOrder:
    """Immutable, validated sequence of tables in dependency-safe order."""

    def __init__(self, tables: Iterable[str] = DEFAULT_TABLES) -> None:
        names = tuple(str(table).strip() for table in tables)
        if not names:
            raise TableOrderError("Table order must contain at least one table")
        if any(not name for name in names):
            raise TableOrderError("Table order contains a blank table name")

        seen: Set[str] = set()
        duplicates = []
        for name in names:
            key = name.upper()
            if key in seen:
                duplicates.append(name)
            seen.add(key)
        if duplicates:
            raise TableOrderError(f"Duplicate tables in order: {', '.join(duplicates)}")

        self._tables = names

    def __iter__(self) -> Iterator[TableDescriptor]:
        for position, name in enumerate(self._tables):
            yield TableDescriptor(name=name, position=position)

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, table: object) -> bool:
        return isinstance(table, str) and table.upper() in {name.upper() for name in self._tables}

    def __repr__(self) -> str:
        return f"TableOrder({list(self._tables)!r})"

    @property
    def names(self) -> Tuple[str, ...]:
        return self._tables

    def position(self, table: str) -> Optional[int]:
        for index, name in enumerate(self._tables):
            if name.upper() == table.upper():
                return index
        return None

    def validate_dependencies(self, foreign_keys: Mapping[str, Iterable[str]]) -> None:
        """Check that each table appears after every table it references.

        Args:
            foreign_keys: Mapping of table name to the names of the tables it
                references. Self references are allowed. References to tables
                outside the order are ignored.

        Raises:
            TableOrderError: If a table is listed before one of its parents.
        """
        violations: List[str] = []
        for table, parents in foreign_keys.items():
            position = self.position(table)
            if position is None:
                continue
            for parent in parents:
                if parent.upper() == table.upper():
                    continue
                parent_position = self.position(parent)
                if parent_position is not None and parent_position > position:
                    violations.append(f"{table} references {parent}")

        if violations:
            raise TableOrderError(
                "Table order breaks foreign key dependencies: " + "; ".join(violations)
            )


def sqlite_foreign_keys(connection: sqlite3.Connection, tables: Iterable[str]) -> Dict[str, List[str]]:
    """Read the tables referenced by each of ``tables`` from a sqlite store."""
    references: Dict[str, List[str]] = {}
    for table in tables:
        rows = connection.execute(f'PRAGMA foreign_key_list("{table}")').fetchall()
        # foreign_key_list rows: (id, seq, table, from, to, on_update, on_delete, match)
        references[table] = sorted({row[2] for row in rows})
    LOGGER.debug("Foreign keys discovered: %s", references)
    return references
