"""Column discovery from result metadata."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..loggers import get_logger

LOGGER = get_logger("storemigration.database.introspection")

BLOB_TYPE_TAGS = frozenset({"BLOB", "BINARY LARGE OBJECT", "LONGBLOB", "MEDIUMBLOB", "TINYBLOB"})


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """A result column: its name, declared SQL type tag and position."""

    name: str
    type_tag: str
    position: int

    @property
    def is_blob(self) -> bool:
        return self.type_tag in BLOB_TYPE_TAGS or "BLOB" in self.type_tag


def declared_column_types(connection: Any, table: str) -> Dict[str, str]:
    """Return declared column types of ``table`` keyed by upper-cased column name.

    sqlite reports no type codes in ``cursor.description``, so the declared
    types are read from the table definition instead.
    """
    rows = connection.execute(f'PRAGMA table_info("{table}")').fetchall()
    # table_info rows: (cid, name, type, notnull, dflt_value, pk)
    return {str(row[1]).upper(): str(row[2] or "").upper() for row in rows}


def describe_columns(
    description: Sequence[Sequence[Any]],
    declared_types: Optional[Dict[str, str]] = None,
) -> List[ColumnDescriptor]:
    """Build column descriptors from a DB-API ``cursor.description``.

    The type tag comes from the driver's ``type_code`` when it is a string,
    otherwise from ``declared_types``.
    """
    declared_types = declared_types or {}
    columns = []
    for position, entry in enumerate(description):
        name = str(entry[0])
        type_code = entry[1] if len(entry) > 1 else None
        if isinstance(type_code, str) and type_code:
            type_tag = type_code.upper()
        else:
            type_tag = declared_types.get(name.upper(), "")
        columns.append(ColumnDescriptor(name=name, type_tag=type_tag, position=position))
    return columns


def build_insert_statement(table: str, columns: Sequence[ColumnDescriptor]) -> str:
    """Return a positional insert for ``table`` with the given column list."""
    column_list = ", ".join(f'"{column.name}"' for column in columns)
    placeholders = ", ".join("?" for _ in columns)
    return f'insert into "{table}" ({column_list}) values ({placeholders})'


def materialize_blob(value: Any) -> Any:
    """Read a binary column value fully into memory.

    Streams and buffers become ``bytes``. Any other value, including text
    stored in a binary column, is returned unchanged.
    """
    if value is None:
        return None
    if hasattr(value, "read"):
        try:
            return bytes(value.read())
        finally:
            close = getattr(value, "close", None)
            if callable(close):
                close()
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value
