"""Streaming table copy from the legacy store to the new store."""

from __future__ import annotations

import time
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .connection_helper import ConnectionFactory, close_quietly
from .introspection import (
    ColumnDescriptor,
    build_insert_statement,
    declared_column_types,
    describe_columns,
    materialize_blob,
)
from .tables import TableOrder
from ..exceptions import TableCopyError
from ..loggers import get_logger

LOGGER = get_logger("storemigration.database.copier")

DEFAULT_BATCH_SIZE = 500

DeclaredTypesReader = Callable[[Any, str], Dict[str, str]]


@dataclass
class TableCopyResult:
    """Outcome of copying one table."""

    table: str
    rows_copied: int = 0
    batches: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "rows_copied": self.rows_copied,
            "batches": self.batches,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class TableCopier:
    """Copies whole tables in bounded batches.

    Each table gets its own source and destination connection. Every batch is
    committed on its own, so an interrupted copy leaves the tables and batches
    written before the failure in place.
    """

    def __init__(
        self,
        source_factory: ConnectionFactory,
        destination_factory: ConnectionFactory,
        batch_size: int = DEFAULT_BATCH_SIZE,
        declared_types_reader: Optional[DeclaredTypesReader] = declared_column_types,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.source_factory = source_factory
        self.destination_factory = destination_factory
        self.batch_size = batch_size
        self.declared_types_reader = declared_types_reader

    def copy_all(self, order: TableOrder) -> List[TableCopyResult]:
        """Copy every table of ``order`` in sequence, stopping at the first failure.

        Raises:
            TableCopyError: With ``completed`` set to the tables copied before the failure.
        """
        results: List[TableCopyResult] = []
        for descriptor in order:
            try:
                results.append(self.copy_table(descriptor.name))
            except TableCopyError as exc:
                exc.completed = list(results)
                raise
        return results

    def copy_table(self, table: str) -> TableCopyResult:
        """Stream all rows of ``table`` into the destination."""
        LOGGER.info("Migrate table: %s", table)
        result = TableCopyResult(table=table)
        started = time.perf_counter()

        try:
            with ExitStack() as stack:
                # Callbacks unwind in reverse: select cursor, insert cursor,
                # destination connection, source connection
                source = self.source_factory()
                stack.callback(close_quietly, source, f"source connection ({table})")
                destination = self.destination_factory()
                stack.callback(close_quietly, destination, f"destination connection ({table})")
                insert_cursor = destination.cursor()
                stack.callback(close_quietly, insert_cursor, f"insert statement ({table})")
                select_cursor = source.cursor()
                stack.callback(close_quietly, select_cursor, f"select statement ({table})")

                select_cursor.execute(f'select * from "{table}"')
                columns = self.discover_columns(source, table, select_cursor.description)
                insert_sql = build_insert_statement(table, columns)
                blob_positions = [column.position for column in columns if column.is_blob]

                batch: List[Tuple[Any, ...]] = []
                while True:
                    rows = select_cursor.fetchmany(self.batch_size)
                    if not rows:
                        break
                    for row in rows:
                        batch.append(self.bind_row(row, blob_positions))
                        if len(batch) >= self.batch_size:
                            self.execute_batch(destination, insert_cursor, insert_sql, batch)
                            result.rows_copied += len(batch)
                            result.batches += 1
                            batch = []

                if batch:
                    self.execute_batch(destination, insert_cursor, insert_sql, batch)
                    result.rows_copied += len(batch)
                    result.batches += 1
        except Exception as exc:
            LOGGER.error("Copy of table %s failed after %d rows: %s", table, result.rows_copied, exc)
            raise TableCopyError(table, rows_copied=result.rows_copied) from exc

        result.duration_seconds = time.perf_counter() - started
        LOGGER.info(
            "Migrated table %s: %d rows in %d batches (%.2fs)",
            table,
            result.rows_copied,
            result.batches,
            result.duration_seconds,
        )
        return result

    def discover_columns(
        self,
        source: Any,
        table: str,
        description: Optional[Sequence[Sequence[Any]]],
    ) -> List[ColumnDescriptor]:
        """Describe the result columns of ``table``, looking up declared types when needed."""
        if not description:
            raise ValueError(f"Select on {table} returned no column metadata")

        declared: Dict[str, str] = {}
        has_type_codes = all(isinstance(entry[1], str) and entry[1] for entry in description)
        if not has_type_codes and self.declared_types_reader is not None:
            declared = self.declared_types_reader(source, table)

        columns = describe_columns(description, declared)
        LOGGER.debug(
            "Columns of %s: %s",
            table,
            ", ".join(f"{column.name} {column.type_tag or '?'}" for column in columns),
        )
        return columns

    @staticmethod
    def bind_row(row: Sequence[Any], blob_positions: Sequence[int]) -> Tuple[Any, ...]:
        """Return insert parameters for ``row`` with binary columns read into bytes."""
        if not blob_positions:
            return tuple(row)
        values = list(row)
        for position in blob_positions:
            values[position] = materialize_blob(values[position])
        return tuple(values)

    def execute_batch(
        self,
        destination: Any,
        insert_cursor: Any,
        insert_sql: str,
        batch: Sequence[Tuple[Any, ...]],
    ) -> None:
        """Write one batch with a single ``executemany`` and commit it."""
        insert_cursor.executemany(insert_sql, batch)
        destination.commit()
        LOGGER.debug("Flushed batch of %d rows", len(batch))
