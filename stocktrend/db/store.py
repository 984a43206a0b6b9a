"""
Row store — the storage capability the pipeline is written against.

The pipeline only ever needs three operations on flat string rows:

  - ``select(query, params)``        → list of string tuples
  - ``insert_ignore(table, rows)``   → insert, skipping existing keys
  - ``upsert(table, rows)``          → insert or overwrite by key

plus ``transaction()`` to group writes so a failing group leaves nothing
behind. ``RowStore`` is a ``Protocol``; ``SQLiteRowStore`` is the real adapter
and ``InMemoryRowStore`` is a self-contained SQLite ``:memory:`` store for
tests and dry runs.

Every backend failure surfaces as ``StorageError``, which the pipeline always
treats as fatal.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Iterator, Protocol, Sequence

from stocktrend.db.schema import DATA_TABLE_COLUMNS, apply_schema

logger = logging.getLogger(__name__)

Row = tuple[str, ...]


class StorageError(RuntimeError):
    """The storage backend failed.

    Attributes:
        operation: ``select``, ``insert_ignore``, ``upsert`` or ``commit``.
        table: Table involved, or ``None`` for free-form queries.
    """

    def __init__(self, operation: str, table: str | None, message: str) -> None:
        self.operation = operation
        self.table = table
        where = f" on table '{table}'" if table else ""
        super().__init__(f"{operation} failed{where}: {message}")


class RowStore(Protocol):
    def select(self, query: str, params: Sequence[Any] = ()) -> list[Row]: ...

    def insert_ignore(self, table: str, rows: Sequence[Row]) -> int: ...

    def upsert(self, table: str, rows: Sequence[Row]) -> int: ...

    def transaction(self): ...


class SQLiteRowStore:
    """``RowStore`` over an open ``sqlite3.Connection``.

    Writes are not committed until the enclosing ``transaction()`` (or the
    connection's own context manager) commits.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def select(self, query: str, params: Sequence[Any] = ()) -> list[Row]:
        logger.debug("SQL: %s | params: %s", query.strip(), params)
        try:
            rows = self.conn.execute(query, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise StorageError("select", None, f"{exc} | query={query.strip()!r}") from exc
        return [tuple("" if v is None else str(v) for v in row) for row in rows]

    def insert_ignore(self, table: str, rows: Sequence[Row]) -> int:
        return self._write("insert_ignore", "INSERT OR IGNORE", table, rows)

    def upsert(self, table: str, rows: Sequence[Row]) -> int:
        return self._write("upsert", "INSERT OR REPLACE", table, rows)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit on success, roll back and re-raise on any exception."""
        try:
            yield
        except BaseException:
            self.conn.rollback()
            raise
        try:
            self.conn.commit()
        except sqlite3.Error as exc:
            raise StorageError("commit", None, str(exc)) from exc

    def _write(self, operation: str, verb: str, table: str, rows: Sequence[Row]) -> int:
        if not rows:
            return 0
        width = _table_width(table)
        for row in rows:
            if len(row) != width:
                raise StorageError(
                    operation, table,
                    f"expected {width} columns, got {len(row)}: {row}",
                )
        placeholders = ", ".join("?" * width)
        sql = f"{verb} INTO {table} VALUES ({placeholders});"
        logger.debug("SQL (many): %s | count: %d", sql, len(rows))
        before = self.conn.total_changes
        try:
            self.conn.executemany(sql, [tuple(r) for r in rows])
        except sqlite3.Error as exc:
            raise StorageError(operation, table, str(exc)) from exc
        # Rows skipped by OR IGNORE are not counted.
        return self.conn.total_changes - before


class InMemoryRowStore(SQLiteRowStore):
    """Private ``:memory:`` database with the schema already applied."""

    def __init__(self) -> None:
        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        apply_schema(conn)
        super().__init__(conn)

    def close(self) -> None:
        self.conn.close()


def _table_width(table: str) -> int:
    try:
        return DATA_TABLE_COLUMNS[table]
    except KeyError:
        raise ValueError(
            f"Unknown table '{table}'. Must be one of {sorted(DATA_TABLE_COLUMNS)}."
        ) from None


def in_placeholders(values: Sequence[Any]) -> str:
    """``"?, ?, ?"`` for an ``IN (...)`` clause over ``values``."""
    return ", ".join("?" * len(values))
