"""
Table-level access to the perfsync store.

The model layer selects rows of a table matching simple equality /
membership conditions and inserts rows; the sync pass also updates the
status of build requests. Each operation is provided as a plain function
over a connection (used directly by tests and seeding code) and as a
coroutine on ``Store``, which runs each call in a
worker thread with its own connection so that independent reads can be
awaited together with ``asyncio.gather``.

Usage:
    store = Store(Path("perfsync.db"))
    rows = await store.select("build_requests", {"triggerable": 1}, order_by=["order"])
    commits = await store.select("commits", {"id": [87832, 93116]})
"""

import asyncio
import logging
import sqlite3
from collections.abc import Collection, Mapping, Sequence
from pathlib import Path
from typing import Any

from perfsync.core.exceptions import StoreError
from perfsync.core.store.connection import get_connection, init_db
from perfsync.core.store.schema import validate_columns

logger = logging.getLogger(__name__)

Row = dict[str, Any]


def _quote(identifier: str) -> str:
    return f'"{identifier}"'


def _is_collection(value: Any) -> bool:
    return isinstance(value, Collection) and not isinstance(value, (str, bytes))


def _check(table: str, columns: Sequence[str]) -> None:
    try:
        validate_columns(table, list(columns))
    except ValueError as e:
        raise StoreError(str(e), table=table) from e


def _where_clause(where: Mapping[str, Any]) -> tuple[str, list[Any]] | None:
    """Build a WHERE clause and its parameters; None when nothing can match."""
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in where.items():
        if _is_collection(value):
            values = list(value)
            if not values:
                return None
            placeholders = ",".join("?" * len(values))
            clauses.append(f"{_quote(column)} IN ({placeholders})")
            params.extend(values)
        elif value is None:
            clauses.append(f"{_quote(column)} IS NULL")
        else:
            clauses.append(f"{_quote(column)} = ?")
            params.append(value)

    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


def select_rows(
    conn: sqlite3.Connection,
    table: str,
    where: Mapping[str, Any] | None = None,
    order_by: Sequence[str] | None = None,
) -> list[Row]:
    """
    Select rows from a table.

    Each ``where`` entry is an equality test, or a membership test when the
    value is a list, tuple or set. ``None`` matches NULL. An empty
    membership list matches nothing.

    Args:
        conn: SQLite connection
        table: Table name
        where: Column conditions, combined with AND
        order_by: Columns to sort by (ascending)

    Returns:
        List of row dictionaries

    Raises:
        StoreError: If the table or a column is unknown
    """
    where = where or {}
    order_by = order_by or []
    _check(table, [*where, *order_by])

    condition = _where_clause(where)
    if condition is None:
        return []
    clause, params = condition

    query = f"SELECT * FROM {_quote(table)}{clause}"
    if order_by:
        query += " ORDER BY " + ", ".join(_quote(column) for column in order_by)

    cursor = conn.execute(query, tuple(params))
    return cursor.fetchall()


def insert_row(conn: sqlite3.Connection, table: str, values: Mapping[str, Any]) -> int:
    """
    Insert a row into a table.

    Example:
        >>> insert_row(conn, "repositories", {"id": 9, "name": "OS X"})
        9

    Returns:
        The rowid of the inserted row

    Raises:
        StoreError: If the table or a column is unknown
    """
    columns = list(values)
    _check(table, columns)

    placeholders = ",".join("?" * len(columns))
    query = (
        f"INSERT INTO {_quote(table)} ({','.join(_quote(c) for c in columns)}) "
        f"VALUES ({placeholders})"
    )
    cursor = conn.execute(query, tuple(values[c] for c in columns))
    return int(cursor.lastrowid or 0)


def update_rows(
    conn: sqlite3.Connection,
    table: str,
    values: Mapping[str, Any],
    where: Mapping[str, Any],
) -> int:
    """
    Update the rows of a table matching ``where``.

    ``where`` follows the same rules as in ``select_rows`` and must not be
    empty.

    Example:
        >>> update_rows(conn, "build_requests", {"status": "scheduled"}, {"id": 700})
        1

    Returns:
        Number of rows changed

    Raises:
        StoreError: If the table or a column is unknown, or ``where`` is empty
    """
    if not values:
        return 0
    if not where:
        raise StoreError("Refusing to update every row", table=table)
    columns = list(values)
    _check(table, [*columns, *where])

    condition = _where_clause(where)
    if condition is None:
        return 0
    clause, params = condition

    assignments = ", ".join(f"{_quote(c)} = ?" for c in columns)
    query = f"UPDATE {_quote(table)} SET {assignments}{clause}"
    cursor = conn.execute(query, (*(values[c] for c in columns), *params))
    return cursor.rowcount


class Store:
    """
    Async facade over the SQLite store.

    Each operation opens its own connection in a worker thread, so any
    number of reads may be in flight at once.

    Example:
        >>> store = Store(tmp_path / "perfsync.db")
        >>> await store.insert("build_triggerables", {"name": "build-webkit"})
        1
        >>> await store.select("build_triggerables", {"name": "build-webkit"})
        [{'id': 1, 'name': 'build-webkit'}]
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)

    def initialize(self, *, force_recreate: bool = False) -> None:
        """Create the database file and schema if needed."""
        init_db(self.db_path, force_recreate=force_recreate).close()

    def _select(
        self,
        table: str,
        where: Mapping[str, Any] | None,
        order_by: Sequence[str] | None,
    ) -> list[Row]:
        with get_connection(self.db_path) as conn:
            return select_rows(conn, table, where, order_by)

    def _insert(self, table: str, values: Mapping[str, Any]) -> int:
        with get_connection(self.db_path) as conn:
            return insert_row(conn, table, values)

    def _update(self, table: str, values: Mapping[str, Any], where: Mapping[str, Any]) -> int:
        with get_connection(self.db_path) as conn:
            return update_rows(conn, table, values, where)

    async def select(
        self,
        table: str,
        where: Mapping[str, Any] | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[Row]:
        """Select rows from ``table``; see ``select_rows``."""
        rows = await asyncio.to_thread(self._select, table, where, order_by)
        logger.debug("select %s %s -> %d rows", table, dict(where or {}), len(rows))
        return rows

    async def select_one(self, table: str, where: Mapping[str, Any]) -> Row | None:
        """Select the first row matching ``where``, or None."""
        rows = await self.select(table, where)
        return rows[0] if rows else None

    async def insert(self, table: str, values: Mapping[str, Any]) -> int:
        """Insert a row into ``table``; see ``insert_row``."""
        return await asyncio.to_thread(self._insert, table, values)

    async def update(
        self, table: str, values: Mapping[str, Any], where: Mapping[str, Any]
    ) -> int:
        """Update rows of ``table``; see ``update_rows``."""
        changed = await asyncio.to_thread(self._update, table, values, where)
        logger.debug("update %s %s %s -> %d rows", table, dict(values), dict(where), changed)
        return changed
