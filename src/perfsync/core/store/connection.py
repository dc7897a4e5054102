"""
Database connection management for the perfsync store.

Every connection is configured the same way:
- WAL mode so concurrent readers in worker threads don't block each other
- Foreign key enforcement
- Row factory returning dicts

Usage:
    from perfsync.core.store import get_connection, init_db

    init_db(Path("perfsync.db"))

    with get_connection(Path("perfsync.db")) as conn:
        cursor = conn.execute("SELECT * FROM repositories WHERE name = ?", ("WebKit",))
        for row in cursor:
            print(row["id"], row["name"])
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from perfsync.core.store.schema import create_schema, needs_schema


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """
    Row factory that returns rows as dictionaries.

    Example:
        >>> conn = sqlite3.connect(":memory:")
        >>> conn.row_factory = dict_factory
        >>> conn.execute("SELECT 1 AS id").fetchone()
        {'id': 1}
    """
    fields = [column[0] for column in cursor.description]
    return dict(zip(fields, row))


def configure_connection(conn: sqlite3.Connection) -> None:
    """Apply WAL mode, foreign keys and the dict row factory to a connection."""
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = dict_factory


def init_db(db_path: Path | str, *, force_recreate: bool = False) -> sqlite3.Connection:
    """
    Initialize the store database.

    Creates the database file if it doesn't exist, applies the schema,
    and returns a configured connection.

    Args:
        db_path: Path to the SQLite database file
        force_recreate: If True, delete existing database and recreate

    Returns:
        Configured SQLite connection
    """
    db_path = Path(db_path)

    if force_recreate and db_path.exists():
        db_path.unlink()

    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    configure_connection(conn)

    if needs_schema(conn):
        create_schema(conn)

    return conn


@contextmanager
def get_connection(db_path: Path | str) -> Iterator[sqlite3.Connection]:
    """
    Get a database connection as a context manager.

    The connection is closed when the context exits. If an exception
    occurs, the transaction is rolled back; otherwise it is committed.

    Args:
        db_path: Path to the SQLite database file

    Yields:
        Configured SQLite connection
    """
    db_path = Path(db_path)

    if not db_path.exists():
        init_db(db_path).close()

    conn = sqlite3.connect(str(db_path))
    configure_connection(conn)

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
