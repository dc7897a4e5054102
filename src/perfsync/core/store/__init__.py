"""
Relational store for perfsync.

SQLite schema, connection management, and the table-level ``Store``
used by the model layer.

Usage:
    from perfsync.core.store import Store

    store = Store(db_path)
    store.initialize()
    rows = await store.select("build_requests", {"triggerable": 1})
"""

from perfsync.core.store.connection import configure_connection, get_connection, init_db
from perfsync.core.store.schema import SCHEMA_VERSION, TABLE_COLUMNS, create_schema
from perfsync.core.store.store import Store, insert_row, select_rows, update_rows

__all__ = [
    "Store",
    "configure_connection",
    "create_schema",
    "get_connection",
    "init_db",
    "insert_row",
    "select_rows",
    "update_rows",
    "SCHEMA_VERSION",
    "TABLE_COLUMNS",
]
