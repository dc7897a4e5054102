"""
SQLite schema for the perfsync store.

Defines the tables read by the model layer. Column names mirror the
performance dashboard database: several of them ("set", "group", "order")
are SQL keywords, so every statement built by the store quotes identifiers.

Tables:
- build_triggerables: named build-queue targets
- repositories / commits: source repositories and their revisions
- platforms / tests / test_metrics / test_configurations: what is measured where
- root_sets / roots: sets of commits defining one buildable configuration
- analysis_tasks / analysis_test_groups: A/B test groups under an analysis task
- build_requests: one unit of work per (test group, order)
- schema_info: version tracking
"""

import sqlite3

SCHEMA_VERSION = 1

BUILD_REQUEST_STATUSES = [
    "pending",
    "scheduled",
    "running",
    "completed",
    "failed",
    "canceled",
]

# Columns per table; the store rejects any name not listed here.
TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    "build_triggerables": ("id", "name"),
    "repositories": ("id", "name"),
    "commits": ("id", "repository", "revision", "time"),
    "platforms": ("id", "name"),
    "tests": ("id", "name", "parent"),
    "test_metrics": ("id", "test", "name"),
    "test_configurations": ("id", "metric", "platform", "type"),
    "root_sets": ("id",),
    "roots": ("set", "commit"),
    "analysis_tasks": ("id", "platform", "metric", "name"),
    "analysis_test_groups": ("id", "task", "name"),
    "build_requests": (
        "id",
        "triggerable",
        "platform",
        "test",
        "group",
        "order",
        "root_set",
        "status",
        "url",
        "build",
    ),
}

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS schema_info (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    description TEXT
);

CREATE TABLE IF NOT EXISTS build_triggerables (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS repositories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS commits (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repository INTEGER NOT NULL REFERENCES repositories(id),
    revision TEXT NOT NULL,
    time TIMESTAMP,
    UNIQUE(repository, revision)
);

CREATE TABLE IF NOT EXISTS platforms (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS tests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    parent INTEGER REFERENCES tests(id)
);

CREATE TABLE IF NOT EXISTS test_metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    test INTEGER NOT NULL REFERENCES tests(id),
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS test_configurations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    metric INTEGER NOT NULL REFERENCES test_metrics(id),
    platform INTEGER NOT NULL REFERENCES platforms(id),
    type TEXT NOT NULL CHECK(type IN ('current', 'baseline', 'target'))
);

CREATE TABLE IF NOT EXISTS root_sets (
    id INTEGER PRIMARY KEY AUTOINCREMENT
);

CREATE TABLE IF NOT EXISTS roots (
    "set" INTEGER NOT NULL REFERENCES root_sets(id),
    "commit" INTEGER NOT NULL REFERENCES commits(id),
    PRIMARY KEY ("set", "commit")
);

CREATE TABLE IF NOT EXISTS analysis_tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    platform INTEGER REFERENCES platforms(id),
    metric INTEGER REFERENCES test_metrics(id),
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS analysis_test_groups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task INTEGER REFERENCES analysis_tasks(id),
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS build_requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    triggerable INTEGER NOT NULL REFERENCES build_triggerables(id),
    platform INTEGER NOT NULL REFERENCES platforms(id),
    test INTEGER REFERENCES tests(id),
    "group" INTEGER NOT NULL REFERENCES analysis_test_groups(id),
    "order" INTEGER NOT NULL,
    root_set INTEGER NOT NULL REFERENCES root_sets(id),
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK(status IN ('pending', 'scheduled', 'running', 'completed', 'failed', 'canceled')),
    url TEXT,
    build INTEGER,
    UNIQUE("group", "order")
);

CREATE INDEX IF NOT EXISTS idx_build_requests_triggerable ON build_requests(triggerable);
CREATE INDEX IF NOT EXISTS idx_build_requests_group ON build_requests("group");
CREATE INDEX IF NOT EXISTS idx_roots_set ON roots("set");
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """
    Create the database schema.

    Idempotent - safe to call multiple times.

    Args:
        conn: SQLite database connection

    Example:
        >>> import sqlite3
        >>> conn = sqlite3.connect(":memory:")
        >>> create_schema(conn)
        >>> cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        >>> assert "build_requests" in [row[0] for row in cursor.fetchall()]
    """
    conn.executescript(SCHEMA_DDL)

    conn.execute(
        """
        INSERT OR REPLACE INTO schema_info (version, description)
        VALUES (?, ?)
        """,
        (SCHEMA_VERSION, "Build requests, root sets and analysis test groups"),
    )

    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """
    Get the current schema version from the database.

    Returns:
        Current schema version, or None if schema_info table doesn't exist
    """
    try:
        cursor = conn.execute("SELECT MAX(version) FROM schema_info")
        row = cursor.fetchone()
    except sqlite3.OperationalError:
        return None
    if row is None:
        return None
    value = row["MAX(version)"] if isinstance(row, dict) else row[0]
    return int(value) if value is not None else None


def needs_schema(conn: sqlite3.Connection) -> bool:
    """Check whether the schema has not been created yet."""
    return get_schema_version(conn) is None


def validate_columns(table: str, columns: list[str] | tuple[str, ...]) -> None:
    """
    Validate that a table and its columns exist in the schema.

    Raises:
        ValueError: If the table or any column is unknown
    """
    known = TABLE_COLUMNS.get(table)
    if known is None:
        raise ValueError(f"Invalid table: {table}. Must be one of: {', '.join(TABLE_COLUMNS)}")
    for column in columns:
        if column not in known:
            raise ValueError(f"Invalid column for {table}: {column}")
