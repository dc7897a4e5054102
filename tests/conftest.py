"""
Pytest configuration and shared fixtures.

Provides a temporary SQLite store seeded with the build-webkit data set
(one triggerable, two repositories, three commits, two root sets and one
or two test groups of four build requests), plus helpers to build
syncers and buildbot records.
"""

from pathlib import Path
from typing import Any

import pytest

from perfsync.core.config import clear_cache
from perfsync.core.store import Store, get_connection, init_db, insert_row

# ==============================================================================
# Environment isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user config, .env files and PERFSYNC_* variables out of tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in (
        "PERFSYNC_DB_PATH",
        "PERFSYNC_BUILDBOT_URL",
        "PERFSYNC_BUILDBOT_CONFIG",
        "PERFSYNC_TRIGGERABLE",
        "PERFSYNC_RECENT_BUILD_COUNT",
        "PERFSYNC_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_cache()
    yield
    clear_cache()


# ==============================================================================
# Store fixtures
# ==============================================================================

PENDING = ["pending", "pending", "pending", "pending"]


def seed_manifest(db_path: Path) -> None:
    """Insert everything except the build requests and their test groups."""
    with get_connection(db_path) as conn:
        insert_row(conn, "build_triggerables", {"id": 1, "name": "build-webkit"})
        insert_row(conn, "repositories", {"id": 9, "name": "OS X"})
        insert_row(conn, "repositories", {"id": 11, "name": "WebKit"})
        insert_row(conn, "commits", {"id": 87832, "repository": 9, "revision": "10.11 15A284"})
        insert_row(
            conn,
            "commits",
            {
                "id": 93116,
                "repository": 11,
                "revision": "191622",
                "time": "2015-10-27T11:36:56.878Z",
            },
        )
        insert_row(
            conn,
            "commits",
            {
                "id": 96336,
                "repository": 11,
                "revision": "192736",
                "time": "2015-11-22T20:48:45.650Z",
            },
        )
        insert_row(conn, "platforms", {"id": 65, "name": "some platform"})
        insert_row(conn, "tests", {"id": 200, "name": "some test"})
        insert_row(conn, "test_metrics", {"id": 300, "test": 200, "name": "some metric"})
        insert_row(
            conn,
            "test_configurations",
            {"id": 301, "metric": 300, "platform": 65, "type": "current"},
        )
        insert_row(conn, "root_sets", {"id": 401})
        insert_row(conn, "roots", {"set": 401, "commit": 87832})
        insert_row(conn, "roots", {"set": 401, "commit": 93116})
        insert_row(conn, "root_sets", {"id": 402})
        insert_row(conn, "roots", {"set": 402, "commit": 87832})
        insert_row(conn, "roots", {"set": 402, "commit": 96336})
        insert_row(
            conn,
            "analysis_tasks",
            {"id": 500, "platform": 65, "metric": 300, "name": "some task"},
        )


def seed_test_group(
    db_path: Path, group_id: int, first_request_id: int, statuses: list[str]
) -> None:
    """Insert a test group with four requests alternating root sets 401 and 402."""
    with get_connection(db_path) as conn:
        insert_row(
            conn,
            "analysis_test_groups",
            {"id": group_id, "task": 500, "name": f"test group {group_id}"},
        )
        for order, status in enumerate(statuses):
            insert_row(
                conn,
                "build_requests",
                {
                    "id": first_request_id + order,
                    "status": status,
                    "triggerable": 1,
                    "platform": 65,
                    "test": 200,
                    "group": group_id,
                    "order": order,
                    "root_set": 401 if order % 2 == 0 else 402,
                },
            )


@pytest.fixture
def db_path(tmp_path) -> Path:
    """Path to an initialized, empty store database."""
    path = tmp_path / "perfsync.db"
    init_db(path).close()
    return path


@pytest.fixture
def store(db_path) -> Store:
    """Store over an empty database."""
    return Store(db_path)


@pytest.fixture
def seeded_db(db_path):
    """
    Factory seeding the build-webkit data set.

    Call with the statuses of group 600 (requests 700-703); pass
    ``with_group_599=True`` to add group 599 (requests 710-713) as well.
    """

    def _seed(statuses: list[str] | None = None, *, with_group_599: bool = False) -> Path:
        seed_manifest(db_path)
        if with_group_599:
            seed_test_group(db_path, 599, 710, statuses or PENDING)
        seed_test_group(db_path, 600, 700, statuses or PENDING)
        return db_path

    return _seed


@pytest.fixture
def seeded_store(seeded_db) -> Store:
    """Store holding group 600 with four pending requests."""
    return Store(seeded_db())


# ==============================================================================
# Buildbot helpers
# ==============================================================================


@pytest.fixture
def sync_config() -> dict[str, Any]:
    """A sync configuration for one builder running "some test" on "some platform"."""
    return {
        "buildbotUrl": "http://build.webkit.org",
        "shared": {
            "arguments": {
                "os": {"root": "OS X"},
                "webkit": {"root": "WebKit"},
            },
            "slaveArgument": "slavename",
            "buildRequestArgument": "build_request_id",
        },
        "types": {
            "some-test": {
                "test": ["some test"],
                "arguments": {"test_name": "some-test"},
            },
        },
        "builders": {
            "bench": {"builder": "some-builder"},
        },
        "configurations": [
            {"type": "some-test", "builder": "bench", "platform": "some platform"},
        ],
    }


def _build_record(
    builder: str = "some-builder",
    *,
    number: int | None = None,
    request_id: Any = None,
    slave: str | None = None,
    current_step: dict[str, Any] | None = None,
    times: list[float | None] | None = None,
) -> dict[str, Any]:
    """Build a buildbot JSON record as returned by pendingBuilds or builds/."""
    properties: list[list[Any]] = []
    if request_id is not None:
        properties.append(["build_request_id", request_id, "Force Build Form"])
    if slave is not None:
        properties.append(["slavename", slave, "BuildSlave"])
    record: dict[str, Any] = {"builderName": builder, "properties": properties}
    if number is not None:
        record["number"] = number
    if current_step is not None:
        record["currentStep"] = current_step
    if times is not None:
        record["times"] = times
    return record


@pytest.fixture
def build_record():
    """Factory for buildbot JSON records; see ``_build_record``."""
    return _build_record
