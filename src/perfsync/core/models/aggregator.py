"""
Build-request aggregation for a triggerable.

``fetch_for_triggerable`` returns the build requests a triggerable still
has work for, grouped by test group:

- A test group is *exhausted* when every request in it has finished
  (completed, failed or canceled). Exhausted groups are left out entirely.
- Every request of a group that is not exhausted is returned, finished ones
  included, so callers see the full state of the group.
- Groups are ordered by test group id; requests within a group by
  ``order`` (then id). A group's requests are always contiguous.

Loading is batched: after the triggerable's build requests are read, the
root sets, roots, test groups, platforms and tests they refer to are read
concurrently, followed by the commits, analysis tasks and repositories.
Each batch is an all-or-nothing join over independent reads.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any

from perfsync.core.exceptions import TriggerableNotFound
from perfsync.core.models.build_request import BuildRequest, BuildRequestStatus, is_finished_status
from perfsync.core.models.entities import AnalysisTask, Commit, RootSet, TestGroup, Triggerable
from perfsync.core.models.manifest import register_platforms, register_repositories, register_tests
from perfsync.core.models.registry import ModelRegistry
from perfsync.core.store import Store

logger = logging.getLogger(__name__)

Row = dict[str, Any]


def group_sort_key(request: BuildRequest) -> tuple[int, int, int]:
    """Sort key placing requests by test group, then order within the group."""
    return (request.test_group.id, request.order, request.id)


def exclude_exhausted_groups(rows: list[Row]) -> list[Row]:
    """
    Drop the rows of every test group whose requests have all finished.

    Example:
        >>> rows = [
        ...     {"id": 1, "group": 10, "status": "completed"},
        ...     {"id": 2, "group": 10, "status": "pending"},
        ...     {"id": 3, "group": 11, "status": "failed"},
        ... ]
        >>> [row["id"] for row in exclude_exhausted_groups(rows)]
        [1, 2]
    """
    rows_by_group: dict[int, list[Row]] = defaultdict(list)
    for row in rows:
        rows_by_group[row["group"]].append(row)

    active_groups = {
        group_id
        for group_id, group_rows in rows_by_group.items()
        if not all(is_finished_status(row["status"]) for row in group_rows)
    }
    return [row for row in rows if row["group"] in active_groups]


async def _select_if_any(store: Store, table: str, column: str, ids: list[int]) -> list[Row]:
    if not ids:
        return []
    return await store.select(table, {column: ids}, order_by=[column])


async def _select_all_if(store: Store, table: str, needed: bool) -> list[Row]:
    if not needed:
        return []
    return await store.select(table, order_by=["id"])


async def _load_dependencies(store: Store, registry: ModelRegistry, rows: list[Row]) -> None:
    root_set_ids = sorted({row["root_set"] for row in rows})
    group_ids = registry.test_groups.missing(row["group"] for row in rows)
    platform_ids = registry.platforms.missing(row["platform"] for row in rows)
    need_tests = bool(registry.tests.missing(row["test"] for row in rows))

    root_rows, group_rows, platform_rows, test_rows = await asyncio.gather(
        store.select("roots", {"set": root_set_ids}, order_by=["set", "commit"]),
        _select_if_any(store, "analysis_test_groups", "id", group_ids),
        _select_if_any(store, "platforms", "id", platform_ids),
        _select_all_if(store, "tests", need_tests),
    )

    commit_ids = registry.commits.missing(row["commit"] for row in root_rows)
    task_ids = registry.analysis_tasks.missing(row["task"] for row in group_rows)
    commit_rows, task_rows = await asyncio.gather(
        _select_if_any(store, "commits", "id", commit_ids),
        _select_if_any(store, "analysis_tasks", "id", task_ids),
    )

    repository_ids = registry.repositories.missing(row["repository"] for row in commit_rows)
    repository_rows = await _select_if_any(store, "repositories", "id", repository_ids)

    register_platforms(registry, platform_rows)
    register_tests(registry, test_rows)
    register_repositories(registry, repository_rows)

    for row in task_rows:
        registry.analysis_tasks.ensure(row["id"], lambda row=row: AnalysisTask.from_row(row))
    for row in group_rows:
        registry.test_groups.ensure(
            row["id"],
            lambda row=row: TestGroup(
                id=int(row["id"]),
                name=row["name"],
                task=registry.analysis_tasks.find_by_id(row.get("task")),
            ),
        )

    for row in commit_rows:
        repository = registry.repositories.get(row["repository"])
        registry.commits.ensure(
            row["id"], lambda row=row, repository=repository: Commit.from_row(row, repository)
        )

    for root_set_id in root_set_ids:
        registry.root_sets.ensure(root_set_id, lambda root_set_id=root_set_id: RootSet(root_set_id))
    for row in root_rows:
        registry.root_sets.get(row["set"]).add_commit(registry.commits.get(row["commit"]))


def _register_build_request(
    registry: ModelRegistry, triggerable: Triggerable, row: Row
) -> BuildRequest:
    request = registry.build_requests.find_by_id(row["id"])
    if request is not None:
        request.update_from_row(row)
        return request

    test_group = registry.test_groups.get(row["group"])
    request = registry.build_requests.ensure(
        row["id"],
        lambda: BuildRequest(
            id=int(row["id"]),
            triggerable=triggerable,
            test_group=test_group,
            platform=registry.platforms.get(row["platform"]),
            test=registry.tests.find_by_id(row.get("test")),
            root_set=registry.root_sets.get(row["root_set"]),
            order=int(row["order"]),
            status=BuildRequestStatus(row["status"]),
            url=row.get("url"),
            build=row.get("build"),
        ),
    )
    return request


def _refresh_known_requests(registry: ModelRegistry, rows: list[Row]) -> None:
    # Requests of groups dropped as exhausted are not re-registered
    for row in rows:
        request = registry.build_requests.find_by_id(row["id"])
        if request is not None:
            request.update_from_row(row)


def _rebuild_group_requests(requests: list[BuildRequest]) -> None:
    groups = {request.test_group.id: request.test_group for request in requests}
    for group in groups.values():
        group.build_requests.clear()
    for request in requests:
        request.test_group.add_build_request(request)


async def find_triggerable(store: Store, registry: ModelRegistry, name: str) -> Triggerable:
    """
    Look up a triggerable by name.

    Raises:
        TriggerableNotFound: If no triggerable has this name
    """
    row = await store.select_one("build_triggerables", {"name": name})
    if row is None:
        raise TriggerableNotFound(name)
    return registry.triggerables.ensure(row["id"], lambda: Triggerable.from_row(row))


async def fetch_for_triggerable(
    store: Store, registry: ModelRegistry, triggerable_name: str
) -> list[BuildRequest]:
    """
    Fetch the build requests of a triggerable that still have work pending.

    Args:
        store: Store to read from
        registry: Registry that receives the loaded entities
        triggerable_name: Name of the triggerable, e.g. ``"build-webkit"``

    Returns:
        Build requests of every non-exhausted test group, ordered by test
        group id and then by order within the group

    Raises:
        TriggerableNotFound: If no triggerable has this name

    Example:
        >>> requests = await fetch_for_triggerable(store, registry, "build-webkit")
        >>> [(r.id, r.test_group_id, r.order) for r in requests]
        [(700, 600, 0), (701, 600, 1), (702, 600, 2), (703, 600, 3)]
    """
    triggerable = await find_triggerable(store, registry, triggerable_name)

    rows = await store.select(
        "build_requests", {"triggerable": triggerable.id}, order_by=["group", "order", "id"]
    )
    active_rows = exclude_exhausted_groups(rows)
    logger.debug(
        "Triggerable %s: %d build requests, %d in unfinished test groups",
        triggerable_name,
        len(rows),
        len(active_rows),
    )
    _refresh_known_requests(registry, rows)
    if not active_rows:
        return []

    await _load_dependencies(store, registry, active_rows)

    requests = [_register_build_request(registry, triggerable, row) for row in active_rows]
    requests.sort(key=group_sort_key)
    _rebuild_group_requests(requests)
    return requests
