"""
Manifest loading.

The manifest is the slowly-changing part of the model: repositories,
platforms, the test tree with its metrics, and triggerables. Loading it up
front lets callers resolve ids to names without further queries.
"""

import asyncio
import logging
from typing import Any

from perfsync.core.models.entities import Metric, Platform, Repository, Test, Triggerable
from perfsync.core.models.registry import ModelRegistry
from perfsync.core.store import Store

logger = logging.getLogger(__name__)


def register_repositories(registry: ModelRegistry, rows: list[dict[str, Any]]) -> None:
    for row in rows:
        registry.repositories.ensure(row["id"], lambda row=row: Repository.from_row(row))


def register_platforms(registry: ModelRegistry, rows: list[dict[str, Any]]) -> None:
    for row in rows:
        registry.platforms.ensure(row["id"], lambda row=row: Platform.from_row(row))


def register_tests(registry: ModelRegistry, rows: list[dict[str, Any]]) -> None:
    """Register tests, then link each one to its parent once all are known."""
    for row in rows:
        registry.tests.ensure(row["id"], lambda row=row: Test.from_row(row))
    for row in rows:
        parent_id = row.get("parent")
        if parent_id is not None:
            registry.tests.get(row["id"]).parent = registry.tests.find_by_id(parent_id)


def register_metrics(registry: ModelRegistry, rows: list[dict[str, Any]]) -> None:
    for row in rows:
        test = registry.tests.find_by_id(row["test"])
        if test is None:
            logger.warning("Metric %s refers to unknown test %s", row["id"], row["test"])
            continue
        registry.metrics.ensure(
            row["id"],
            lambda row=row, test=test: Metric(id=int(row["id"]), name=row["name"], test=test),
        )


def register_triggerables(registry: ModelRegistry, rows: list[dict[str, Any]]) -> None:
    for row in rows:
        registry.triggerables.ensure(row["id"], lambda row=row: Triggerable.from_row(row))


async def fetch_manifest(store: Store, registry: ModelRegistry) -> ModelRegistry:
    """
    Load repositories, platforms, tests, metrics and triggerables.

    The reads run concurrently; the registry is only touched once all of
    them have completed.

    Returns:
        The registry passed in, for chaining
    """
    repositories, platforms, tests, metrics, triggerables = await asyncio.gather(
        store.select("repositories", order_by=["id"]),
        store.select("platforms", order_by=["id"]),
        store.select("tests", order_by=["id"]),
        store.select("test_metrics", order_by=["id"]),
        store.select("build_triggerables", order_by=["id"]),
    )

    register_repositories(registry, repositories)
    register_platforms(registry, platforms)
    register_tests(registry, tests)
    register_metrics(registry, metrics)
    register_triggerables(registry, triggerables)

    logger.debug(
        "Manifest loaded: %d repositories, %d platforms, %d tests, %d metrics",
        len(repositories),
        len(platforms),
        len(tests),
        len(metrics),
    )
    return registry
