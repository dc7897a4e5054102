"""
Domain model layer.

Entities built from store rows, the ``ModelRegistry`` identity map that
shares them, the manifest loader, and build-request aggregation.

Usage:
    from perfsync.core.models import ModelRegistry, fetch_for_triggerable, fetch_manifest

    registry = ModelRegistry()
    await fetch_manifest(store, registry)
    requests = await fetch_for_triggerable(store, registry, "build-webkit")
"""

from perfsync.core.models.aggregator import (
    exclude_exhausted_groups,
    fetch_for_triggerable,
    find_triggerable,
)
from perfsync.core.models.build_request import (
    FINISHED_STATUSES,
    BuildRequest,
    BuildRequestStatus,
)
from perfsync.core.models.entities import (
    AnalysisTask,
    Commit,
    Metric,
    Platform,
    Repository,
    RootSet,
    Test,
    TestGroup,
    Triggerable,
)
from perfsync.core.models.manifest import fetch_manifest
from perfsync.core.models.registry import EntityMap, ModelRegistry

__all__ = [
    # Entities
    "AnalysisTask",
    "BuildRequest",
    "BuildRequestStatus",
    "Commit",
    "Metric",
    "Platform",
    "Repository",
    "RootSet",
    "Test",
    "TestGroup",
    "Triggerable",
    "FINISHED_STATUSES",
    # Registry
    "EntityMap",
    "ModelRegistry",
    # Loaders
    "exclude_exhausted_groups",
    "fetch_for_triggerable",
    "fetch_manifest",
    "find_triggerable",
]
