"""
Identity map for domain entities.

A ``ModelRegistry`` holds one ``EntityMap`` per entity type. Loaders look
entities up by id before building new ones, so every row is represented by
a single object for the lifetime of the registry. Nothing is invalidated
implicitly: callers that need fresh data call ``reset()`` or use a new
registry.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import Generic, TypeVar

from perfsync.core.models.build_request import BuildRequest
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

T = TypeVar("T")


class EntityMap(Generic[T]):
    """Entities of one type keyed by id."""

    def __init__(self) -> None:
        self._by_id: dict[int, T] = {}

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[T]:
        return iter(self.all())

    def find_by_id(self, entity_id: int | None) -> T | None:
        if entity_id is None:
            return None
        return self._by_id.get(int(entity_id))

    def get(self, entity_id: int) -> T:
        """Like ``find_by_id`` but raises ``KeyError`` for unknown ids."""
        return self._by_id[int(entity_id)]

    def ensure(self, entity_id: int, factory: Callable[[], T]) -> T:
        """Return the entity with this id, building it with ``factory`` if needed."""
        entity_id = int(entity_id)
        entity = self._by_id.get(entity_id)
        if entity is None:
            entity = factory()
            self._by_id[entity_id] = entity
        return entity

    def missing(self, ids: Iterable[int | None]) -> list[int]:
        """Ids (sorted, deduplicated, None dropped) that are not loaded yet."""
        return sorted({int(i) for i in ids if i is not None and int(i) not in self._by_id})

    def all(self) -> list[T]:
        return [self._by_id[key] for key in sorted(self._by_id)]

    def clear(self) -> None:
        self._by_id.clear()


class ModelRegistry:
    """
    Process- or request-scoped cache of domain entities.

    Example:
        >>> registry = ModelRegistry()
        >>> await fetch_manifest(store, registry)
        >>> registry.repositories.find_by_id(11).name
        'WebKit'
        >>> registry.reset()
    """

    def __init__(self) -> None:
        self.repositories: EntityMap[Repository] = EntityMap()
        self.commits: EntityMap[Commit] = EntityMap()
        self.root_sets: EntityMap[RootSet] = EntityMap()
        self.platforms: EntityMap[Platform] = EntityMap()
        self.tests: EntityMap[Test] = EntityMap()
        self.metrics: EntityMap[Metric] = EntityMap()
        self.triggerables: EntityMap[Triggerable] = EntityMap()
        self.analysis_tasks: EntityMap[AnalysisTask] = EntityMap()
        self.test_groups: EntityMap[TestGroup] = EntityMap()
        self.build_requests: EntityMap[BuildRequest] = EntityMap()

    def _maps(self) -> list[EntityMap]:  # type: ignore[type-arg]
        return [
            self.repositories,
            self.commits,
            self.root_sets,
            self.platforms,
            self.tests,
            self.metrics,
            self.triggerables,
            self.analysis_tasks,
            self.test_groups,
            self.build_requests,
        ]

    def reset(self) -> None:
        """Forget every loaded entity."""
        for entity_map in self._maps():
            entity_map.clear()

    def repository_by_name(self, name: str) -> Repository | None:
        for repository in self.repositories:
            if repository.name == name:
                return repository
        return None

    def platform_by_name(self, name: str) -> Platform | None:
        for platform in self.platforms:
            if platform.name == name:
                return platform
        return None
