"""
Domain entities read from the store.

These are plain in-memory objects built from store rows. They are shared
through a ``ModelRegistry`` so that two root sets referring to the same
commit hold the very same ``Commit`` object; identity, not value, is what
equality means for them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from perfsync.core.exceptions import DuplicateRepositoryInRootSet

if TYPE_CHECKING:
    from perfsync.core.models.build_request import BuildRequest

TEST_NAME_SEPARATOR = " ∋ "


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a store timestamp into a timezone-aware datetime.

    Accepts ISO 8601 strings (with or without a trailing ``Z``), datetimes
    and epoch milliseconds. Naive values are taken to be UTC.

    Example:
        >>> parse_timestamp("2015-10-27T11:36:56.878Z")
        datetime.datetime(2015, 10, 27, 11, 36, 56, 878000, tzinfo=datetime.timezone.utc)
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(eq=False)
class Repository:
    """A source code repository."""

    id: int
    name: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Repository:
        return cls(id=int(row["id"]), name=row["name"])


@dataclass(frozen=True, eq=False)
class Commit:
    """A single revision of a repository."""

    id: int
    repository: Repository
    revision: str
    time: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any], repository: Repository) -> Commit:
        return cls(
            id=int(row["id"]),
            repository=repository,
            revision=str(row["revision"]),
            time=parse_timestamp(row.get("time")),
        )

    def time_in_milliseconds(self) -> int | None:
        """Commit time as epoch milliseconds, or None when unknown."""
        if self.time is None:
            return None
        return round(self.time.timestamp() * 1000)


@dataclass(eq=False)
class RootSet:
    """
    A set of commits, at most one per repository, defining one buildable
    configuration.

    Commits keep the order in which they were added.
    """

    id: int
    commits: list[Commit] = field(default_factory=list)

    def add_commit(self, commit: Commit) -> None:
        """
        Add a commit to the set.

        Adding the same commit twice is a no-op.

        Raises:
            DuplicateRepositoryInRootSet: If another commit of the same
                repository is already in the set
        """
        existing = self.commit_for_repository(commit.repository)
        if existing is commit:
            return
        if existing is not None:
            raise DuplicateRepositoryInRootSet(self.id, commit.repository.name)
        self.commits.append(commit)

    def repositories(self) -> list[Repository]:
        return [commit.repository for commit in self.commits]

    def commit_for_repository(self, repository: Repository) -> Commit | None:
        for commit in self.commits:
            if commit.repository is repository:
                return commit
        return None

    def revision_for_repository(self, repository: Repository) -> str | None:
        commit = self.commit_for_repository(repository)
        return commit.revision if commit else None


@dataclass(eq=False)
class Platform:
    """A platform (hardware + OS configuration) tests run on."""

    id: int
    name: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Platform:
        return cls(id=int(row["id"]), name=row["name"])


@dataclass(eq=False)
class Test:
    """A test in the test tree. Top-level tests have no parent."""

    __test__ = False  # keep pytest from collecting this class

    id: int
    name: str
    parent: Test | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Test:
        return cls(id=int(row["id"]), name=row["name"])

    def path(self) -> list[Test]:
        """Tests from the top-level ancestor down to this test."""
        path: list[Test] = []
        test: Test | None = self
        while test is not None:
            path.insert(0, test)
            test = test.parent
        return path

    def path_names(self) -> list[str]:
        return [test.name for test in self.path()]

    def full_name(self) -> str:
        return TEST_NAME_SEPARATOR.join(self.path_names())


@dataclass(eq=False)
class Metric:
    """A metric measured by a test."""

    id: int
    name: str
    test: Test

    def label(self) -> str:
        """Metric-qualified display label, e.g. ``"Speedometer : Score"``."""
        return f"{self.test.full_name()} : {self.name}"


@dataclass(eq=False)
class Triggerable:
    """A named build queue that owns build requests."""

    id: int
    name: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Triggerable:
        return cls(id=int(row["id"]), name=row["name"])


@dataclass(eq=False)
class AnalysisTask:
    """An analysis task; owns test groups."""

    id: int
    name: str
    platform_id: int | None = None
    metric_id: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> AnalysisTask:
        return cls(
            id=int(row["id"]),
            name=row["name"],
            platform_id=row.get("platform"),
            metric_id=row.get("metric"),
        )


@dataclass(eq=False)
class TestGroup:
    """
    An ordered collection of build requests executed together for comparison.

    ``build_requests`` holds the requests of the latest fetch that returned
    this group. Once the group is exhausted it drops out of fetches, but the
    statuses of the requests it holds are still refreshed.
    """

    __test__ = False

    id: int
    name: str
    task: AnalysisTask | None = None
    build_requests: list[BuildRequest] = field(default_factory=list)

    def add_build_request(self, request: BuildRequest) -> None:
        """Add a request, keeping the collection sorted by order."""
        if any(existing is request for existing in self.build_requests):
            return
        self.build_requests.append(request)
        self.build_requests.sort(key=lambda r: (r.order, r.id))

    def is_exhausted(self) -> bool:
        """True when every request of the group has finished."""
        return all(request.has_finished() for request in self.build_requests)
