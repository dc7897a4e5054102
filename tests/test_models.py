"""
Tests for the domain model layer.

Tests entities, root set invariants, build request status helpers, the
ModelRegistry identity map and manifest loading.
"""

from datetime import datetime, timezone

import pytest

from perfsync.core.exceptions import DuplicateRepositoryInRootSet
from perfsync.core.models import (
    BuildRequest,
    BuildRequestStatus,
    Commit,
    EntityMap,
    Metric,
    ModelRegistry,
    Platform,
    Repository,
    RootSet,
    Test,
    TestGroup,
    Triggerable,
    fetch_manifest,
)
from perfsync.core.models.entities import parse_timestamp


def make_request(
    request_id: int,
    order: int,
    status: BuildRequestStatus = BuildRequestStatus.PENDING,
    group: TestGroup | None = None,
) -> BuildRequest:
    return BuildRequest(
        id=request_id,
        triggerable=Triggerable(1, "build-webkit"),
        test_group=group or TestGroup(600, "some test group"),
        platform=Platform(65, "some platform"),
        test=Test(200, "some test"),
        root_set=RootSet(401),
        order=order,
        status=status,
    )


class TestParseTimestamp:
    """Test timestamp parsing."""

    def test_iso_with_z(self):
        assert parse_timestamp("2015-10-27T11:36:56.878Z") == datetime(
            2015, 10, 27, 11, 36, 56, 878000, tzinfo=timezone.utc
        )

    def test_naive_is_utc(self):
        assert parse_timestamp("2015-10-27 11:36:56").tzinfo == timezone.utc

    def test_epoch_milliseconds(self):
        parsed = parse_timestamp(1445945816878)
        assert parsed == datetime(2015, 10, 27, 11, 36, 56, 878000, tzinfo=timezone.utc)

    def test_empty_values(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None


class TestRootSet:
    """Test root set membership rules."""

    def setup_method(self):
        self.osx = Repository(9, "OS X")
        self.webkit = Repository(11, "WebKit")
        self.osx_commit = Commit(87832, self.osx, "10.11 15A284")
        self.webkit_commit = Commit(93116, self.webkit, "191622")

    def test_commits_keep_insertion_order(self):
        root_set = RootSet(401)
        root_set.add_commit(self.osx_commit)
        root_set.add_commit(self.webkit_commit)
        assert root_set.commits == [self.osx_commit, self.webkit_commit]
        assert root_set.repositories() == [self.osx, self.webkit]

    def test_revision_for_repository(self):
        root_set = RootSet(401, [self.osx_commit])
        assert root_set.revision_for_repository(self.osx) == "10.11 15A284"
        assert root_set.revision_for_repository(self.webkit) is None
        assert root_set.commit_for_repository(self.osx) is self.osx_commit

    def test_same_commit_twice_is_noop(self):
        root_set = RootSet(401)
        root_set.add_commit(self.osx_commit)
        root_set.add_commit(self.osx_commit)
        assert len(root_set.commits) == 1

    def test_second_commit_of_repository_raises(self):
        root_set = RootSet(401)
        root_set.add_commit(self.webkit_commit)
        with pytest.raises(DuplicateRepositoryInRootSet) as exc_info:
            root_set.add_commit(Commit(96336, self.webkit, "192736"))
        assert exc_info.value.repository_name == "WebKit"
        assert exc_info.value.root_set_id == 401


class TestCommit:
    """Test commit helpers."""

    def test_time_in_milliseconds(self):
        commit = Commit(
            93116, Repository(11, "WebKit"), "191622", parse_timestamp("2015-10-27T11:36:56.878Z")
        )
        assert commit.time_in_milliseconds() == 1445945816878

    def test_time_unknown(self):
        assert Commit(87832, Repository(9, "OS X"), "10.11 15A284").time_in_milliseconds() is None

    def test_equality_is_identity(self):
        repository = Repository(9, "OS X")
        assert Commit(1, repository, "a") != Commit(1, repository, "a")


class TestTestTree:
    """Test test paths and metric labels."""

    def test_path_and_full_name(self):
        parent = Test(1, "Speedometer")
        child = Test(2, "Score", parent)
        assert child.path() == [parent, child]
        assert child.path_names() == ["Speedometer", "Score"]
        assert child.full_name() == "Speedometer ∋ Score"

    def test_metric_label(self):
        metric = Metric(300, "Time", Test(200, "some test"))
        assert metric.label() == "some test : Time"


class TestBuildRequest:
    """Test build request status helpers."""

    @pytest.mark.parametrize(
        "status,started,finished",
        [
            (BuildRequestStatus.PENDING, False, False),
            (BuildRequestStatus.SCHEDULED, True, False),
            (BuildRequestStatus.RUNNING, True, False),
            (BuildRequestStatus.COMPLETED, True, True),
            (BuildRequestStatus.FAILED, True, True),
            (BuildRequestStatus.CANCELED, True, True),
        ],
    )
    def test_status_predicates(self, status, started, finished):
        request = make_request(700, 0, status)
        assert request.has_started() is started
        assert request.has_finished() is finished
        assert request.is_pending() is (status == BuildRequestStatus.PENDING)

    def test_status_label(self):
        assert make_request(700, 0).status_label() == "Waiting to be scheduled"
        assert make_request(700, 0, BuildRequestStatus.FAILED).status_label() == "Failed"

    def test_update_from_row(self):
        request = make_request(700, 0)
        request.update_from_row({"status": "running", "url": "http://b/1", "build": 1})
        assert request.status == BuildRequestStatus.RUNNING
        assert request.url == "http://b/1"
        assert request.build == 1


class TestTestGroup:
    """Test test group ordering and exhaustion."""

    def test_requests_sorted_by_order(self):
        group = TestGroup(600, "some test group")
        later = make_request(701, 1, group=group)
        first = make_request(700, 0, group=group)
        group.add_build_request(later)
        group.add_build_request(first)
        group.add_build_request(first)
        assert group.build_requests == [first, later]

    def test_is_exhausted(self):
        group = TestGroup(600, "some test group")
        group.add_build_request(make_request(700, 0, BuildRequestStatus.COMPLETED, group))
        group.add_build_request(make_request(701, 1, BuildRequestStatus.CANCELED, group))
        assert group.is_exhausted()
        group.add_build_request(make_request(702, 2, BuildRequestStatus.SCHEDULED, group))
        assert not group.is_exhausted()


class TestEntityMap:
    """Test the identity map."""

    def test_ensure_builds_once(self):
        entity_map: EntityMap[Repository] = EntityMap()
        first = entity_map.ensure(9, lambda: Repository(9, "OS X"))
        second = entity_map.ensure(9, lambda: Repository(9, "other"))
        assert first is second
        assert second.name == "OS X"

    def test_lookup(self):
        entity_map: EntityMap[Repository] = EntityMap()
        entity_map.ensure(11, lambda: Repository(11, "WebKit"))
        assert entity_map.find_by_id(11).name == "WebKit"
        assert entity_map.find_by_id(None) is None
        assert entity_map.find_by_id(12) is None
        with pytest.raises(KeyError):
            entity_map.get(12)

    def test_missing_and_iteration(self):
        entity_map: EntityMap[Repository] = EntityMap()
        entity_map.ensure(11, lambda: Repository(11, "WebKit"))
        entity_map.ensure(9, lambda: Repository(9, "OS X"))
        assert entity_map.missing([11, 12, None, 12, 3]) == [3, 12]
        assert [r.id for r in entity_map] == [9, 11]
        assert len(entity_map) == 2
        assert 9 in entity_map


class TestModelRegistry:
    """Test the registry and manifest loading."""

    @pytest.mark.asyncio
    async def test_fetch_manifest(self, seeded_store):
        registry = await fetch_manifest(seeded_store, ModelRegistry())
        assert [r.name for r in registry.repositories] == ["OS X", "WebKit"]
        assert registry.platform_by_name("some platform").id == 65
        assert registry.tests.get(200).full_name() == "some test"
        assert registry.metrics.get(300).label() == "some test : some metric"
        assert registry.triggerables.get(1).name == "build-webkit"

    @pytest.mark.asyncio
    async def test_manifest_links_test_parents(self, seeded_store):
        await seeded_store.insert("tests", {"id": 201, "name": "child", "parent": 200})
        registry = await fetch_manifest(seeded_store, ModelRegistry())
        assert registry.tests.get(201).parent is registry.tests.get(200)
        assert registry.tests.get(201).path_names() == ["some test", "child"]

    @pytest.mark.asyncio
    async def test_reset_forgets_entities(self, seeded_store):
        registry = await fetch_manifest(seeded_store, ModelRegistry())
        webkit = registry.repository_by_name("WebKit")
        registry.reset()
        assert registry.repository_by_name("WebKit") is None
        await fetch_manifest(seeded_store, registry)
        assert registry.repository_by_name("WebKit") is not webkit
