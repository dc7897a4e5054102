"""
Tests for build-request aggregation.

Covers the build-webkit scenarios: pending, completed, mixed and
failed/canceled groups, two groups, and identity of shared commits.
"""

import pytest

from perfsync.core.exceptions import TriggerableNotFound
from perfsync.core.models import (
    BuildRequestStatus,
    ModelRegistry,
    exclude_exhausted_groups,
    fetch_for_triggerable,
)
from perfsync.core.store import Store, get_connection


def fetch(db_path, registry=None):
    return fetch_for_triggerable(Store(db_path), registry or ModelRegistry(), "build-webkit")


class TestExcludeExhaustedGroups:
    """Test the row-level group filter."""

    def test_keeps_every_row_of_active_groups(self):
        rows = [
            {"id": 1, "group": 10, "status": "completed"},
            {"id": 2, "group": 10, "status": "pending"},
            {"id": 3, "group": 11, "status": "failed"},
            {"id": 4, "group": 11, "status": "canceled"},
        ]
        assert [row["id"] for row in exclude_exhausted_groups(rows)] == [1, 2]

    def test_empty(self):
        assert exclude_exhausted_groups([]) == []


class TestFetchForTriggerable:
    """Test fetch_for_triggerable against the seeded store."""

    @pytest.mark.asyncio
    async def test_unknown_triggerable(self, store):
        with pytest.raises(TriggerableNotFound):
            await fetch_for_triggerable(store, ModelRegistry(), "build-webkit")

    @pytest.mark.asyncio
    async def test_no_build_requests(self, store):
        await store.insert("build_triggerables", {"id": 1, "name": "build-webkit"})
        assert await fetch_for_triggerable(store, ModelRegistry(), "build-webkit") == []

    @pytest.mark.asyncio
    async def test_four_pending_requests(self, seeded_db):
        requests = await fetch(seeded_db())

        assert [r.id for r in requests] == [700, 701, 702, 703]
        assert [r.order for r in requests] == [0, 1, 2, 3]
        assert [r.root_set.id for r in requests] == [401, 402, 401, 402]
        assert all(r.status == BuildRequestStatus.PENDING for r in requests)
        assert all(r.test_group_id == 600 for r in requests)
        assert requests[0].platform.name == "some platform"
        assert requests[0].test.name == "some test"
        assert requests[0].triggerable.name == "build-webkit"
        assert requests[0].test_group.task.name == "some task"

        first, second = requests[0].root_set, requests[1].root_set
        assert [c.id for c in first.commits] == [87832, 93116]
        assert [c.id for c in second.commits] == [87832, 96336]
        assert [c.revision for c in first.commits] == ["10.11 15A284", "191622"]
        assert first.commits[1].time_in_milliseconds() == 1445945816878
        assert second.commits[1].time_in_milliseconds() == 1448225325650

    @pytest.mark.asyncio
    async def test_all_completed_is_empty(self, seeded_db):
        db_path = seeded_db(["completed", "completed", "completed", "completed"])
        assert await fetch(db_path) == []

    @pytest.mark.asyncio
    async def test_all_failed_or_canceled_is_empty(self, seeded_db):
        db_path = seeded_db(["failed", "canceled", "completed", "canceled"])
        assert await fetch(db_path) == []

    @pytest.mark.asyncio
    async def test_mixed_statuses_keep_whole_group(self, seeded_db):
        requests = await fetch(seeded_db(["completed", "completed", "scheduled", "pending"]))

        assert [r.id for r in requests] == [700, 701, 702, 703]
        assert requests[0].has_finished()
        assert requests[1].has_finished()
        assert requests[2].has_started()
        assert not requests[2].has_finished()
        assert not requests[3].has_started()
        assert not requests[3].has_finished()

    @pytest.mark.asyncio
    async def test_running_request_keeps_group(self, seeded_db):
        requests = await fetch(seeded_db(["completed", "running", "pending", "pending"]))
        assert [r.status.value for r in requests] == ["completed", "running", "pending", "pending"]

    @pytest.mark.asyncio
    async def test_two_groups_are_contiguous(self, seeded_db):
        requests = await fetch(seeded_db(with_group_599=True))

        assert len(requests) == 8
        assert [r.test_group_id for r in requests] == [599] * 4 + [600] * 4
        assert [r.id for r in requests[:4]] == [710, 711, 712, 713]
        assert [r.order for r in requests[:4]] == [0, 1, 2, 3]
        assert [r.id for r in requests[4:]] == [700, 701, 702, 703]

    @pytest.mark.asyncio
    async def test_group_requests_registered(self, seeded_db):
        registry = ModelRegistry()
        requests = await fetch(seeded_db(), registry)
        group = registry.test_groups.get(600)
        assert group.build_requests == requests

    @pytest.mark.asyncio
    async def test_shared_commits_are_identical(self, seeded_db):
        registry = ModelRegistry()
        requests = await fetch(seeded_db(), registry)

        first, second = requests[0].root_set, requests[1].root_set
        osx = registry.repository_by_name("OS X")
        assert first.commit_for_repository(osx) is second.commit_for_repository(osx)
        assert first.commits[0] is registry.commits.get(87832)
        assert first.commits[1].repository is second.commits[1].repository

    @pytest.mark.asyncio
    async def test_refetch_rebuilds_group_requests(self, seeded_db):
        db_path = seeded_db()
        registry = ModelRegistry()
        await fetch(db_path, registry)

        with get_connection(db_path) as conn:
            conn.execute("DELETE FROM build_requests WHERE id = 703")
        after = await fetch(db_path, registry)

        group = registry.test_groups.get(600)
        assert [r.id for r in after] == [700, 701, 702]
        assert group.build_requests == after

    @pytest.mark.asyncio
    async def test_refetch_marks_group_exhausted(self, seeded_db):
        db_path = seeded_db()
        registry = ModelRegistry()
        before = await fetch(db_path, registry)

        with get_connection(db_path) as conn:
            conn.execute("UPDATE build_requests SET status = 'completed' WHERE \"group\" = 600")
        after = await fetch(db_path, registry)

        group = registry.test_groups.get(600)
        assert after == []
        assert group.build_requests == before
        assert group.is_exhausted()

    @pytest.mark.asyncio
    async def test_refetch_reuses_and_updates_entities(self, seeded_db):
        db_path = seeded_db()
        registry = ModelRegistry()
        before = await fetch(db_path, registry)

        with get_connection(db_path) as conn:
            conn.execute("UPDATE build_requests SET status = 'scheduled' WHERE id = 700")
        after = await fetch(db_path, registry)

        assert after[0] is before[0]
        assert after[0].status == BuildRequestStatus.SCHEDULED
        assert after[0].root_set is before[0].root_set
        assert len(after[0].root_set.commits) == 2

