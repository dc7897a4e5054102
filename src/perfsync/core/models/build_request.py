"""
Build request model.

A build request pairs a test and a platform with a root set. Requests of
one test group are executed in ``order``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from perfsync.core.models.entities import Platform, RootSet, Test, TestGroup, Triggerable


class BuildRequestStatus(str, Enum):
    """Lifecycle of a build request."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


FINISHED_STATUSES = frozenset(
    {BuildRequestStatus.COMPLETED, BuildRequestStatus.FAILED, BuildRequestStatus.CANCELED}
)

STATUS_LABELS = {
    BuildRequestStatus.PENDING: "Waiting to be scheduled",
    BuildRequestStatus.SCHEDULED: "Scheduled",
    BuildRequestStatus.RUNNING: "Running",
    BuildRequestStatus.COMPLETED: "Completed",
    BuildRequestStatus.FAILED: "Failed",
    BuildRequestStatus.CANCELED: "Canceled",
}


def is_finished_status(status: str | BuildRequestStatus) -> bool:
    return BuildRequestStatus(status) in FINISHED_STATUSES


@dataclass(eq=False)
class BuildRequest:
    """
    One unit of work in a test group.

    Example:
        >>> request.status
        <BuildRequestStatus.SCHEDULED: 'scheduled'>
        >>> request.has_started(), request.has_finished()
        (True, False)
    """

    id: int
    triggerable: Triggerable
    test_group: TestGroup
    platform: Platform
    test: Test | None
    root_set: RootSet
    order: int
    status: BuildRequestStatus = BuildRequestStatus.PENDING
    url: str | None = None
    build: int | None = None

    @property
    def test_group_id(self) -> int:
        return self.test_group.id

    def update_from_row(self, row: dict[str, Any]) -> None:
        """Refresh the mutable fields from a newer store row."""
        self.status = BuildRequestStatus(row["status"])
        self.url = row.get("url")
        self.build = row.get("build")

    def is_pending(self) -> bool:
        return self.status == BuildRequestStatus.PENDING

    def has_started(self) -> bool:
        return self.status != BuildRequestStatus.PENDING

    def has_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    def status_label(self) -> str:
        return STATUS_LABELS[self.status]
