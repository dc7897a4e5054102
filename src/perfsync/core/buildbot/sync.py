"""
One synchronization pass between a triggerable and buildbot.

Flow:
1. Fetch the triggerable's build requests (non-exhausted test groups only)
2. Pull pending and recent builds from every syncer concurrently
3. Correlate buildbot entries with build requests by build request id and
   record what buildbot reports in the store (scheduled, running, failed)
4. For each test group with nothing in flight, schedule its next pending
   request on the first matching, idle syncer and mark it scheduled

Requests that cannot be triggered are reported as errors; the pass carries
on with the other test groups.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from itertools import groupby

from pydantic import BaseModel, Field

from perfsync.core.buildbot.client import BuildbotClient
from perfsync.core.buildbot.syncer import BuildbotBuildEntry, BuildbotSyncer, BuildRequestKey
from perfsync.core.exceptions import RepositoryNotInRootSet
from perfsync.core.models import (
    BuildRequest,
    BuildRequestStatus,
    ModelRegistry,
    fetch_for_triggerable,
)
from perfsync.core.store import Store

logger = logging.getLogger(__name__)


def entry_state(entry: BuildbotBuildEntry) -> str:
    if entry.is_pending():
        return "pending"
    if entry.is_in_progress():
        return "in_progress"
    return "finished"


def status_from_entry(
    request: BuildRequest, entry: BuildbotBuildEntry
) -> BuildRequestStatus | None:
    """
    Status a build request should move to given its buildbot entry.

    A build that finished without its request having completed counts as
    failed. Returns None when the stored status is already right.
    """
    if request.has_finished():
        return None
    if entry.is_pending():
        return BuildRequestStatus.SCHEDULED if request.is_pending() else None
    if entry.is_in_progress():
        if request.status == BuildRequestStatus.RUNNING:
            return None
        return BuildRequestStatus.RUNNING
    return BuildRequestStatus.FAILED


def next_request_to_schedule(
    group_requests: list[BuildRequest],
    entry_by_request: dict[BuildRequestKey, BuildbotBuildEntry],
) -> BuildRequest | None:
    """
    First pending request of a group that was never handed to buildbot.

    Requests run in order, so anything before the last started or
    correlated request has already been dispatched.
    """
    candidates = group_requests
    for index, request in enumerate(group_requests):
        if request.has_started() or request.id in entry_by_request:
            candidates = group_requests[index + 1 :]
    return next(
        (r for r in candidates if r.is_pending() and r.id not in entry_by_request),
        None,
    )


class SyncReport(BaseModel):
    """Result of a sync pass.

    Example:
        >>> report = SyncReport(triggerable="build-webkit", build_requests=4, scheduled=[700])
        >>> report.success
        True
    """

    triggerable: str = Field(..., description="Triggerable that was synced")
    build_requests: int = Field(default=0, ge=0, description="Build requests considered")
    correlated: dict[int, str] = Field(
        default_factory=dict, description="Build request id -> buildbot entry state"
    )
    updated: dict[int, str] = Field(
        default_factory=dict, description="Build request id -> status written to the store"
    )
    scheduled: list[int] = Field(default_factory=list, description="Build requests triggered")
    errors: list[str] = Field(default_factory=list, description="Error messages")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Sync duration")

    @property
    def success(self) -> bool:
        return not self.errors


class BuildbotTriggerable:
    """
    Keeps one triggerable's build requests moving through buildbot.

    Example:
        >>> async with BuildbotClient() as client:
        ...     triggerable = BuildbotTriggerable(store, syncers, "build-webkit", client)
        ...     report = await triggerable.sync_once()
    """

    def __init__(
        self,
        store: Store,
        syncers: Sequence[BuildbotSyncer],
        triggerable_name: str,
        client: BuildbotClient,
        recent_build_count: int = 10,
    ) -> None:
        self.store = store
        self.syncers = list(syncers)
        self.triggerable_name = triggerable_name
        self.client = client
        self.recent_build_count = recent_build_count

    async def pull_all(self) -> list[dict[BuildRequestKey, BuildbotBuildEntry]]:
        """Pull every syncer; one mapping per syncer, in syncer order."""
        pulls = [
            syncer.pull_buildbot(self.client, self.recent_build_count) for syncer in self.syncers
        ]
        return list(await asyncio.gather(*pulls))

    def _find_idle_syncer(
        self,
        request: BuildRequest,
        entries_by_syncer: list[dict[BuildRequestKey, BuildbotBuildEntry]],
        busy: set[int],
    ) -> BuildbotSyncer | None:
        for index, syncer in enumerate(self.syncers):
            if index in busy or not syncer.matches(request):
                continue
            if any(entry.is_pending() for entry in entries_by_syncer[index].values()):
                continue
            return syncer
        return None

    async def _set_status(
        self, request: BuildRequest, status: BuildRequestStatus, report: SyncReport
    ) -> None:
        await self.store.update("build_requests", {"status": status.value}, {"id": request.id})
        request.status = status
        report.updated[request.id] = status.value
        logger.debug("Build request %s is now %s", request.id, status.value)

    async def sync_once(self) -> SyncReport:
        """
        Run one synchronization pass.

        Raises:
            TriggerableNotFound: If the triggerable doesn't exist
            httpx.HTTPError: If buildbot can't be reached
        """
        start = time.monotonic()
        registry = ModelRegistry()
        requests = await fetch_for_triggerable(self.store, registry, self.triggerable_name)
        report = SyncReport(triggerable=self.triggerable_name, build_requests=len(requests))

        entries_by_syncer = await self.pull_all()
        entry_by_request: dict[BuildRequestKey, BuildbotBuildEntry] = {}
        for entries in entries_by_syncer:
            entry_by_request.update(entries)

        for request in requests:
            entry = entry_by_request.get(request.id)
            if entry is None:
                continue
            report.correlated[request.id] = entry_state(entry)
            status = status_from_entry(request, entry)
            if status is not None:
                await self._set_status(request, status, report)

        busy: set[int] = set()
        for group_id, group in groupby(requests, key=lambda r: r.test_group.id):
            group_requests = list(group)
            in_flight = any(
                (r.has_started() and not r.has_finished())
                or (r.id in entry_by_request and not entry_by_request[r.id].has_finished())
                for r in group_requests
            )
            if in_flight:
                continue

            next_request = next_request_to_schedule(group_requests, entry_by_request)
            if next_request is None:
                continue

            syncer = self._find_idle_syncer(next_request, entries_by_syncer, busy)
            if syncer is None:
                logger.debug("No idle syncer for build request %s", next_request.id)
                if not any(s.matches(next_request) for s in self.syncers):
                    report.errors.append(
                        f"No syncer for build request {next_request.id} in test group {group_id}"
                    )
                continue

            try:
                await syncer.schedule_request(self.client, next_request)
            except RepositoryNotInRootSet as e:
                logger.error("Cannot trigger build request %s: %s", next_request.id, e)
                report.errors.append(str(e))
                continue

            busy.add(self.syncers.index(syncer))
            report.scheduled.append(next_request.id)
            await self._set_status(next_request, BuildRequestStatus.SCHEDULED, report)

        report.duration_seconds = time.monotonic() - start
        logger.info(
            "Synced %s: %d requests, %d correlated, %d scheduled, %d errors",
            self.triggerable_name,
            report.build_requests,
            len(report.correlated),
            len(report.scheduled),
            len(report.errors),
        )
        return report
