"""
Mapping between build requests and buildbot builds.

A ``BuildbotSyncer`` is bound to one builder. It computes the properties
used to trigger a build for a build request, and reads buildbot's JSON
records back into ``BuildbotBuildEntry`` objects. The build request id
travels through buildbot as a custom build property
(``buildRequestArgument``), which is how entries are correlated with
requests.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from perfsync.core.buildbot.client import BuildbotClient
from perfsync.core.buildbot.config import (
    LiteralArgument,
    PropertyArgument,
    RootArgument,
    RootsExcludingArgument,
)
from perfsync.core.exceptions import BuildbotResponseError, RepositoryNotInRootSet
from perfsync.core.models import BuildRequest, RootSet

logger = logging.getLogger(__name__)

BuildRequestKey = int | str


def _coerce_request_id(value: Any) -> BuildRequestKey | None:
    """Build request ids come back from buildbot as strings; use ints where possible."""
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text) if text.isdigit() else text


class BuildbotBuildEntry:
    """
    Snapshot of one buildbot build or pending build.

    Example:
        >>> entry = BuildbotBuildEntry(syncer, {"builderName": "b", "number": 12, ...})
        >>> entry.is_pending(), entry.is_in_progress(), entry.has_finished()
        (False, False, True)
    """

    def __init__(self, syncer: BuildbotSyncer, raw_data: dict[str, Any]) -> None:
        if raw_data.get("builderName") != syncer.builder_name:
            raise BuildbotResponseError(
                f"Build record for {raw_data.get('builderName')!r} "
                f"returned for builder {syncer.builder_name!r}",
                builder=syncer.builder_name,
            )

        self._syncer = syncer
        self._build_number: int | None = raw_data.get("number")
        self._slave_name: str | None = None
        self._build_request_id: BuildRequestKey | None = None

        times = raw_data.get("times")
        self._is_in_progress = bool(raw_data.get("currentStep")) or bool(
            times and times[0] and not (len(times) > 1 and times[1])
        )

        # e.g. ["build_request_id", "16733", "Force Build Form"]
        for property_tuple in raw_data.get("properties") or []:
            name, value = property_tuple[0], property_tuple[1]
            if syncer.slave_argument and name == syncer.slave_argument:
                self._slave_name = value
            elif name == syncer.build_request_argument:
                self._build_request_id = _coerce_request_id(value)

    def __repr__(self) -> str:
        return (
            f"BuildbotBuildEntry(builder={self._syncer.builder_name!r}, "
            f"number={self._build_number!r}, build_request_id={self._build_request_id!r})"
        )

    @property
    def syncer(self) -> BuildbotSyncer:
        return self._syncer

    def build_number(self) -> int | None:
        return self._build_number

    def slave_name(self) -> str | None:
        return self._slave_name

    def build_request_id(self) -> BuildRequestKey | None:
        return self._build_request_id

    def is_pending(self) -> bool:
        return self._build_number is None

    def is_in_progress(self) -> bool:
        return self._is_in_progress

    def has_finished(self) -> bool:
        return not self.is_pending() and not self.is_in_progress()

    def url(self) -> str:
        if self._build_number is None:
            return self._syncer.url()
        return self._syncer.url_for_build_number(self._build_number)


class BuildbotSyncer:
    """
    Syncs build requests with one buildbot builder.

    Instances are built by ``load_syncers`` from a validated configuration
    and never change afterwards.
    """

    def __init__(
        self,
        url: str,
        *,
        builder: str,
        platform: str,
        test_path: list[str],
        properties: dict[str, PropertyArgument],
        build_request_argument: str,
        slave_argument: str | None = None,
    ) -> None:
        self._url = url
        self._builder_name = builder
        self._platform_name = platform
        self._test_path = tuple(test_path)
        self._properties_template = dict(properties)
        self._build_request_argument = build_request_argument
        self._slave_argument = slave_argument

    def __repr__(self) -> str:
        return (
            f"BuildbotSyncer(builder={self._builder_name!r}, platform={self._platform_name!r}, "
            f"test={list(self._test_path)!r})"
        )

    @property
    def builder_name(self) -> str:
        return self._builder_name

    @property
    def platform_name(self) -> str:
        return self._platform_name

    @property
    def test_path(self) -> list[str]:
        return list(self._test_path)

    @property
    def properties_template(self) -> dict[str, PropertyArgument]:
        return dict(self._properties_template)

    @property
    def build_request_argument(self) -> str:
        return self._build_request_argument

    @property
    def slave_argument(self) -> str | None:
        return self._slave_argument

    def url(self) -> str:
        return f"{self._url}/builders/{self._builder_name}/"

    def url_for_build_number(self, number: int) -> str:
        return f"{self._url}/builders/{self._builder_name}/builds/{number}"

    def url_for_pending_builds_json(self) -> str:
        return f"{self._url}/json/builders/{self._builder_name}/pendingBuilds"

    def url_for_build_json(self, selected_builds: list[int]) -> str:
        query = "&".join(f"select={number}" for number in selected_builds)
        return f"{self._url}/json/builders/{self._builder_name}/builds/?{query}"

    def url_for_force_build(self) -> str:
        return f"{self._url}/builders/{self._builder_name}/force"

    def matches(self, request: BuildRequest) -> bool:
        """Whether this syncer runs the request's test on the request's platform."""
        if request.test is None or request.platform.name != self._platform_name:
            return False
        return tuple(request.test.path_names()) == self._test_path

    def properties_for_build_request(self, request: BuildRequest) -> dict[str, Any]:
        """
        Compute the build properties that trigger a build for ``request``.

        Raises:
            RepositoryNotInRootSet: If a ``root`` argument names a repository
                missing from the request's root set
        """
        root_set = request.root_set
        repository_by_name = {repository.name: repository for repository in root_set.repositories()}

        properties: dict[str, Any] = {}
        for name, argument in self._properties_template.items():
            if isinstance(argument, LiteralArgument):
                properties[name] = argument.value
            elif isinstance(argument, RootArgument):
                repository = repository_by_name.get(argument.repository)
                if repository is None:
                    raise RepositoryNotInRootSet(argument.repository, request.id)
                properties[name] = root_set.revision_for_repository(repository)
            elif isinstance(argument, RootsExcludingArgument):
                revision_set = self.revision_set_from_root_set(root_set, argument.excluded)
                properties[name] = json.dumps(revision_set)

        properties[self._build_request_argument] = request.id
        return properties

    @staticmethod
    def revision_set_from_root_set(
        root_set: RootSet, exclusion_list: tuple[str, ...] | list[str]
    ) -> dict[str, dict[str, Any]]:
        """Describe every commit of ``root_set`` whose repository is not excluded."""
        revision_set: dict[str, dict[str, Any]] = {}
        for commit in root_set.commits:
            name = commit.repository.name
            if name in exclusion_list:
                continue
            revision_set[name] = {
                "id": commit.id,
                "time": commit.time_in_milliseconds(),
                "repository": name,
                "revision": commit.revision,
            }
        return revision_set

    async def pull_buildbot(
        self, client: BuildbotClient, count: int
    ) -> dict[BuildRequestKey, BuildbotBuildEntry]:
        """
        Fetch pending builds and the ``count`` most recent builds.

        Entries are keyed by build request id. Pending builds are inserted
        first, so a recent build for the same request replaces its pending
        entry. Entries carrying no build request id are skipped.
        """
        content = await client.get_json(self.url_for_pending_builds_json())
        pending_entries = [BuildbotBuildEntry(self, raw) for raw in content or []]
        recent_entries = await self._pull_recent_builds(client, count)

        entry_by_request: dict[BuildRequestKey, BuildbotBuildEntry] = {}
        for entry in [*pending_entries, *recent_entries]:
            request_id = entry.build_request_id()
            if request_id is None:
                logger.debug("Ignoring %r without a build request id", entry)
                continue
            entry_by_request[request_id] = entry

        logger.debug(
            "%s: %d pending, %d recent builds, %d correlated",
            self._builder_name,
            len(pending_entries),
            len(recent_entries),
            len(entry_by_request),
        )
        return entry_by_request

    async def _pull_recent_builds(
        self, client: BuildbotClient, count: int
    ) -> list[BuildbotBuildEntry]:
        if not count:
            return []

        selected_builds = [-i - 1 for i in range(count)]
        content = await client.get_json(self.url_for_build_json(selected_builds)) or {}

        entries = []
        for index in selected_builds:
            raw = content.get(str(index))
            if raw and not raw.get("error"):
                entries.append(BuildbotBuildEntry(self, raw))
        return entries

    async def schedule_request(self, client: BuildbotClient, request: BuildRequest) -> None:
        """
        Trigger a build of ``request`` on this builder.

        Raises:
            RepositoryNotInRootSet: If the request's root set lacks a required repository
            httpx.HTTPError: If buildbot rejects the request
        """
        properties = self.properties_for_build_request(request)
        await client.post_form(self.url_for_force_build(), properties)
        logger.info("Scheduled build request %s on %s", request.id, self._builder_name)
