"""
Tests for BuildbotSyncer, BuildbotBuildEntry and BuildbotClient.

Buildbot is stubbed with AsyncMock clients, or with httpx.MockTransport
for the client itself.
"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from perfsync.core.buildbot import (
    BuildbotBuildEntry,
    BuildbotClient,
    BuildbotSyncer,
    LiteralArgument,
    RootArgument,
    RootsExcludingArgument,
)
from perfsync.core.exceptions import BuildbotResponseError, RepositoryNotInRootSet
from perfsync.core.models import (
    BuildRequest,
    Commit,
    Platform,
    Repository,
    RootSet,
    Test,
    TestGroup,
    Triggerable,
)
from perfsync.core.models.entities import parse_timestamp

BASE_URL = "http://build.webkit.org"
PENDING_URL = f"{BASE_URL}/json/builders/some-builder/pendingBuilds"


def make_syncer(**overrides) -> BuildbotSyncer:
    options = {
        "builder": "some-builder",
        "platform": "some platform",
        "test_path": ["some test"],
        "properties": {
            "os": RootArgument("OS X"),
            "webkit": RootArgument("WebKit"),
            "test_name": LiteralArgument("some-test"),
        },
        "build_request_argument": "build_request_id",
        "slave_argument": "slavename",
    }
    options.update(overrides)
    return BuildbotSyncer(BASE_URL, **options)


@pytest.fixture
def request_700() -> BuildRequest:
    """Build request 700 on root set 401 (OS X 10.11 15A284, WebKit 191622)."""
    osx = Repository(9, "OS X")
    webkit = Repository(11, "WebKit")
    root_set = RootSet(401)
    root_set.add_commit(Commit(87832, osx, "10.11 15A284"))
    root_set.add_commit(
        Commit(93116, webkit, "191622", parse_timestamp("2015-10-27T11:36:56.878Z"))
    )
    return BuildRequest(
        id=700,
        triggerable=Triggerable(1, "build-webkit"),
        test_group=TestGroup(600, "some test group"),
        platform=Platform(65, "some platform"),
        test=Test(200, "some test"),
        root_set=root_set,
        order=0,
    )


def mock_client(pending=None, builds=None) -> AsyncMock:
    """Client whose get_json answers the pending and recent build URLs."""
    client = AsyncMock(spec=BuildbotClient)

    async def get_json(url):
        if url == PENDING_URL:
            return pending or []
        return builds or {}

    client.get_json.side_effect = get_json
    return client


class TestBuildbotBuildEntry:
    """Test interpretation of buildbot records."""

    def test_pending_build(self, build_record):
        entry = BuildbotBuildEntry(make_syncer(), build_record(request_id="16733"))

        assert entry.is_pending()
        assert not entry.is_in_progress()
        assert not entry.has_finished()
        assert entry.build_number() is None
        assert entry.build_request_id() == 16733
        assert entry.url() == f"{BASE_URL}/builders/some-builder/"

    def test_in_progress_by_current_step(self, build_record):
        record = build_record(number=614, request_id=700, current_step={"name": "compile"})
        entry = BuildbotBuildEntry(make_syncer(), record)

        assert not entry.is_pending()
        assert entry.is_in_progress()
        assert not entry.has_finished()
        assert entry.url() == f"{BASE_URL}/builders/some-builder/builds/614"

    def test_in_progress_by_times(self, build_record):
        record = build_record(number=614, request_id=700, times=[1458704983.0, None])
        assert BuildbotBuildEntry(make_syncer(), record).is_in_progress()

    def test_finished(self, build_record):
        record = build_record(
            number=614, request_id=700, slave="ABTest-iPad-0", times=[1458704983.0, 1458705000.0]
        )
        entry = BuildbotBuildEntry(make_syncer(), record)

        assert entry.has_finished()
        assert entry.slave_name() == "ABTest-iPad-0"

    def test_build_number_zero_is_not_pending(self, build_record):
        entry = BuildbotBuildEntry(make_syncer(), build_record(number=0, request_id=700))
        assert not entry.is_pending()
        assert entry.has_finished()

    def test_non_numeric_request_id_kept_as_string(self, build_record):
        entry = BuildbotBuildEntry(make_syncer(), build_record(request_id="abc"))
        assert entry.build_request_id() == "abc"

    def test_missing_request_id(self, build_record):
        entry = BuildbotBuildEntry(make_syncer(), build_record())
        assert entry.build_request_id() is None

    def test_slave_ignored_without_slave_argument(self, build_record):
        syncer = make_syncer(slave_argument=None)
        entry = BuildbotBuildEntry(syncer, build_record(slave="ABTest-iPad-0"))
        assert entry.slave_name() is None

    def test_builder_mismatch(self, build_record):
        with pytest.raises(BuildbotResponseError):
            BuildbotBuildEntry(make_syncer(), build_record("other-builder"))


class TestBuildbotSyncerUrls:
    """Test URL construction."""

    def test_urls(self):
        syncer = make_syncer()
        assert syncer.url() == f"{BASE_URL}/builders/some-builder/"
        assert syncer.url_for_build_number(12) == f"{BASE_URL}/builders/some-builder/builds/12"
        assert syncer.url_for_pending_builds_json() == PENDING_URL
        assert (
            syncer.url_for_build_json([-1, -2])
            == f"{BASE_URL}/json/builders/some-builder/builds/?select=-1&select=-2"
        )
        assert syncer.url_for_force_build() == f"{BASE_URL}/builders/some-builder/force"


class TestPropertiesForBuildRequest:
    """Test build property computation."""

    def test_roots_and_literals(self, request_700):
        properties = make_syncer().properties_for_build_request(request_700)
        assert properties == {
            "os": "10.11 15A284",
            "webkit": "191622",
            "test_name": "some-test",
            "build_request_id": 700,
        }

    def test_missing_root_repository(self, request_700):
        syncer = make_syncer(properties={"ios": RootArgument("iOS")})
        with pytest.raises(RepositoryNotInRootSet) as exc_info:
            syncer.properties_for_build_request(request_700)
        assert exc_info.value.repository_name == "iOS"
        assert exc_info.value.build_request_id == 700

    def test_roots_excluding(self, request_700):
        syncer = make_syncer(properties={"roots": RootsExcludingArgument(("OS X",))})
        properties = syncer.properties_for_build_request(request_700)
        assert json.loads(properties["roots"]) == {
            "WebKit": {
                "id": 93116,
                "time": 1445945816878,
                "repository": "WebKit",
                "revision": "191622",
            }
        }
        assert properties["build_request_id"] == 700

    def test_revision_set_without_time(self, request_700):
        revision_set = BuildbotSyncer.revision_set_from_root_set(request_700.root_set, [])
        assert revision_set["OS X"] == {
            "id": 87832,
            "time": None,
            "repository": "OS X",
            "revision": "10.11 15A284",
        }
        assert list(revision_set) == ["OS X", "WebKit"]

    def test_matches(self, request_700):
        assert make_syncer().matches(request_700)
        assert not make_syncer(platform="other platform").matches(request_700)
        assert not make_syncer(test_path=["other test"]).matches(request_700)


class TestPullBuildbot:
    """Test fetching pending and recent builds."""

    @pytest.mark.asyncio
    async def test_pending_then_recent(self, build_record):
        client = mock_client(
            pending=[build_record(request_id="702"), build_record()],
            builds={
                "-1": build_record(number=615, request_id="701", current_step={}),
                "-2": build_record(number=614, request_id="700", times=[1.0, 2.0]),
            },
        )

        entries = await make_syncer().pull_buildbot(client, 2)

        assert sorted(entries) == [700, 701, 702]
        assert entries[702].is_pending()
        assert entries[701].build_number() == 615
        assert entries[700].has_finished()
        urls = [call.args[0] for call in client.get_json.await_args_list]
        assert urls == [
            PENDING_URL,
            f"{BASE_URL}/json/builders/some-builder/builds/?select=-1&select=-2",
        ]

    @pytest.mark.asyncio
    async def test_recent_build_replaces_pending_entry(self, build_record):
        client = mock_client(
            pending=[build_record(request_id="700")],
            builds={"-1": build_record(number=615, request_id="700", times=[1.0, None])},
        )

        entries = await make_syncer().pull_buildbot(client, 1)

        assert entries[700].is_in_progress()

    @pytest.mark.asyncio
    async def test_error_entries_are_dropped(self, build_record):
        client = mock_client(
            builds={
                "-1": {"error": "Not available"},
                "-2": build_record(number=614, request_id="700"),
            }
        )

        entries = await make_syncer().pull_buildbot(client, 3)

        assert list(entries) == [700]

    @pytest.mark.asyncio
    async def test_zero_count_skips_recent_builds(self):
        client = mock_client()

        assert await make_syncer().pull_buildbot(client, 0) == {}
        client.get_json.assert_awaited_once_with(PENDING_URL)


class TestScheduleRequest:
    """Test triggering builds."""

    @pytest.mark.asyncio
    async def test_posts_properties(self, request_700):
        client = AsyncMock(spec=BuildbotClient)

        await make_syncer().schedule_request(client, request_700)

        client.post_form.assert_awaited_once_with(
            f"{BASE_URL}/builders/some-builder/force",
            {
                "os": "10.11 15A284",
                "webkit": "191622",
                "test_name": "some-test",
                "build_request_id": 700,
            },
        )

    @pytest.mark.asyncio
    async def test_missing_root_posts_nothing(self, request_700):
        client = AsyncMock(spec=BuildbotClient)
        syncer = make_syncer(properties={"ios": RootArgument("iOS")})

        with pytest.raises(RepositoryNotInRootSet):
            await syncer.schedule_request(client, request_700)
        client.post_form.assert_not_awaited()


class TestBuildbotClient:
    """Test the httpx-based client."""

    @pytest.mark.asyncio
    async def test_get_json(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[{"a": 1}]))
        async with BuildbotClient(transport=transport) as client:
            assert await client.get_json(PENDING_URL) == [{"a": 1}]

    @pytest.mark.asyncio
    async def test_get_json_invalid_body(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        async with BuildbotClient(transport=transport) as client:
            with pytest.raises(BuildbotResponseError):
                await client.get_json(PENDING_URL)

    @pytest.mark.asyncio
    async def test_get_json_http_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with BuildbotClient(transport=transport) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.get_json(PENDING_URL)

    @pytest.mark.asyncio
    async def test_post_form_stringifies_values(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = request.content.decode()
            return httpx.Response(200)

        async with BuildbotClient(transport=httpx.MockTransport(handler)) as client:
            await client.post_form(
                f"{BASE_URL}/builders/some-builder/force", {"build_request_id": 700}
            )

        assert seen == {"method": "POST", "body": "build_request_id=700"}
