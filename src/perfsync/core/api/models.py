"""
Pydantic models for API responses and their construction from build requests.

Two serialization modes are supported:
- direct ids (default): platform, test and repository are sent as id strings
- legacy id resolution: they are sent as names (the test as its name path)
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from perfsync.core.models import BuildRequest, Commit, RootSet


class ApiStatus(str, Enum):
    """Values of the ``status`` field of API responses."""

    OK = "OK"
    TRIGGERABLE_NOT_FOUND = "TriggerableNotFound"
    INVALID_REQUEST = "InvalidRequest"
    NOT_FOUND = "NotFound"
    INTERNAL_ERROR = "InternalError"


class RootPayload(BaseModel):
    """One commit of a root set."""

    id: int = Field(..., description="Commit id")
    repository: str = Field(..., description="Repository id or name")
    revision: str = Field(..., description="Revision string")


class RootSetPayload(BaseModel):
    """A root set as the ids of its commits."""

    id: int = Field(..., description="Root set id")
    roots: list[str] = Field(default_factory=list, description="Commit ids, as strings")


class BuildRequestPayload(BaseModel):
    """A build request."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    order: int
    platform: str = Field(..., description="Platform id or name")
    root_set: int = Field(..., alias="rootSet")
    status: str
    test: str | list[str] | None = Field(
        default=None, description="Test id, or the test name path in legacy mode"
    )


class BuildRequestsResponse(BaseModel):
    """Response of GET /api/build-requests/{triggerable}."""

    model_config = ConfigDict(populate_by_name=True)

    status: ApiStatus = ApiStatus.OK
    build_requests: list[BuildRequestPayload] = Field(
        default_factory=list, alias="buildRequests"
    )
    root_sets: list[RootSetPayload] = Field(default_factory=list, alias="rootSets")
    roots: list[RootPayload] = Field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _root_payload(commit: Commit, use_legacy_id_resolution: bool) -> RootPayload:
    repository = commit.repository
    return RootPayload(
        id=commit.id,
        repository=repository.name if use_legacy_id_resolution else str(repository.id),
        revision=commit.revision,
    )


def _build_request_payload(
    request: BuildRequest, use_legacy_id_resolution: bool
) -> BuildRequestPayload:
    test: str | list[str] | None = None
    if request.test is not None:
        test = request.test.path_names() if use_legacy_id_resolution else str(request.test.id)
    return BuildRequestPayload(
        id=request.id,
        order=request.order,
        platform=request.platform.name if use_legacy_id_resolution else str(request.platform.id),
        root_set=request.root_set.id,
        status=request.status.value,
        test=test,
    )


def build_requests_response(
    requests: list[BuildRequest], use_legacy_id_resolution: bool = False
) -> BuildRequestsResponse:
    """
    Serialize build requests with their root sets and roots.

    Build requests keep the order given. Root sets and roots are
    deduplicated and sorted by id.

    Example:
        >>> response = build_requests_response(requests)
        >>> response.to_json()["rootSets"][0]
        {'id': 401, 'roots': ['87832', '93116']}
    """
    root_sets: dict[int, RootSet] = {}
    commits: dict[int, Commit] = {}
    for request in requests:
        root_sets[request.root_set.id] = request.root_set
        for commit in request.root_set.commits:
            commits[commit.id] = commit

    return BuildRequestsResponse(
        status=ApiStatus.OK,
        build_requests=[_build_request_payload(r, use_legacy_id_resolution) for r in requests],
        root_sets=[
            RootSetPayload(id=root_set.id, roots=[str(c.id) for c in root_set.commits])
            for _, root_set in sorted(root_sets.items())
        ],
        roots=[
            _root_payload(commit, use_legacy_id_resolution)
            for _, commit in sorted(commits.items())
        ],
    )
