"""
Async HTTP client for buildbot's JSON API.

Wraps ``httpx.AsyncClient`` with the two calls the syncer needs: fetching
JSON and posting a form. Errors are not retried; ``httpx.HTTPError`` and
``BuildbotResponseError`` propagate to the caller.

Usage:
    async with BuildbotClient(timeout=30.0) as client:
        pending = await client.get_json("http://build.webkit.org/json/builders/b/pendingBuilds")
"""

from __future__ import annotations

import json
import logging
from types import TracebackType
from typing import Any

import httpx

from perfsync.core.exceptions import BuildbotResponseError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class BuildbotClient:
    """
    Thin async JSON client for buildbot.

    Example:
        >>> async with BuildbotClient() as client:
        ...     builds = await client.get_json(syncer.url_for_build_json([-1, -2]))
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            timeout: Request timeout in seconds
            transport: Optional transport (used by tests to stub buildbot)
        """
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> BuildbotClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_json(self, url: str) -> Any:
        """
        GET ``url`` and decode the JSON body.

        Raises:
            httpx.HTTPStatusError: On a non-2xx response
            BuildbotResponseError: If the body is not JSON
        """
        logger.debug("GET %s", url)
        response = await self._client.get(url)
        response.raise_for_status()
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise BuildbotResponseError(f"Invalid JSON from {url}: {e}", url=url) from e

    async def post_form(self, url: str, data: dict[str, Any]) -> httpx.Response:
        """
        POST ``data`` form-encoded to ``url``.

        Raises:
            httpx.HTTPStatusError: On a non-2xx response
        """
        logger.debug("POST %s %s", url, data)
        response = await self._client.post(url, data={k: str(v) for k, v in data.items()})
        response.raise_for_status()
        return response
