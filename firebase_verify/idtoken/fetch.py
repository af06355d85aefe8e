"""
Fetch capability for the public-key endpoints.

The key cache only needs one thing from the network: "give me the bytes at
this URI and tell me how long I may keep them". ``KeySource`` is that
capability; ``HttpKeySource`` is the production implementation over httpx,
and tests supply in-memory stubs with the same ``fetch`` method.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

_DIRECTIVE_RE = re.compile(r"^\s*([A-Za-z-]+)\s*(?:=\s*\"?(\d+)\"?)?\s*$")


class FetchError(Exception):
    """Raised when a resource could not be fetched."""


class TransportError(FetchError):
    """Connection, TLS, or timeout failure."""


class BadHttpStatus(FetchError):
    """The endpoint answered with a non-success status code."""

    def __init__(self, status_code: int, uri: str) -> None:
        super().__init__(f"Unexpected HTTP status {status_code} from {uri}")
        self.status_code = status_code
        self.uri = uri


@dataclass(frozen=True)
class Resource:
    data: bytes
    max_age: float
    """Seconds the data may be cached; 0 means refetch on next use."""


class KeySource(Protocol):
    async def fetch(self, uri: str) -> Resource: ...


def cache_lifetime(cache_control: str | None) -> float:
    """
    Return the cache lifetime in seconds from a ``Cache-Control`` value.

    ``s-maxage`` wins over ``max-age``. Missing or unparsable values give 0.
    """
    if not cache_control:
        return 0.0
    directives: dict[str, int] = {}
    for part in cache_control.split(","):
        match = _DIRECTIVE_RE.match(part)
        if match and match.group(2) is not None:
            directives[match.group(1).lower()] = int(match.group(2))
    if "s-maxage" in directives:
        return float(directives["s-maxage"])
    return float(directives.get("max-age", 0))


class HttpKeySource:
    """
    ``KeySource`` over ``httpx.AsyncClient``.

    Pass ``client`` to share a connection pool; otherwise one is created and
    closed by ``aclose()`` (or by ``async with``).
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def fetch(self, uri: str) -> Resource:
        try:
            resp = await self._client.get(uri)
        except httpx.HTTPError as e:
            logger.warning("Key fetch failed uri=%s error=%s", uri, type(e).__name__)
            raise TransportError(f"Failed to fetch {uri}") from e

        if not resp.is_success:
            logger.warning("Key fetch returned status=%s uri=%s", resp.status_code, uri)
            raise BadHttpStatus(resp.status_code, uri)

        max_age = cache_lifetime(resp.headers.get("cache-control"))
        return Resource(data=resp.content, max_age=max_age)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpKeySource:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
