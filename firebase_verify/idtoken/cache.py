"""
Self-refreshing cache for a remote resource (the public signing keys).

Background for newcomers:
    The identity platform rotates its signing keys and says how long the
    current set may be cached through the ``Cache-Control`` header. Every
    verifier in the process shares one ``HttpCache``; it refetches lazily when
    the lifetime has passed.

    Many requests can hit an expired entry at the same moment. Only one of
    them fetches: the others wait on the refresh lock, then find the entry
    already refreshed and reuse it (single-flight).

Locking:
    * Content access needs no lock. The entry is an immutable object whose
      reference is swapped in one assignment, so a reader's snapshot is never
      torn and readers never wait on each other or on a refresh.
    * ``_refresh_lock`` (``asyncio.Lock``) serializes refreshers only.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from .fetch import KeySource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheError(Exception):
    """Raised when the cached resource could not be fetched or parsed."""


class InitFetchError(CacheError):
    """Raised when the initial fetch at construction time fails."""


@dataclass(frozen=True)
class _CacheEntry(Generic[T]):
    expires_at: float
    content: T


class HttpCache(Generic[T]):
    """
    TTL-bounded cache of one remote resource.

    Build with ``await HttpCache.create(...)``; there is no empty state, the
    first fetch must succeed.

    Two locks guard the content, as in a reader-writer design. The write side
    is the single reference assignment of a frozen ``_CacheEntry``, which
    cannot interleave with a reader on the event loop; that assignment is the
    content lock. Readers never wait on it. ``_refresh_lock`` is the separate
    single-flight mutex.
    """

    def __init__(
        self,
        source: KeySource,
        uri: str,
        parse: Callable[[bytes], T],
        entry: _CacheEntry[T],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._uri = uri
        self._parse = parse
        self._clock = clock
        self._entry = entry
        self._refresh_lock = asyncio.Lock()
        self.fetch_count = 1

    @classmethod
    async def create(
        cls,
        source: KeySource,
        uri: str,
        parse: Callable[[bytes], T],
        clock: Callable[[], float] = time.monotonic,
    ) -> HttpCache[T]:
        try:
            entry = await _load(source, uri, parse, clock)
        except CacheError as e:
            raise InitFetchError(f"Initial fetch of {uri} failed") from e
        return cls(source, uri, parse, entry, clock=clock)

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def expires_at(self) -> float:
        return self._entry.expires_at

    def _is_fresh(self, entry: _CacheEntry[T]) -> bool:
        return self._clock() < entry.expires_at

    async def get(self) -> T:
        """Return the current content, refreshing it first if it has expired."""
        entry = self._entry
        if self._is_fresh(entry):
            return entry.content

        async with self._refresh_lock:
            # Another task may have refreshed while we waited for the lock.
            entry = self._entry
            if self._is_fresh(entry):
                return entry.content

            entry = await _load(self._source, self._uri, self._parse, self._clock)
            self._entry = entry
            self.fetch_count += 1
            return entry.content


async def _load(
    source: KeySource,
    uri: str,
    parse: Callable[[bytes], T],
    clock: Callable[[], float],
) -> _CacheEntry[T]:
    try:
        resource = await source.fetch(uri)
        content = parse(resource.data)
    except Exception as e:
        logger.warning("Cache refresh failed uri=%s error=%s", uri, type(e).__name__)
        raise CacheError(f"Failed to refresh {uri}") from e

    max_age = max(resource.max_age, 0.0)
    logger.debug("Cache refreshed uri=%s max_age=%s", uri, max_age)
    return _CacheEntry(expires_at=clock() + max_age, content=content)
