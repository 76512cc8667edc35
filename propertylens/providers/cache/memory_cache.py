"""In-memory session snapshot store using cachetools.TTLCache.

Simple, fast store suitable for single-process deployments.  Can be
swapped for Redis or another backend via the ICacheProvider interface.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog
from cachetools import TTLCache

from propertylens.interfaces.cache_provider import ICacheProvider
from propertylens.models.session import CacheEntry
from propertylens.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)


class MemoryCacheProvider(ICacheProvider):
    """In-memory snapshot store backed by ``cachetools.TTLCache``.

    The TTLCache's own ``ttl`` is the hard age ceiling (default 5 minutes),
    not the status-dependent freshness window: an entry stays available as
    a stale fallback until it passes the ceiling, and the periodic sweep
    calls :meth:`evict_expired` to actually free it.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is evicted.
    max_age:
        Hard age ceiling in seconds.
    clock:
        Monotonic time source shared with the SessionCache so that
        ``CacheEntry.captured_at`` and the ceiling agree.
    """

    def __init__(
        self,
        max_size: int = 10_000,
        max_age: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_age = max_age
        self._cache: TTLCache[str, CacheEntry] = TTLCache(
            maxsize=max_size, ttl=max_age, timer=clock
        )

    @property
    def max_age(self) -> float:
        return self._max_age

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve the entry for *key*, or ``None`` if missing or past the ceiling."""
        return self._cache.get(key)

    async def set(self, key: str, entry: CacheEntry) -> None:
        """Replace the entry for *key*."""
        self._cache[key] = entry
        logger.debug("cache_set", key=key, status=entry.status)

    async def delete(self, key: str) -> None:
        """Remove *key* from the cache (no-op if absent)."""
        self._cache.pop(key, None)
        logger.debug("cache_delete", key=key)

    async def evict_expired(self) -> int:
        """Drop every entry past the ceiling and return how many were dropped."""
        expired = self._cache.expire() or []
        return len(list(expired))

    def size(self) -> int:
        return len(self._cache)
