"""Abstract base class for the session snapshot cache store.

Maps a session ID to its last known snapshot plus capture time.  The
SessionCache owns freshness decisions; the store only keeps entries and
evicts those older than a hard ceiling.  Implementations may use an
in-process map or a shared network store without touching the
coordinator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from propertylens.models.session import CacheEntry


class ICacheProvider(ABC):
    """Contract for per-session snapshot storage.

    All operations are async to allow for network-backed stores (e.g. Redis)
    without blocking the event loop.  ``set`` always replaces the entry for
    a key as a whole; there is no partial update.
    """

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Return the entry stored under *key*, or ``None`` if absent.

        Entries are returned regardless of TTL freshness; only entries past
        the store's hard age ceiling are treated as absent.
        """

    @abstractmethod
    async def set(self, key: str, entry: CacheEntry) -> None:
        """Store *entry* under *key*, replacing any previous entry."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the entry stored under *key*.  No-op if absent."""

    @abstractmethod
    async def evict_expired(self) -> int:
        """Remove every entry older than the store's age ceiling.

        Returns
        -------
        int
            Number of entries evicted.
        """

    @abstractmethod
    def size(self) -> int:
        """Return the number of entries currently held."""
