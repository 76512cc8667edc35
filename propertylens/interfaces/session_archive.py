"""Abstract base class for the last-resort session fallback store.

Consulted by the SessionCache only when the Analysis Engine is unreachable
and no cache entry exists at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ISessionArchive(ABC):
    """Contract for a durable archive of finished session snapshots."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist.  Called at startup."""

    @abstractmethod
    async def get(self, session_id: str) -> dict[str, Any] | None:
        """Return the archived snapshot for *session_id*, or ``None``."""

    @abstractmethod
    async def put(self, session_id: str, snapshot: dict[str, Any]) -> None:
        """Store or replace the archived snapshot for *session_id*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
