"""Session snapshot cache with status-dependent freshness.

# ─── HOW A SESSION READ IS RESOLVED (Junior Developer Guide) ──────────
#
#   GET /session/{id}
#        │
#        ▼
#   1. CACHE     entry present and younger than ttl_for_status(status)?
#        │ no                                   └─ yes → serve it
#        ▼
#   2. UPSTREAM  fetch through the RequestDeduplicator (one call per id)
#        │ fails                                └─ ok  → replace entry, serve it
#        ▼
#   3. STALE     any entry left (under the 5-minute ceiling)? → serve it
#        │ none
#        ▼
#   4. ARCHIVE   terminal snapshot archived earlier? → serve it
#        │ none
#        ▼
#   5. None      the route turns this into 404 {"error": "Session not found"}
#
# Entries are always replaced whole.  Terminal snapshots are written
# through to the archive, and every fetched snapshot is broadcast to the
# registered listeners (the TriggerEvaluator uses this to notice when a
# re-run it requested has finished).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError

from propertylens.interfaces.analysis_engine import IAnalysisEngine
from propertylens.interfaces.cache_provider import ICacheProvider
from propertylens.interfaces.session_archive import ISessionArchive
from propertylens.models.session import (
    TERMINAL_STATUSES,
    CacheEntry,
    SessionSnapshot,
    project_basic,
)
from propertylens.services.ttl_policy import is_fresh
from propertylens.utils.concurrency import RequestDeduplicator
from propertylens.utils.errors import UpstreamUnavailableError
from propertylens.utils.logging import get_logger
from propertylens.utils.text_normalizer import fix_property_characters

_DEFAULT_SWEEP_INTERVAL = 30.0


class SnapshotSource(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Which step of the resolution chain produced a snapshot."""

    CACHE = "cache"
    UPSTREAM = "upstream"
    STALE = "stale"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class SessionLookup:
    snapshot: dict[str, Any]
    source: SnapshotSource


class SessionCache:
    """Answers "give me session X" from cache, upstream, or fallbacks.

    Parameters
    ----------
    store:
        Snapshot store (one entry per session ID).
    engine:
        The Analysis Engine adapter; the only source of fresh snapshots.
    archive:
        Optional last-resort store of terminal snapshots.
    deduplicator:
        Shared deduplicator; a private one is created when omitted.
    clock:
        Monotonic time source; must be the same clock the store uses.
    ttl_overrides:
        Optional ``status → seconds`` table overriding the built-in TTLs.
    sweep_interval:
        Seconds between eviction sweeps once :meth:`start_sweeper` runs.
    """

    def __init__(
        self,
        store: ICacheProvider,
        engine: IAnalysisEngine,
        archive: ISessionArchive | None = None,
        deduplicator: RequestDeduplicator | None = None,
        clock: Callable[[], float] = time.monotonic,
        ttl_overrides: Mapping[str, float] | None = None,
        sweep_interval: float = _DEFAULT_SWEEP_INTERVAL,
    ) -> None:
        self._store = store
        self._engine = engine
        self._archive = archive
        self._dedup = deduplicator or RequestDeduplicator(name="session_cache")
        self._clock = clock
        self._ttl_overrides = dict(ttl_overrides) if ttl_overrides else None
        self._sweep_interval = sweep_interval
        self._sweeper: asyncio.Task[None] | None = None
        self._listeners: list[Callable] = []
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def deduplicator(self) -> RequestDeduplicator:
        return self._dedup

    @property
    def listeners(self) -> tuple[Callable, ...]:
        return tuple(self._listeners)

    def size(self) -> int:
        return self._store.size()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(
        self,
        session_id: str,
        *,
        skip_cache: bool = False,
        basic_only: bool = False,
    ) -> dict[str, Any] | None:
        """Return the snapshot for *session_id*, or ``None`` when it is unknown everywhere.

        Parameters
        ----------
        session_id:
            The session to resolve.
        skip_cache:
            Skip the freshness check and go straight to the engine.
        basic_only:
            Return the restricted ``basic`` projection instead of the
            full snapshot.
        """
        lookup = await self.lookup(session_id, skip_cache=skip_cache, basic_only=basic_only)
        return lookup.snapshot if lookup is not None else None

    async def lookup(
        self,
        session_id: str,
        *,
        skip_cache: bool = False,
        basic_only: bool = False,
    ) -> SessionLookup | None:
        """Like :meth:`get`, but also reports where the snapshot came from."""
        lookup = await self._resolve(session_id, skip_cache=skip_cache)
        if lookup is None or not basic_only:
            return lookup
        return SessionLookup(snapshot=project_basic(lookup.snapshot), source=lookup.source)

    async def _resolve(self, session_id: str, *, skip_cache: bool) -> SessionLookup | None:
        entry = await self._store.get(session_id)

        if entry is not None and not skip_cache:
            if is_fresh(entry.age(self._clock()), entry.status, self._ttl_overrides):
                self._logger.debug(
                    "session_cache_hit", session_id=session_id, status=entry.status
                )
                return SessionLookup(snapshot=entry.snapshot, source=SnapshotSource.CACHE)

        try:
            snapshot = await self._dedup.fetch_once(
                session_id, lambda: self._fetch_and_store(session_id)
            )
            return SessionLookup(snapshot=snapshot, source=SnapshotSource.UPSTREAM)
        except UpstreamUnavailableError as exc:
            self._logger.warning(
                "upstream_fetch_failed", session_id=session_id, error=str(exc)
            )

        # The failed fetch may have raced a successful one; re-read the store.
        entry = await self._store.get(session_id)
        if entry is not None:
            self._logger.info(
                "serving_stale_snapshot",
                session_id=session_id,
                status=entry.status,
                age_seconds=round(entry.age(self._clock()), 1),
            )
            return SessionLookup(snapshot=entry.snapshot, source=SnapshotSource.STALE)

        archived = await self._archive_get(session_id)
        if archived is not None:
            self._logger.info("serving_archived_snapshot", session_id=session_id)
            return SessionLookup(snapshot=archived, source=SnapshotSource.ARCHIVE)

        self._logger.info("session_not_found", session_id=session_id)
        return None

    async def _fetch_and_store(self, session_id: str) -> dict[str, Any]:
        raw = await self._engine.fetch_session(session_id)
        try:
            SessionSnapshot.model_validate(raw)
        except ValidationError as exc:
            raise UpstreamUnavailableError(
                message=f"Engine returned an invalid snapshot for {session_id}: "
                f"{exc.error_count()} error(s)",
                provider_name=self._engine.get_provider_name(),
            ) from exc

        snapshot = dict(raw)
        prop = snapshot.get("property")
        if isinstance(prop, dict):
            snapshot["property"] = fix_property_characters(prop)

        entry = CacheEntry(snapshot=snapshot, captured_at=self._clock())
        await self._store.set(session_id, entry)
        self._logger.debug("session_cache_store", session_id=session_id, status=entry.status)

        if entry.status in TERMINAL_STATUSES:
            await self._archive_put(session_id, snapshot)

        await self._notify_listeners(session_id, snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Invalidation and eviction
    # ------------------------------------------------------------------

    async def invalidate(self, session_id: str) -> None:
        """Drop the cached entry so the next read revalidates upstream."""
        await self._store.delete(session_id)
        self._logger.info("session_cache_invalidated", session_id=session_id)

    async def sweep(self) -> int:
        """Evict every entry past the hard age ceiling; returns the count."""
        evicted = await self._store.evict_expired()
        self._logger.debug("cache_sweep", evicted=evicted, remaining=self._store.size())
        return evicted

    def start_sweeper(self) -> None:
        """Start the periodic eviction sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="cache-sweeper")
            self._logger.info("cache_sweeper_started", interval=self._sweep_interval)

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        self._logger.info("cache_sweeper_stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.sweep()
            except Exception as exc:
                self._logger.error("cache_sweep_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Snapshot listeners
    # ------------------------------------------------------------------

    def register_listener(self, callback: Callable) -> None:
        """Register a sync or async ``callback(session_id, snapshot)``.

        Called after every successful upstream fetch.
        """
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unregister_listener(self, callback: Callable) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def _notify_listeners(self, session_id: str, snapshot: dict[str, Any]) -> None:
        for callback in list(self._listeners):
            try:
                result = callback(session_id, snapshot)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "snapshot_listener_error",
                    session_id=session_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )

    # ------------------------------------------------------------------
    # Archive helpers
    # ------------------------------------------------------------------

    async def _archive_put(self, session_id: str, snapshot: dict[str, Any]) -> None:
        if self._archive is None:
            return
        try:
            await self._archive.put(session_id, snapshot)
        except Exception as exc:
            self._logger.warning(
                "session_archive_write_failed", session_id=session_id, error=str(exc)
            )

    async def _archive_get(self, session_id: str) -> dict[str, Any] | None:
        if self._archive is None:
            return None
        try:
            return await self._archive.get(session_id)
        except Exception as exc:
            self._logger.warning(
                "session_archive_read_failed", session_id=session_id, error=str(exc)
            )
            return None
