"""Shared concurrency primitives for per-session coordination.

Two primitives are exposed, both keyed by session ID so that unrelated
sessions never contend with each other:

1. **RequestDeduplicator** -- collapses concurrent upstream fetches for the
   same key into a single in-flight operation.  Used by the server-side
   SessionCache and by the client-side SessionPoller.

2. **KeyedLock** -- one ``asyncio.Lock`` per key, created on demand and
   discarded once no coroutine holds or waits on it.  Used wherever a
   read-modify-write on per-session state must not interleave (feedback
   aggregates, trigger cooldown markers).
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import structlog

from propertylens.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


class RequestDeduplicator:
    """Ensure at most one outstanding fetch per key.

    The first caller for a key starts ``fetch_fn`` in its own task; callers
    arriving while that task is pending await the same task and receive
    the same result or the same exception.  The pending marker is removed
    inside the task itself, on every exit path, so a failing or cancelled
    fetch never leaves a stuck entry behind.

    Waiters are shielded: cancelling one waiter (for example a client that
    disconnected) does not cancel the shared fetch for the others.
    """

    def __init__(self, name: str = "default") -> None:
        self._name = name
        self._pending: dict[str, asyncio.Task[Any]] = {}

    @property
    def in_flight(self) -> int:
        """Number of keys with a fetch currently pending."""
        return len(self._pending)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    async def fetch_once(self, key: str, fetch_fn: Callable[[], Awaitable[_T]]) -> _T:
        """Run ``fetch_fn`` for *key* unless a fetch for *key* is already pending.

        Parameters
        ----------
        key:
            Deduplication key, normally the session ID.
        fetch_fn:
            Zero-argument coroutine function performing the upstream call.

        Returns
        -------
        The result of the single shared ``fetch_fn`` invocation.
        """
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, fetch_fn))
            self._pending[key] = task
            task.add_done_callback(_consume_exception)
        else:
            _logger.debug("fetch_deduplicated", deduplicator=self._name, key=key)
        return await asyncio.shield(task)

    async def _run(self, key: str, fetch_fn: Callable[[], Awaitable[_T]]) -> _T:
        try:
            return await fetch_fn()
        finally:
            current = self._pending.get(key)
            if current is asyncio.current_task():
                del self._pending[key]


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # Every waiter re-raises the exception through the shield; this only
    # silences asyncio's "exception was never retrieved" warning when all
    # waiters were cancelled before the fetch finished.
    if not task.cancelled():
        task.exception()


class KeyedLock:
    """A lazily created ``asyncio.Lock`` per key.

    Locks are reference-counted and dropped when the last holder or waiter
    leaves, so the map does not grow with every session ever seen.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]
