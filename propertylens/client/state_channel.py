"""Single-writer, multi-reader channel for immutable state values.

One owner task publishes; any number of consumers subscribe with::

    async with channel.subscribe() as updates:
        async for state in updates:
            ...

Each subscriber gets its own queue, primed with the current value, so a
late subscriber never misses the latest state and a slow one never blocks
the publisher.  Leaving the ``async with`` block unsubscribes; closing the
channel ends every subscriber's iteration.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Generic, TypeVar

_T = TypeVar("_T")

_CLOSED = object()


class StateChannel(Generic[_T]):
    def __init__(self, initial: _T | None = None) -> None:
        self._current = initial
        self._subscribers: set[asyncio.Queue] = set()
        self._closed = False

    @property
    def current(self) -> _T | None:
        return self._current

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, value: _T) -> None:
        if self._closed:
            raise RuntimeError("cannot publish on a closed StateChannel")
        self._current = value
        for queue in list(self._subscribers):
            queue.put_nowait(value)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for queue in list(self._subscribers):
            queue.put_nowait(_CLOSED)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[AsyncIterator[_T]]:
        queue: asyncio.Queue = asyncio.Queue()
        if self._current is not None:
            queue.put_nowait(self._current)
        if self._closed:
            queue.put_nowait(_CLOSED)
        self._subscribers.add(queue)
        try:
            yield self._drain(queue)
        finally:
            self._subscribers.discard(queue)

    @staticmethod
    async def _drain(queue: asyncio.Queue) -> AsyncIterator[_T]:
        while True:
            item = await queue.get()
            if item is _CLOSED:
                return
            yield item
