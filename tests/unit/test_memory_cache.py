"""Unit tests for MemoryCacheProvider."""

from __future__ import annotations

import pytest

from propertylens.models.session import CacheEntry
from propertylens.providers.cache.memory_cache import MemoryCacheProvider
from tests.conftest import FakeMonotonic, make_snapshot


def _entry(session_id: str, captured_at: float, status: str = "completed") -> CacheEntry:
    return CacheEntry(snapshot=make_snapshot(session_id, status=status), captured_at=captured_at)


class TestMemoryCacheProvider:
    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, cache_store: MemoryCacheProvider) -> None:
        assert await cache_store.get("nonexistent") is None

    @pytest.mark.asyncio
    async def test_set_replaces_whole_entry(
        self, cache_store: MemoryCacheProvider, clock: FakeMonotonic
    ) -> None:
        await cache_store.set("abc", _entry("abc", clock(), status="analyzing"))
        await cache_store.set("abc", _entry("abc", clock(), status="completed"))

        entry = await cache_store.get("abc")
        assert entry.status == "completed"
        assert cache_store.size() == 1

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(
        self, cache_store: MemoryCacheProvider, clock: FakeMonotonic
    ) -> None:
        await cache_store.set("abc", _entry("abc", clock()))

        await cache_store.delete("abc")
        await cache_store.delete("abc")
        assert await cache_store.get("abc") is None
        assert cache_store.size() == 0

    @pytest.mark.asyncio
    async def test_entry_unavailable_past_ceiling(
        self, cache_store: MemoryCacheProvider, clock: FakeMonotonic
    ) -> None:
        await cache_store.set("abc", _entry("abc", clock()))
        clock.advance(cache_store.max_age + 1)

        assert await cache_store.get("abc") is None
        assert await cache_store.evict_expired() == 1

    @pytest.mark.asyncio
    async def test_lru_eviction_at_max_size(self, clock: FakeMonotonic) -> None:
        store = MemoryCacheProvider(max_size=2, clock=clock)
        for session_id in ("a", "b", "c"):
            await store.set(session_id, _entry(session_id, clock()))

        assert store.size() == 2
        assert await store.get("a") is None
