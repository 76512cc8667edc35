"""Session snapshot cache stores.

MemoryCacheProvider is a process-local TTLCache - fast but not shared
across workers.  For multi-worker deployments, swap in a Redis adapter
implementing ICacheProvider without changing the SessionCache.
"""

from propertylens.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
