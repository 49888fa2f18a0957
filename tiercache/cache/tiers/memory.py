"""
TierCache — In-process Memory tier.

Shared by every operation in the process, lost on restart:
- LRU ordering via OrderedDict, O(1) get/set/delete
- Capacity bound with least-recently-used eviction
- Tag and namespace inverted indexes for group invalidation
- TTL heap swept by an optional background task

Guarded by an asyncio.Lock for concurrent coroutines.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from collections import OrderedDict, defaultdict
from heapq import heappop, heappush
from typing import Any, Dict, List, Optional, Set, Tuple

from ...clock import Clock, SystemClock, now_ts
from ..core import CacheEntry, CacheStats, TierStore

logger = logging.getLogger("tiercache.cache.tiers.memory")


class MemoryTierStore(TierStore):
    """
    In-memory LRU store with TTL enforcement.

    Expiry is evaluated against the injected clock, lazily on access and
    eagerly by ``purge_expired`` (called by the sweeper and by
    maintenance).
    """

    __slots__ = (
        "_max_size",
        "_clock",
        "_store",
        "_lock",
        "_stats",
        "_tag_index",
        "_namespace_index",
        "_ttl_heap",
        "_sweeper_task",
        "_sweep_interval",
        "_initialized",
    )

    def __init__(
        self,
        max_size: int = 10000,
        sweep_interval: float = 30.0,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            max_size: Maximum number of entries
            sweep_interval: Seconds between TTL sweeps (0 = no sweeper)
            clock: Time source for expiry
        """
        self._max_size = max_size
        self._sweep_interval = sweep_interval
        self._clock = clock or SystemClock()

        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._stats = CacheStats(max_size=max_size, store="memory")

        # tag → keys, namespace → keys
        self._tag_index: Dict[str, Set[str]] = defaultdict(set)
        self._namespace_index: Dict[str, Set[str]] = defaultdict(set)

        # (expires_at, key)
        self._ttl_heap: List[Tuple[float, str]] = []

        self._sweeper_task: Optional[asyncio.Task] = None
        self._initialized = False

    @property
    def name(self) -> str:
        return "memory:lru"

    @property
    def supports_tagging(self) -> bool:
        return True

    def supports_pattern_delete(self) -> bool:
        return True

    async def initialize(self) -> None:
        """Start the background TTL sweeper."""
        if self._initialized:
            return
        self._initialized = True
        if self._sweep_interval > 0:
            loop = asyncio.get_running_loop()
            self._sweeper_task = loop.create_task(self._ttl_sweeper())

    async def shutdown(self) -> None:
        """Stop the sweeper and drop all data."""
        if self._sweeper_task and not self._sweeper_task.done():
            self._sweeper_task.cancel()
            try:
                await self._sweeper_task
            except asyncio.CancelledError:
                pass
        self._sweeper_task = None
        async with self._lock:
            self._reset()
        self._initialized = False

    async def get(self, key: str) -> Optional[CacheEntry]:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            if entry.is_expired(now_ts(self._clock)):
                self._evict_key(key)
                self._stats.expirations += 1
                self._stats.misses += 1
                return None

            entry.touch()
            self._store.move_to_end(key)
            self._stats.hits += 1
            return entry

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
        namespace: str = "default",
    ) -> None:
        async with self._lock:
            if key in self._store:
                self._evict_key(key)

            while len(self._store) >= self._max_size:
                self._evict_one()

            now = now_ts(self._clock)
            expires_at = now + ttl if ttl else None
            self._store[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                expires_at=expires_at,
                tags=tuple(tags),
                namespace=namespace,
            )

            for tag in tags:
                self._tag_index[tag].add(key)
            self._namespace_index[namespace].add(key)
            if expires_at is not None:
                heappush(self._ttl_heap, (expires_at, key))

            self._stats.sets += 1
            self._stats.size = len(self._store)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._store:
                self._evict_key(key)
                self._stats.deletes += 1
                return True
            return False

    async def exists(self, key: str) -> bool:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            if entry.is_expired(now_ts(self._clock)):
                self._evict_key(key)
                self._stats.expirations += 1
                return False
            return True

    async def clear(self) -> int:
        async with self._lock:
            count = len(self._store)
            self._reset()
            return count

    async def keys(self, pattern: str = "*") -> List[str]:
        async with self._lock:
            now = now_ts(self._clock)
            live = [k for k, e in self._store.items() if not e.is_expired(now)]
            if pattern == "*":
                return live
            return [k for k in live if fnmatch.fnmatchcase(k, pattern)]

    async def stats(self) -> CacheStats:
        self._stats.size = len(self._store)
        return self._stats

    async def delete_by_pattern(self, pattern: str) -> int:
        async with self._lock:
            matched = [k for k in self._store if fnmatch.fnmatchcase(k, pattern)]
            for key in matched:
                self._evict_key(key)
            self._stats.deletes += len(matched)
            return len(matched)

    async def delete_by_tags(self, tags: Set[str]) -> int:
        """O(m) tag-based invalidation via inverted index."""
        async with self._lock:
            keys_to_delete: Set[str] = set()
            for tag in tags:
                keys_to_delete.update(self._tag_index.get(tag, set()))
            for key in keys_to_delete:
                self._evict_key(key)
            self._stats.deletes += len(keys_to_delete)
            return len(keys_to_delete)

    async def purge_expired(self) -> int:
        """Remove expired entries using the TTL heap."""
        async with self._lock:
            now = now_ts(self._clock)
            swept = 0
            while self._ttl_heap:
                expires_at, key = self._ttl_heap[0]
                if expires_at > now:
                    break
                heappop(self._ttl_heap)
                # The heap may hold stale items for overwritten keys
                entry = self._store.get(key)
                if entry and entry.is_expired(now):
                    self._evict_key(key)
                    self._stats.expirations += 1
                    swept += 1
            return swept

    async def optimize(self) -> int:
        """Drop heap items that no longer point at a live expiring entry."""
        async with self._lock:
            before = len(self._ttl_heap)
            self._ttl_heap = [
                (exp, key) for exp, key in self._ttl_heap
                if key in self._store and self._store[key].expires_at == exp
            ]
            self._ttl_heap.sort()
            return before - len(self._ttl_heap)

    async def health_check(self) -> bool:
        return True

    async def describe(self) -> Dict[str, Any]:
        return {
            "store": self.name,
            "total_keys": len(self._store),
            "max_size": self._max_size,
            "namespaces": len(self._namespace_index),
            "tags": len(self._tag_index),
        }

    # ── Private helpers ──────────────────────────────────────────────

    def _reset(self) -> None:
        """Caller must hold lock."""
        self._store.clear()
        self._tag_index.clear()
        self._namespace_index.clear()
        self._ttl_heap.clear()
        self._stats.size = 0

    def _evict_key(self, key: str) -> None:
        """Remove a key and clean up all indices. Caller must hold lock."""
        entry = self._store.pop(key, None)
        if entry is None:
            return

        for tag in entry.tags:
            tag_set = self._tag_index.get(tag)
            if tag_set:
                tag_set.discard(key)
                if not tag_set:
                    del self._tag_index[tag]

        ns_set = self._namespace_index.get(entry.namespace)
        if ns_set:
            ns_set.discard(key)
            if not ns_set:
                del self._namespace_index[entry.namespace]

        self._stats.size = len(self._store)

    def _evict_one(self) -> None:
        """Evict the least recently used entry. Caller must hold lock."""
        if not self._store:
            return
        self._evict_key(next(iter(self._store)))
        self._stats.evictions += 1

    async def _ttl_sweeper(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._sweep_interval)
                swept = await self.purge_expired()
                if swept:
                    logger.debug(f"TTL sweeper removed {swept} expired entries")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"TTL sweep failed: {e}")
