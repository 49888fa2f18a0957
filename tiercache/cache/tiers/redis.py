"""
TierCache — Redis-backed Memory tier.

Shares the Memory tier across processes through a Redis server:
- Connection pool with socket timeouts (bounded failures)
- Values encoded with a pluggable CacheSerializer
- Tag and namespace index sets
- SCAN-based pattern deletes

Connection and protocol errors are raised as ``TierUnavailableFault``;
the tier adapter degrades them.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from ..core import CacheEntry, CacheStats, TierStore
from ..faults import CacheSerializationFault, TierUnavailableFault

logger = logging.getLogger("tiercache.cache.tiers.redis")


class RedisTierStore(TierStore):
    """
    Memory tier on redis-py's asyncio client.

    Redis enforces TTLs itself, so this store does not consult the
    injected clock for expiry; ``ttl_remaining`` is rebuilt from
    ``PTTL`` on reads.
    """

    __slots__ = (
        "_url",
        "_max_connections",
        "_socket_timeout",
        "_connect_timeout",
        "_key_prefix",
        "_serializer",
        "_redis",
        "_stats",
        "_initialized",
    )

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        connect_timeout: float = 5.0,
        key_prefix: str = "tc:",
        serializer: Optional[Any] = None,
        client: Optional[Any] = None,
    ):
        self._url = url
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._connect_timeout = connect_timeout
        self._key_prefix = key_prefix
        self._redis = client
        self._stats = CacheStats(store="redis")
        self._initialized = client is not None

        if serializer is None:
            from ..serializers import JsonCacheSerializer
            self._serializer = JsonCacheSerializer()
        else:
            self._serializer = serializer

    @property
    def name(self) -> str:
        return "redis"

    @property
    def is_distributed(self) -> bool:
        return True

    @property
    def supports_tagging(self) -> bool:
        return True

    def supports_pattern_delete(self) -> bool:
        return True

    async def initialize(self) -> None:
        """Connect to Redis and create the connection pool."""
        if self._initialized:
            return

        import redis.asyncio as aioredis

        try:
            self._redis = aioredis.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._connect_timeout,
                decode_responses=False,
            )
            await self._redis.ping()
            self._initialized = True
            logger.info(f"Redis memory tier connected: {self._url}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise TierUnavailableFault("memory", "initialize", str(e)) from e

    async def shutdown(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._initialized = False

    # ── Key layout ───────────────────────────────────────────────────

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _tag_set_key(self, tag: str) -> str:
        return f"{self._key_prefix}_tags:{tag}"

    def _ns_set_key(self, namespace: str) -> str:
        return f"{self._key_prefix}_ns:{namespace}"

    def _is_index_key(self, full_key: str) -> bool:
        return full_key.startswith((f"{self._key_prefix}_tags:", f"{self._key_prefix}_ns:"))

    def _client(self, operation: str):
        if self._redis is None:
            self._stats.errors += 1
            raise TierUnavailableFault("memory", operation, "not connected")
        return self._redis

    def _fail(self, operation: str, key: str, error: Exception) -> TierUnavailableFault:
        logger.warning(f"Redis {operation.upper()} error for key '{key}': {error}")
        self._stats.errors += 1
        return TierUnavailableFault("memory", operation, str(error))

    # ── Operations ───────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[CacheEntry]:
        client = self._client("get")
        full_key = self._full_key(key)
        try:
            pipe = client.pipeline()
            pipe.get(full_key)
            pipe.pttl(full_key)
            raw, pttl = await pipe.execute()
        except Exception as e:
            raise self._fail("get", key, e) from e

        if raw is None:
            self._stats.misses += 1
            return None

        try:
            value = self._serializer.deserialize(raw)
        except Exception as e:
            self._stats.errors += 1
            raise CacheSerializationFault(key, "deserialize", str(e)) from e

        self._stats.hits += 1
        now = time.time()
        expires_at = now + pttl / 1000.0 if pttl and pttl > 0 else None
        return CacheEntry(key=key, value=value, created_at=now, expires_at=expires_at)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
        namespace: str = "default",
    ) -> None:
        client = self._client("set")
        try:
            serialized = self._serializer.serialize(value)
        except Exception as e:
            self._stats.errors += 1
            raise CacheSerializationFault(key, "serialize", str(e)) from e

        full_key = self._full_key(key)
        try:
            pipe = client.pipeline()
            if ttl and ttl > 0:
                pipe.setex(full_key, ttl, serialized)
            else:
                pipe.set(full_key, serialized)

            for tag in tags:
                tag_key = self._tag_set_key(tag)
                pipe.sadd(tag_key, full_key)
                if ttl and ttl > 0:
                    # Keep the index alive at least as long as the entry
                    pipe.expire(tag_key, ttl + 60)
            pipe.sadd(self._ns_set_key(namespace), full_key)

            await pipe.execute()
            self._stats.sets += 1
        except Exception as e:
            raise self._fail("set", key, e) from e

    async def delete(self, key: str) -> bool:
        client = self._client("delete")
        try:
            result = await client.delete(self._full_key(key))
        except Exception as e:
            raise self._fail("delete", key, e) from e
        if result:
            self._stats.deletes += 1
            return True
        return False

    async def exists(self, key: str) -> bool:
        client = self._client("exists")
        try:
            return bool(await client.exists(self._full_key(key)))
        except Exception as e:
            raise self._fail("exists", key, e) from e

    async def clear(self) -> int:
        client = self._client("clear")
        try:
            count = 0
            async for full_key in client.scan_iter(match=f"{self._key_prefix}*", count=1000):
                await client.delete(full_key)
                count += 1
            return count
        except Exception as e:
            raise self._fail("clear", "*", e) from e

    async def keys(self, pattern: str = "*") -> List[str]:
        client = self._client("keys")
        prefix_len = len(self._key_prefix)
        try:
            result = []
            async for raw in client.scan_iter(match=f"{self._key_prefix}{pattern}", count=1000):
                full_key = raw.decode("utf-8") if isinstance(raw, bytes) else raw
                if not self._is_index_key(full_key):
                    result.append(full_key[prefix_len:])
            return result
        except Exception as e:
            raise self._fail("keys", pattern, e) from e

    async def stats(self) -> CacheStats:
        if self._redis is not None:
            try:
                self._stats.size = await self._redis.dbsize()
            except Exception as e:
                logger.debug(f"Redis DBSIZE failed: {e}")
        return self._stats

    async def delete_by_pattern(self, pattern: str) -> int:
        matched = await self.keys(pattern)
        if not matched:
            return 0
        client = self._client("delete_by_pattern")
        try:
            await client.delete(*(self._full_key(k) for k in matched))
        except Exception as e:
            raise self._fail("delete_by_pattern", pattern, e) from e
        self._stats.deletes += len(matched)
        return len(matched)

    async def delete_by_tags(self, tags: Set[str]) -> int:
        """Delete entries by tag using the tag index sets."""
        client = self._client("delete_by_tags")
        try:
            pipe = client.pipeline()
            for tag in tags:
                pipe.smembers(self._tag_set_key(tag))
            results = await pipe.execute()

            keys_to_delete: Set[bytes] = set()
            for members in results:
                if members:
                    keys_to_delete.update(members)

            pipe = client.pipeline()
            for full_key in keys_to_delete:
                pipe.delete(full_key)
            for tag in tags:
                pipe.delete(self._tag_set_key(tag))
            await pipe.execute()
        except Exception as e:
            raise self._fail("delete_by_tags", ",".join(sorted(tags)), e) from e

        self._stats.deletes += len(keys_to_delete)
        return len(keys_to_delete)

    async def health_check(self) -> bool:
        if self._redis is None:
            return False
        try:
            await self._redis.ping()
            return True
        except Exception:
            return False

    async def describe(self) -> Dict[str, Any]:
        stats = await self.stats()
        return {"store": self.name, "url": self._url, "total_keys": stats.size}
