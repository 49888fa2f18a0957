"""
TierCache — CacheManager: the caller-facing tiered cache.

Owns one ``CacheOperationService`` per tier and presents a single cache:
- Reads search Request, Memory, Database in priority order
- A hit in a lower tier is backfilled into every enabled higher tier
  with the entry's remaining TTL
- Writes go to all targeted tiers; true only if every enabled one accepted
- Tier failures degrade to misses / failed writes, never exceptions
- Compute-through (``remember``) with sync or async producers
- Tier switches, health checks and statistics

The manager is built by explicit construction (see ``factory``); it holds
no module-level state.
"""

from __future__ import annotations

import inspect
import logging
import math
import time
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from ..clock import Clock, SystemClock, now_ts
from .core import CacheConfig, CacheEntry, TierStore
from .keys import CacheKey, KeyLike, to_key
from .levels import CacheLevel, TierSelector
from .metrics import MetricsCollector
from .operations import CacheOperationService

logger = logging.getLogger("tiercache.cache.manager")

T = TypeVar("T")

_MISSING = object()

HEALTH_CHECK_KEY = CacheKey(namespace="system", identifier="__health_check__")


async def resolve_value(producer: Callable[[], Any]) -> Any:
    """Call a sync or async producer and return its value."""
    if inspect.iscoroutinefunction(producer):
        return await producer()
    value = producer()
    if inspect.isawaitable(value):
        return await value
    return value


class CacheManager:
    """
    Tiered cache over a Request, a Memory and a Database store.

    Usage::

        manager = CacheManager(RequestTierStore(), MemoryTierStore(), DatabaseTierStore())
        async with manager:
            async with manager.request_scope():
                profile = await manager.remember(
                    "ip_reputation:1.2.3.4", 3600, lambda: score_ip("1.2.3.4")
                )
    """

    def __init__(
        self,
        request: TierStore,
        memory: TierStore,
        database: TierStore,
        *,
        metrics: Optional[MetricsCollector] = None,
        clock: Optional[Clock] = None,
        config: Optional[CacheConfig] = None,
    ):
        self._config = config or CacheConfig()
        self._metrics = metrics or MetricsCollector()
        self._clock = clock or SystemClock()
        self._default_namespace = self._config.default_namespace

        switches = {
            CacheLevel.REQUEST: self._config.request_enabled,
            CacheLevel.MEMORY: self._config.memory_enabled,
            CacheLevel.DATABASE: self._config.database_enabled,
        }
        stores = {
            CacheLevel.REQUEST: request,
            CacheLevel.MEMORY: memory,
            CacheLevel.DATABASE: database,
        }
        self._tiers: Dict[CacheLevel, CacheOperationService] = {
            level: CacheOperationService(
                level,
                stores[level],
                self._metrics,
                namespace_ttls=self._config.namespace_ttls,
                enabled=switches[level],
            )
            for level in CacheLevel.by_priority()
        }

        self._warming = None
        self._maintenance = None
        self._initialized = False

    # ── Lifecycle ────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """
        Initialize every tier store.

        A store that fails to start is logged and left unhealthy; its
        operations then degrade like any other tier failure.
        """
        if self._initialized:
            return
        for level, tier in self._tiers.items():
            try:
                await tier.store.initialize()
            except Exception as e:
                logger.error(f"{level.value} tier ({tier.store.name}) failed to initialize: {e}")
                self._metrics.record_error(level, "initialize")
        self._initialized = True
        logger.info(
            "Cache manager initialized "
            f"(tiers={', '.join(f'{lvl.value}={t.store.name}' for lvl, t in self._tiers.items())})"
        )

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        for level, tier in self._tiers.items():
            try:
                await tier.store.shutdown()
            except Exception as e:
                logger.warning(f"{level.value} tier ({tier.store.name}) failed to shut down cleanly: {e}")
        self._initialized = False
        logger.info("Cache manager shut down")

    async def __aenter__(self) -> "CacheManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    @asynccontextmanager
    async def request_scope(self) -> AsyncIterator[None]:
        """Bracket one logical operation with a fresh Request tier."""
        scope = getattr(self._tiers[CacheLevel.REQUEST].store, "scope", None)
        if scope is None:
            yield
            return
        async with scope():
            yield

    # ── Accessors ────────────────────────────────────────────────────

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> CacheConfig:
        return self._config

    def tier(self, level: Union[CacheLevel, str]) -> CacheOperationService:
        return self._tiers[CacheLevel(level)]

    def _key(self, key: KeyLike) -> Optional[CacheKey]:
        cache_key = to_key(key, self._default_namespace)
        errors = cache_key.validation_errors(strict=False)
        if errors:
            logger.warning(f"Rejected invalid cache key '{cache_key}': {'; '.join(errors)}")
            return None
        return cache_key

    def _targets(self, tiers: TierSelector) -> List[CacheOperationService]:
        return [self._tiers[level] for level in CacheLevel.coerce(tiers) if self._tiers[level].enabled]

    # ── Reads ────────────────────────────────────────────────────────

    async def get(self, key: KeyLike, default: Any = None, tiers: TierSelector = None) -> Any:
        """
        Read through the tiers in priority order.

        A hit below the first targeted tier is copied into every enabled
        targeted tier above it. A stored None is a hit.
        """
        start = time.perf_counter()
        cache_key = self._key(key)
        if cache_key is None:
            return default

        targets = self._targets(tiers)
        for index, tier in enumerate(targets):
            entry = await tier.get(cache_key)
            if entry is None:
                continue
            self._metrics.record_hit(tier.level, time.perf_counter() - start)
            if index > 0:
                await self._backfill(cache_key, entry, targets[:index])
            return entry.value

        self._metrics.record_miss(time.perf_counter() - start)
        return default

    async def _backfill(
        self,
        key: CacheKey,
        entry: CacheEntry,
        tiers: Sequence[CacheOperationService],
    ) -> None:
        remaining = entry.ttl_remaining(now_ts(self._clock))
        # 0 keeps "no expiry" from falling back to the tier default
        ttl = 0 if remaining is None else max(1, math.ceil(remaining))
        if entry.tags:
            key = key.with_tags(*entry.tags)
        for tier in tiers:
            if await tier.put(key, entry.value, ttl=ttl):
                self._metrics.record_backfill(tier.level)
                logger.debug(f"Backfilled '{key}' into {tier.level.value} tier (ttl={ttl})")

    async def get_from(self, tier: Union[CacheLevel, str], key: KeyLike, default: Any = None) -> Any:
        """Read one tier without backfill or global hit/miss accounting."""
        cache_key = self._key(key)
        if cache_key is None:
            return default
        entry = await self._tiers[CacheLevel(tier)].get(cache_key)
        if entry is None:
            return default
        return entry.value

    async def has(self, key: KeyLike, tiers: TierSelector = None) -> bool:
        cache_key = self._key(key)
        if cache_key is None:
            return False
        for tier in self._targets(tiers):
            if await tier.exists(cache_key):
                return True
        return False

    # ── Writes ───────────────────────────────────────────────────────

    async def put(
        self,
        key: KeyLike,
        value: Any,
        ttl: Optional[int] = None,
        tiers: TierSelector = None,
    ) -> bool:
        """
        Write to every targeted, enabled tier.

        Returns True only if every one of them accepted the write.
        """
        cache_key = self._key(key)
        if cache_key is None:
            return False
        targets = self._targets(tiers)
        if not targets:
            return False

        results = [await tier.put(cache_key, value, ttl) for tier in targets]
        if any(results):
            self._metrics.record_put()
        return all(results)

    async def add(
        self,
        key: KeyLike,
        value: Any,
        ttl: Optional[int] = None,
        tiers: TierSelector = None,
    ) -> bool:
        """Write only when no targeted tier holds the key."""
        cache_key = self._key(key)
        if cache_key is None:
            return False
        if await self.has(cache_key, tiers):
            return False
        return await self.put(cache_key, value, ttl, tiers)

    async def remember(
        self,
        key: KeyLike,
        ttl: Optional[int],
        producer: Callable[[], T],
        tiers: TierSelector = None,
    ) -> T:
        """
        Return the cached value, or produce, store and return it.

        Concurrent callers on a cold key may each run their producer.
        """
        cache_key = self._key(key)
        if cache_key is None:
            return await resolve_value(producer)

        value = await self.get(cache_key, _MISSING, tiers)
        if value is not _MISSING:
            return value

        value = await resolve_value(producer)
        await self.put(cache_key, value, ttl, tiers)
        return value

    async def remember_forever(
        self,
        key: KeyLike,
        producer: Callable[[], T],
        tiers: TierSelector = None,
    ) -> T:
        return await self.remember(key, 0, producer, tiers)

    # ── Deletes ──────────────────────────────────────────────────────

    async def forget(self, key: KeyLike, tiers: TierSelector = None) -> bool:
        """Delete from every targeted tier. An absent key is a success."""
        cache_key = self._key(key)
        if cache_key is None:
            return False
        results = [await tier.forget(cache_key) for tier in self._targets(tiers)]
        ok = all(results)
        if ok:
            self._metrics.record_delete()
        return ok

    async def forget_from(self, tier: Union[CacheLevel, str], key: KeyLike) -> bool:
        cache_key = self._key(key)
        if cache_key is None:
            return False
        ok = await self._tiers[CacheLevel(tier)].forget(cache_key)
        if ok:
            self._metrics.record_delete()
        return ok

    async def flush(self, tiers: TierSelector = None) -> bool:
        results = [await tier.flush() for tier in self._targets(tiers)]
        return all(results)

    async def delete_by_pattern(self, pattern: str, tiers: TierSelector = None) -> int:
        """Glob delete on every capable tier. Returns the summed count."""
        total = 0
        for tier in self._targets(tiers):
            total += await tier.delete_by_pattern(pattern)
        if total:
            self._metrics.record_delete()
        return total

    async def delete_by_tags(self, tags: Iterable[str], tiers: TierSelector = None) -> int:
        tag_set = set(tags)
        if not tag_set:
            return 0
        total = 0
        for tier in self._targets(tiers):
            total += await tier.delete_by_tags(tag_set)
        if total:
            self._metrics.record_delete()
        return total

    # ── Warming & maintenance ────────────────────────────────────────

    @property
    def warming(self):
        if self._warming is None:
            from .warming import CacheWarmingService
            self._warming = CacheWarmingService(self, clock=self._clock, config=self._config)
        return self._warming

    @property
    def maintenance_service(self):
        if self._maintenance is None:
            from .maintenance import CacheMaintenanceService
            self._maintenance = CacheMaintenanceService(self)
        return self._maintenance

    async def warm(
        self,
        producers: Mapping[KeyLike, Callable[[], Any]],
        ttl: Optional[int] = None,
        tiers: TierSelector = None,
    ) -> Dict[str, Dict[str, Any]]:
        return await self.warming.warm(producers, ttl=ttl, tiers=tiers)

    async def maintenance(self, operations: Iterable[str] = ("cleanup", "optimize")) -> Dict[str, bool]:
        return await self.maintenance_service.maintenance(operations)

    # ── Tier switches ────────────────────────────────────────────────

    def toggle_tier(self, tier: Union[CacheLevel, str], enabled: bool) -> bool:
        """Enable or disable a tier. Returns the new state."""
        service = self._tiers[CacheLevel(tier)]
        service.enabled = enabled
        logger.info(f"{service.level.value} tier {'enabled' if enabled else 'disabled'}")
        return service.enabled

    def is_tier_enabled(self, tier: Union[CacheLevel, str]) -> bool:
        return self._tiers[CacheLevel(tier)].enabled

    def enabled_tiers(self) -> List[CacheLevel]:
        return [level for level, tier in self._tiers.items() if tier.enabled]

    def disabled_tiers(self) -> List[CacheLevel]:
        return [level for level, tier in self._tiers.items() if not tier.enabled]

    async def tier_status(self) -> Dict[str, Dict[str, Any]]:
        return {level.value: tier.status() for level, tier in self._tiers.items()}

    # ── Health & stats ───────────────────────────────────────────────

    async def health_check(self) -> Dict[str, bool]:
        """
        Write, read and delete a sample key in every enabled tier.

        Disabled tiers report False.
        """
        results: Dict[str, bool] = {}
        for level, tier in self._tiers.items():
            if not tier.enabled:
                results[level.value] = False
                continue
            written = await tier.put(HEALTH_CHECK_KEY, "ok", ttl=10)
            entry = await tier.get(HEALTH_CHECK_KEY) if written else None
            await tier.forget(HEALTH_CHECK_KEY)
            results[level.value] = entry is not None and entry.value == "ok"
            if not results[level.value]:
                logger.warning(f"Health check failed on {level.value} tier ({tier.store.name})")
        return results

    def get_stats(self) -> Dict[str, Any]:
        stats = self._metrics.snapshot()
        stats["enabled_tiers"] = [level.value for level in self.enabled_tiers()]
        return stats

    def reset_stats(self) -> None:
        self._metrics.reset()

    def __repr__(self) -> str:
        tiers = ", ".join(repr(t) for t in self._tiers.values())
        return f"<CacheManager [{tiers}]>"


__all__ = ["CacheManager", "resolve_value", "HEALTH_CHECK_KEY"]
