"""
TierCache — Per-tier operation adapter.

Wraps one ``TierStore`` for one ``CacheLevel``. Stores raise on failure;
this layer catches everything, logs it, counts it, and hands the manager
a degraded result so no tier error ever reaches a caller.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from .core import CacheEntry, TierStore
from .keys import CacheKey
from .levels import CacheLevel
from .metrics import MetricsCollector

logger = logging.getLogger("tiercache.cache.operations")


class CacheOperationService:
    """
    Uniform operations over one tier.

    TTL resolution: explicit ttl, then the key's ttl, then the namespace
    TTL, then the tier default; capped at the tier's ``max_ttl``. A
    resolved TTL of 0 means no expiry.
    """

    __slots__ = (
        "_level",
        "_store",
        "_metrics",
        "_namespace_ttls",
        "_enabled",
        "_healthy",
    )

    def __init__(
        self,
        level: CacheLevel,
        store: TierStore,
        metrics: MetricsCollector,
        namespace_ttls: Optional[Mapping[str, int]] = None,
        enabled: bool = True,
    ):
        self._level = CacheLevel(level)
        self._store = store
        self._metrics = metrics
        self._namespace_ttls = dict(namespace_ttls or {})
        self._enabled = enabled
        self._healthy = True

    @property
    def level(self) -> CacheLevel:
        return self._level

    @property
    def store(self) -> TierStore:
        return self._store

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = bool(value)

    @property
    def healthy(self) -> bool:
        """False after the last store call failed, until one succeeds."""
        return self._healthy

    # ── TTL ──────────────────────────────────────────────────────────

    def resolve_ttl(self, key: CacheKey, ttl: Optional[int] = None) -> int:
        """
        Explicit ttl, then key ttl, then namespace ttl, then tier default,
        capped at the tier's ``max_ttl``. 0 means no expiry; a capped tier
        that is not durable turns it into the cap.
        """
        if ttl is None:
            ttl = key.ttl
        if ttl is None:
            ttl = self._namespace_ttls.get(key.namespace)
        if ttl is None:
            ttl = self._level.default_ttl

        ttl = max(0, int(ttl))
        cap = self._level.max_ttl
        if cap and (ttl > cap or (ttl == 0 and not self._level.is_durable)):
            ttl = cap
        return ttl

    # ── Failure handling ─────────────────────────────────────────────

    def _failed(self, operation: str, target: Any, error: Exception) -> None:
        logger.warning(
            f"Cache {operation} failed on {self._level.value} tier "
            f"({self._store.name}) for '{target}': {error}"
        )
        self._metrics.record_error(self._level, operation)
        self._healthy = False

    def _succeeded(self) -> None:
        self._healthy = True

    # ── Operations ───────────────────────────────────────────────────

    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        if not self._enabled:
            return None
        try:
            entry = await self._store.get(key.canonical())
        except Exception as e:
            self._failed("get", key, e)
            return None
        self._succeeded()
        return entry

    async def put(self, key: CacheKey, value: Any, ttl: Optional[int] = None) -> bool:
        if not self._enabled:
            return False
        resolved = self.resolve_ttl(key, ttl)
        try:
            await self._store.set(
                key.canonical(),
                value,
                ttl=resolved or None,
                tags=tuple(sorted(key.tags)),
                namespace=key.namespace,
            )
        except Exception as e:
            self._failed("put", key, e)
            return False
        self._succeeded()
        return True

    async def forget(self, key: CacheKey) -> bool:
        """Delete ``key``. An absent key counts as success."""
        if not self._enabled:
            return False
        try:
            await self._store.delete(key.canonical())
        except Exception as e:
            self._failed("forget", key, e)
            return False
        self._succeeded()
        return True

    async def exists(self, key: CacheKey) -> bool:
        if not self._enabled:
            return False
        try:
            found = await self._store.exists(key.canonical())
        except Exception as e:
            self._failed("exists", key, e)
            return False
        self._succeeded()
        return found

    async def flush(self) -> bool:
        if not self._enabled:
            return False
        try:
            removed = await self._store.clear()
        except Exception as e:
            self._failed("flush", "*", e)
            return False
        self._succeeded()
        logger.info(f"Flushed {removed} entries from {self._level.value} tier")
        return True

    async def delete_by_pattern(self, pattern: str) -> int:
        if not self._enabled:
            return 0
        if not self._store.supports_pattern_delete():
            logger.warning(
                f"{self._level.value} tier ({self._store.name}) cannot delete by pattern; "
                f"skipping '{pattern}'"
            )
            return 0
        try:
            deleted = await self._store.delete_by_pattern(pattern)
        except Exception as e:
            self._failed("delete_by_pattern", pattern, e)
            return 0
        self._succeeded()
        return deleted

    async def delete_by_tags(self, tags: Iterable[str]) -> int:
        if not self._enabled:
            return 0
        tag_set = set(tags)
        try:
            deleted = await self._store.delete_by_tags(tag_set)
        except Exception as e:
            self._failed("delete_by_tags", ",".join(sorted(tag_set)), e)
            return 0
        self._succeeded()
        return deleted

    # ── Maintenance ──────────────────────────────────────────────────

    async def maintain(self, operation: str) -> Optional[int]:
        """
        Run a store maintenance hook (``purge_expired``, ``optimize``,
        ``vacuum``, ``reindex``).

        Returns the hook's item count, or None when the hook failed.
        """
        hook = getattr(self._store, operation)
        try:
            processed = await hook()
        except Exception as e:
            self._failed(operation, "*", e)
            return None
        self._succeeded()
        return processed

    async def health_check(self) -> bool:
        try:
            healthy = await self._store.health_check()
        except Exception as e:
            self._failed("health_check", "*", e)
            return False
        self._healthy = bool(healthy)
        return self._healthy

    async def describe(self) -> Dict[str, Any]:
        try:
            return await self._store.describe()
        except Exception as e:
            self._failed("describe", "*", e)
            return {"store": self._store.name, "error": str(e)}

    async def stats(self) -> Dict[str, Any]:
        try:
            stats = await self._store.stats()
        except Exception as e:
            self._failed("stats", "*", e)
            return {"store": self._store.name, "error": str(e)}
        return stats.to_dict()

    def status(self) -> Dict[str, Any]:
        info = self._level.describe()
        info.update({
            "enabled": self._enabled,
            "healthy": self._healthy,
            "store": self._store.name,
            "supports_pattern_delete": self._store.supports_pattern_delete(),
            "distributed": self._store.is_distributed,
        })
        return info

    def __repr__(self) -> str:
        state = "on" if self._enabled else "off"
        return f"<CacheOperationService {self._level.value} store={self._store.name} {state}>"


__all__ = ["CacheOperationService"]
