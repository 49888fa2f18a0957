"""
TierCache — Async multi-level cache with dependency-aware invalidation.

Provides a three-tier caching layer with:
- **Tiers**: Request (per operation), Memory (in-process LRU or Redis),
  Database (SQLite), searched in priority order with backfill
- **Degradation**: tier failures become misses, never exceptions
- **Keys**: canonical namespaced keys, hierarchical and time-bucketed
- **Invalidation**: namespace dependency graph with breadth-first cascade
- **Warming**: producer maps and named warming strategies
- **Maintenance**: cleanup, optimize, vacuum, reindex, validate
- **Monitoring**: metrics history, alerts, health classification
- **Fault domain**: typed cache faults

Usage::

    from tiercache.cache import create_cache_manager, CacheConfig

    manager = create_cache_manager(CacheConfig(database_path="cache.db"))
    async with manager:
        async with manager.request_scope():
            score = await manager.remember(
                "ip_reputation:203.0.113.9", 3600, lambda: lookup("203.0.113.9")
            )
"""

__version__ = "1.0.0"

from .core import (
    CacheConfig,
    CacheEntry,
    CacheSerializer,
    CacheStats,
    TierStore,
)

from .keys import CacheKey, KeyLike, namespace_pattern, to_key
from .levels import CacheLevel

from .tiers import (
    RequestTierStore,
    MemoryTierStore,
    RedisTierStore,
    DatabaseTierStore,
    NullTierStore,
)

from .metrics import MetricsCollector
from .operations import CacheOperationService
from .manager import CacheManager
from .key_manager import CacheKeyManager
from .invalidation import CacheInvalidationService, InvalidationEvent
from .warming import CacheWarmingService
from .maintenance import CacheMaintenanceService
from .monitor import CachePerformanceMonitor

from .serializers import (
    JsonCacheSerializer,
    PickleCacheSerializer,
    MsgpackCacheSerializer,
)

from .faults import (
    CacheFault,
    TierUnavailableFault,
    CacheSerializationFault,
    InvalidKeyFault,
    CacheConfigFault,
    WarmingStrategyFault,
)

from .factory import (
    build_cache_config,
    create_cache_manager,
    create_invalidation_service,
    create_performance_monitor,
    create_tier_store,
)

__all__ = [
    # Core
    "CacheConfig",
    "CacheEntry",
    "CacheSerializer",
    "CacheStats",
    "TierStore",
    # Keys & tiers
    "CacheKey",
    "KeyLike",
    "namespace_pattern",
    "to_key",
    "CacheLevel",
    # Stores
    "RequestTierStore",
    "MemoryTierStore",
    "RedisTierStore",
    "DatabaseTierStore",
    "NullTierStore",
    # Services
    "MetricsCollector",
    "CacheOperationService",
    "CacheManager",
    "CacheKeyManager",
    "CacheInvalidationService",
    "InvalidationEvent",
    "CacheWarmingService",
    "CacheMaintenanceService",
    "CachePerformanceMonitor",
    # Serializers
    "JsonCacheSerializer",
    "PickleCacheSerializer",
    "MsgpackCacheSerializer",
    # Faults
    "CacheFault",
    "TierUnavailableFault",
    "CacheSerializationFault",
    "InvalidKeyFault",
    "CacheConfigFault",
    "WarmingStrategyFault",
    # Wiring
    "build_cache_config",
    "create_cache_manager",
    "create_invalidation_service",
    "create_performance_monitor",
    "create_tier_store",
]
