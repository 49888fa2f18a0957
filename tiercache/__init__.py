"""
TierCache - Async multi-level cache for security data services

Complete integration of:
- Cache: Request, Memory and Database tiers behind one manager
- Invalidation: Namespace dependency graph with cascading clears
- Warming & maintenance: Pre-population and store housekeeping
- Monitoring: Metrics history, alerts and health status
- Faults: Structured error handling with fault domains
- Config: Layered configuration from files, .env and environment
"""

__version__ = "1.0.0"

# ============================================================================
# Core
# ============================================================================

from .clock import Clock, SystemClock, ManualClock
from .config import ConfigLoader

from .cache import (
    CacheConfig,
    CacheKey,
    CacheLevel,
    CacheManager,
    CacheKeyManager,
    CacheInvalidationService,
    CacheWarmingService,
    CacheMaintenanceService,
    CachePerformanceMonitor,
    MetricsCollector,
    build_cache_config,
    create_cache_manager,
    create_invalidation_service,
    create_performance_monitor,
)

# ============================================================================
# Faults
# ============================================================================

from .faults import Fault, FaultDomain, Severity
from .cache.faults import (
    CacheFault,
    TierUnavailableFault,
    CacheSerializationFault,
    InvalidKeyFault,
    CacheConfigFault,
    WarmingStrategyFault,
)

__all__ = [
    # Core
    "Clock",
    "SystemClock",
    "ManualClock",
    "ConfigLoader",
    "CacheConfig",
    "CacheKey",
    "CacheLevel",
    "CacheManager",
    "CacheKeyManager",
    "CacheInvalidationService",
    "CacheWarmingService",
    "CacheMaintenanceService",
    "CachePerformanceMonitor",
    "MetricsCollector",
    "build_cache_config",
    "create_cache_manager",
    "create_invalidation_service",
    "create_performance_monitor",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "CacheFault",
    "TierUnavailableFault",
    "CacheSerializationFault",
    "InvalidKeyFault",
    "CacheConfigFault",
    "WarmingStrategyFault",
]
