"""
TierCache — Wiring.

Builds stores, the manager and its companion services from a
``CacheConfig``. Everything is constructed explicitly; nothing here is
registered globally.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Any, Dict, Optional, Union

from ..clock import Clock, SystemClock
from .core import CacheConfig, TierStore
from .faults import CacheConfigFault
from .invalidation import CacheInvalidationService
from .levels import CacheLevel
from .manager import CacheManager
from .metrics import MetricsCollector
from .monitor import CachePerformanceMonitor
from .serializers import SERIALIZERS, get_serializer
from .tiers.database import DatabaseTierStore
from .tiers.memory import MemoryTierStore
from .tiers.null import NullTierStore
from .tiers.request import RequestTierStore

logger = logging.getLogger("tiercache.cache.factory")

MEMORY_BACKENDS = ("memory", "redis")


def create_tier_store(
    level: Union[CacheLevel, str],
    config: CacheConfig,
    clock: Optional[Clock] = None,
) -> TierStore:
    """
    Factory: create the store for one tier from configuration.

    A tier switched off in configuration (or a globally disabled cache)
    gets a ``NullTierStore``.

    Raises:
        CacheConfigFault: If the store cannot be built from ``config``
    """
    level = CacheLevel(level)
    clock = clock or SystemClock()

    switches = {
        CacheLevel.REQUEST: config.request_enabled,
        CacheLevel.MEMORY: config.memory_enabled,
        CacheLevel.DATABASE: config.database_enabled,
    }
    if not config.enabled or not switches[level]:
        return NullTierStore()

    if level is CacheLevel.REQUEST:
        return RequestTierStore(clock=clock)

    if level is CacheLevel.MEMORY:
        backend = config.memory_backend.lower()
        if backend == "memory":
            return MemoryTierStore(
                max_size=config.memory_max_size,
                sweep_interval=config.memory_sweep_interval,
                clock=clock,
            )
        elif backend == "redis":
            from .tiers.redis import RedisTierStore

            return RedisTierStore(
                url=config.redis_url,
                max_connections=config.redis_max_connections,
                socket_timeout=config.redis_socket_timeout,
                connect_timeout=config.redis_socket_connect_timeout,
                key_prefix=config.key_prefix,
                serializer=_serializer(config),
            )
        else:
            raise CacheConfigFault(f"unknown memory backend: {config.memory_backend}")

    try:
        return DatabaseTierStore(
            path=config.database_path,
            table=config.database_table,
            serializer=_serializer(config),
            clock=clock,
            operation_timeout=config.operation_timeout,
        )
    except ValueError as e:
        raise CacheConfigFault(str(e)) from e


def _serializer(config: CacheConfig):
    try:
        return get_serializer(config.serializer)
    except (ValueError, ImportError) as e:
        raise CacheConfigFault(str(e)) from e


def create_cache_manager(
    config: Optional[CacheConfig] = None,
    clock: Optional[Clock] = None,
    metrics: Optional[MetricsCollector] = None,
) -> CacheManager:
    """
    Factory: create a CacheManager with all three tiers from configuration.

    Applies ``config.log_level`` to the ``tiercache`` logger.
    """
    config = config or CacheConfig()
    clock = clock or SystemClock()
    logging.getLogger("tiercache").setLevel(config.log_level.upper())

    manager = CacheManager(
        request=create_tier_store(CacheLevel.REQUEST, config, clock),
        memory=create_tier_store(CacheLevel.MEMORY, config, clock),
        database=create_tier_store(CacheLevel.DATABASE, config, clock),
        metrics=metrics or MetricsCollector(),
        clock=clock,
        config=config,
    )
    logger.debug(f"Cache manager created: {manager!r}")
    return manager


def create_invalidation_service(
    manager: CacheManager,
    config: Optional[CacheConfig] = None,
) -> CacheInvalidationService:
    config = config or manager.config
    return CacheInvalidationService(
        manager,
        dependencies=config.dependencies,
        seed_defaults=config.seed_dependencies,
    )


def create_performance_monitor(
    manager: CacheManager,
    config: Optional[CacheConfig] = None,
) -> CachePerformanceMonitor:
    config = config or manager.config
    return CachePerformanceMonitor(
        manager,
        clock=manager.clock,
        thresholds=config.thresholds,
        history_size=config.metrics_history_size,
    )


def build_cache_config(config_dict: Dict[str, Any]) -> CacheConfig:
    """
    Build CacheConfig from dictionary (e.g., from ConfigLoader).

    Mapping-valued settings are merged over their defaults, so a partial
    ``namespace_ttls`` only overrides the namespaces it names.

    Raises:
        CacheConfigFault: On unknown serializer or backend names and
            negative sizes or timeouts.
    """
    known = {f.name for f in fields(CacheConfig)}
    unknown = sorted(set(config_dict) - known)
    if unknown:
        logger.warning(f"Ignoring unknown cache config keys: {', '.join(unknown)}")

    config = CacheConfig()
    for name in known & set(config_dict):
        value = config_dict[name]
        current = getattr(config, name)
        if isinstance(current, dict):
            if not isinstance(value, dict):
                raise CacheConfigFault(f"{name} must be a mapping")
            merged = dict(current)
            merged.update(value)
            value = merged
        setattr(config, name, value)

    _validate(config)
    return config


def _validate(config: CacheConfig) -> None:
    if config.serializer not in SERIALIZERS:
        raise CacheConfigFault(
            f"unknown serializer '{config.serializer}' (expected one of {', '.join(SERIALIZERS)})"
        )
    if config.memory_backend not in MEMORY_BACKENDS:
        raise CacheConfigFault(
            f"unknown memory backend '{config.memory_backend}' (expected one of {', '.join(MEMORY_BACKENDS)})"
        )

    for name in (
        "memory_max_size",
        "memory_sweep_interval",
        "redis_max_connections",
        "redis_socket_timeout",
        "redis_socket_connect_timeout",
        "operation_timeout",
        "metrics_history_size",
    ):
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise CacheConfigFault(f"{name} must be a number, got {value!r}")
        if value < 0:
            raise CacheConfigFault(f"{name} must not be negative, got {value}")

    if config.memory_max_size == 0:
        raise CacheConfigFault("memory_max_size must be positive")

    for namespace, ttl in config.namespace_ttls.items():
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < 0:
            raise CacheConfigFault(f"namespace TTL for '{namespace}' must be a non-negative integer")

    for namespace, dependents in config.dependencies.items():
        if isinstance(dependents, str) or not isinstance(dependents, (list, tuple)):
            raise CacheConfigFault(f"dependencies for '{namespace}' must be a list of namespaces")

    if not 0.0 <= config.min_hit_ratio_threshold <= 1.0:
        raise CacheConfigFault("min_hit_ratio_threshold must be between 0 and 1")

    level = config.log_level.upper() if isinstance(config.log_level, str) else None
    if level is None or not isinstance(logging.getLevelName(level), int):
        raise CacheConfigFault(f"unknown log level {config.log_level!r}")


__all__ = [
    "create_tier_store",
    "create_cache_manager",
    "create_invalidation_service",
    "create_performance_monitor",
    "build_cache_config",
]
