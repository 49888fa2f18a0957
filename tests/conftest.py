"""
Shared test fixtures and helpers for the TierCache test suite.
"""

from datetime import datetime, timezone

import pytest

from tiercache.clock import ManualClock
from tiercache.cache.core import CacheConfig
from tiercache.cache.manager import CacheManager
from tiercache.cache.metrics import MetricsCollector
from tiercache.cache.tiers.memory import MemoryTierStore
from tiercache.cache.tiers.request import RequestTierStore
from tiercache.testing import MockTierStore


# ============================================================================
# Clock
# ============================================================================


@pytest.fixture
def clock():
    """Deterministic clock at 2025-01-15 10:30 UTC (a Wednesday)."""
    return ManualClock(datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc))


# ============================================================================
# Stores
# ============================================================================


@pytest.fixture
def request_store(clock):
    return RequestTierStore(clock=clock)


@pytest.fixture
def memory_store(clock):
    """Mock Memory tier with failure injection."""
    return MockTierStore(clock=clock, name="memory")


@pytest.fixture
def database_store(clock):
    """Mock Database tier with failure injection."""
    return MockTierStore(clock=clock, name="database")


@pytest.fixture
def lru_store(clock):
    """Real in-process LRU store without the background sweeper."""
    return MemoryTierStore(max_size=100, sweep_interval=0, clock=clock)


# ============================================================================
# Manager
# ============================================================================


@pytest.fixture
def cache_config():
    return CacheConfig(namespace_ttls={"ip_reputation": 3600, "geolocation": 604800})


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def cache_manager(request_store, memory_store, database_store, metrics, clock, cache_config):
    """CacheManager over a real Request tier and mock Memory/Database tiers."""
    return CacheManager(
        request_store,
        memory_store,
        database_store,
        metrics=metrics,
        clock=clock,
        config=cache_config,
    )
