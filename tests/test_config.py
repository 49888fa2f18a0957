"""
Tests for configuration, wiring and faults.

Covers:
- ConfigLoader: JSON/YAML files, .env files, environment, overrides,
  value parsing, precedence
- build_cache_config: merging and validation
- create_tier_store / create_cache_manager wiring
- Cache fault types and the fault base class
"""

from __future__ import annotations

import json
import logging
import os

import pytest
import yaml

# ── Config ───────────────────────────────────────────────────────────────────
from tiercache.config import ConfigLoader
from tiercache.cache.core import DEFAULT_NAMESPACE_TTLS, CacheConfig

# ── Wiring ───────────────────────────────────────────────────────────────────
from tiercache.cache.factory import (
    build_cache_config,
    create_cache_manager,
    create_tier_store,
)
from tiercache.cache.levels import CacheLevel
from tiercache.cache.tiers import (
    DatabaseTierStore,
    MemoryTierStore,
    NullTierStore,
    RedisTierStore,
    RequestTierStore,
)

# ── Faults ───────────────────────────────────────────────────────────────────
from tiercache.cache.faults import (
    CacheConfigFault,
    CacheFault,
    CacheSerializationFault,
    InvalidKeyFault,
    TierUnavailableFault,
    WarmingStrategyFault,
)
from tiercache.faults import Fault, FaultDomain, Severity


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep stray TIERCACHE_* variables out of every test."""
    for key in list(os.environ):
        if key.startswith("TIERCACHE_"):
            monkeypatch.delenv(key)


# ============================================================================
# ConfigLoader
# ============================================================================


class TestConfigLoader:
    def test_defaults(self):
        loader = ConfigLoader.load()
        assert loader.to_dict() == {}
        assert loader.get_cache_config() == CacheConfig()

    def test_json_file(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps({"memory_max_size": 500, "namespace_ttls": {"statistics": 60}}))
        config = ConfigLoader.load(path=str(path)).get_cache_config()
        assert config.memory_max_size == 500
        assert config.namespace_ttls["statistics"] == 60
        assert config.namespace_ttls["geolocation"] == DEFAULT_NAMESPACE_TTLS["geolocation"]

    def test_yaml_file_with_cache_section(self, tmp_path):
        path = tmp_path / "cache.yaml"
        path.write_text(yaml.safe_dump({"cache": {"database_path": "/var/lib/cache.db", "serializer": "pickle"}}))
        loader = ConfigLoader.load(path=str(path))
        assert loader.get("database_path") == "/var/lib/cache.db"
        assert loader.get_cache_config().serializer == "pickle"

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert ConfigLoader.load(path=str(path)).to_dict() == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(CacheConfigFault):
            ConfigLoader.load(path=str(tmp_path / "nope.json"))

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "cache.toml"
        path.write_text("x = 1")
        with pytest.raises(CacheConfigFault):
            ConfigLoader.load(path=str(path))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{not json")
        with pytest.raises(CacheConfigFault):
            ConfigLoader.load(path=str(path))

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("[1, 2]")
        with pytest.raises(CacheConfigFault):
            ConfigLoader.load(path=str(path))

    def test_env_file(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text(
            "TIERCACHE_MEMORY_ENABLED=false\n"
            "TIERCACHE_NAMESPACE_TTLS__GEOLOCATION=120\n"
            "OTHER_SETTING=ignored\n"
        )
        loader = ConfigLoader.load(env_file=str(env))
        assert loader.to_dict() == {"memory_enabled": False, "namespace_ttls": {"geolocation": 120}}

    def test_missing_env_file_is_ignored(self, tmp_path):
        assert ConfigLoader.load(env_file=str(tmp_path / ".env")).to_dict() == {}

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("TIERCACHE_OPERATION_TIMEOUT", "2.5")
        monkeypatch.setenv("TIERCACHE_DEPENDENCIES", '{"rate_limits": ["statistics"]}')
        config = ConfigLoader.load().get_cache_config()
        assert config.operation_timeout == 2.5
        assert config.dependencies == {"rate_limits": ["statistics"]}

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("SECURITY_CACHE_MEMORY_MAX_SIZE", "42")
        loader = ConfigLoader.load(env_prefix="SECURITY_CACHE_")
        assert loader.get("memory_max_size") == 42

    def test_precedence(self, tmp_path, monkeypatch):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps({"memory_max_size": 100, "log_level": "INFO"}))
        env = tmp_path / ".env"
        env.write_text("TIERCACHE_MEMORY_MAX_SIZE=200\n")
        monkeypatch.setenv("TIERCACHE_MEMORY_MAX_SIZE", "300")

        loader = ConfigLoader.load(path=str(path), env_file=str(env))
        assert loader.get("memory_max_size") == 300
        assert loader.get("log_level") == "INFO"

        loader = ConfigLoader.load(path=str(path), env_file=str(env), overrides={"memory_max_size": 400})
        assert loader.get("memory_max_size") == 400

    def test_nested_overrides_merge(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps({"namespace_ttls": {"statistics": 60, "geolocation": 10}}))
        loader = ConfigLoader.load(path=str(path), overrides={"namespace_ttls": {"statistics": 30}})
        assert loader.get("namespace_ttls") == {"statistics": 30, "geolocation": 10}

    @pytest.mark.parametrize(
        "raw, parsed",
        [
            ("true", True),
            ("Yes", True),
            ("off", False),
            ("17", 17),
            ("0.25", 0.25),
            ('{"a": 1}', {"a": 1}),
            ("[1, 2]", [1, 2]),
            ("{broken", "{broken"),
            ("redis://localhost:6379/0", "redis://localhost:6379/0"),
        ],
    )
    def test_parse_value(self, raw, parsed):
        assert ConfigLoader()._parse_value(raw) == parsed

    def test_get_default(self):
        assert ConfigLoader.load().get("missing.path", "fallback") == "fallback"


# ============================================================================
# build_cache_config
# ============================================================================


class TestBuildCacheConfig:
    def test_empty(self):
        assert build_cache_config({}) == CacheConfig()

    def test_values_applied(self):
        config = build_cache_config({
            "memory_backend": "redis",
            "redis_url": "redis://cache:6379/2",
            "min_hit_ratio_threshold": 0.9,
        })
        assert config.memory_backend == "redis"
        assert config.redis_url == "redis://cache:6379/2"
        assert config.min_hit_ratio_threshold == 0.9

    def test_mappings_merge_over_defaults(self):
        config = build_cache_config({"warm_configuration": {"max_submissions_per_minute": 10}})
        assert config.warm_configuration["max_submissions_per_minute"] == 10
        assert config.warm_configuration["ip_reputation_threshold"] == 0.7

    def test_unknown_keys_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tiercache.cache.factory"):
            build_cache_config({"eviction_policy": "lfu"})
        assert "eviction_policy" in caplog.text

    @pytest.mark.parametrize(
        "settings",
        [
            {"serializer": "xml"},
            {"memory_backend": "memcached"},
            {"memory_max_size": 0},
            {"memory_max_size": -5},
            {"operation_timeout": "fast"},
            {"redis_max_connections": True},
            {"namespace_ttls": {"statistics": -1}},
            {"namespace_ttls": {"statistics": "60"}},
            {"namespace_ttls": ["statistics"]},
            {"dependencies": {"configuration": "analytics"}},
            {"min_hit_ratio_threshold": 1.5},
            {"log_level": "LOUD"},
        ],
    )
    def test_invalid(self, settings):
        with pytest.raises(CacheConfigFault):
            build_cache_config(settings)

    def test_log_level_case_insensitive(self):
        assert build_cache_config({"log_level": "debug"}).log_level == "debug"

    def test_to_dict(self):
        data = CacheConfig(database_path="x.db").to_dict()
        assert data["database_path"] == "x.db"
        assert data["namespace_ttls"] == DEFAULT_NAMESPACE_TTLS


# ============================================================================
# Wiring
# ============================================================================


class TestCreateTierStore:
    def test_default_stores(self, clock):
        config = CacheConfig()
        assert isinstance(create_tier_store(CacheLevel.REQUEST, config, clock), RequestTierStore)
        assert isinstance(create_tier_store("memory", config, clock), MemoryTierStore)
        assert isinstance(create_tier_store("database", config, clock), DatabaseTierStore)

    def test_redis_backend(self):
        config = CacheConfig(memory_backend="redis", key_prefix="sec:")
        store = create_tier_store("memory", config)
        assert isinstance(store, RedisTierStore)
        assert store._full_key("a:1") == "sec:a:1"

    def test_disabled_tier_gets_null_store(self):
        assert isinstance(create_tier_store("database", CacheConfig(database_enabled=False)), NullTierStore)

    def test_globally_disabled(self):
        config = CacheConfig(enabled=False)
        for level in CacheLevel:
            assert isinstance(create_tier_store(level, config), NullTierStore)

    def test_bad_table_name(self):
        with pytest.raises(CacheConfigFault):
            create_tier_store("database", CacheConfig(database_table="drop table"))

    def test_bad_serializer(self):
        with pytest.raises(CacheConfigFault):
            create_tier_store("database", CacheConfig(serializer="xml"))

    def test_unknown_memory_backend(self):
        with pytest.raises(CacheConfigFault):
            create_tier_store("memory", CacheConfig(memory_backend="memcached"))


class TestCreateCacheManager:
    def test_wires_config(self, tmp_path, clock):
        config = CacheConfig(database_path=str(tmp_path / "c.db"), memory_enabled=False, log_level="ERROR")
        manager = create_cache_manager(config, clock=clock)
        assert manager.config is config
        assert manager.clock is clock
        assert manager.enabled_tiers() == [CacheLevel.REQUEST, CacheLevel.DATABASE]
        assert manager.tier("memory").store.name == "null"
        assert logging.getLogger("tiercache").level == logging.ERROR
        logging.getLogger("tiercache").setLevel(logging.NOTSET)

    @pytest.mark.asyncio
    async def test_disabled_cache_still_answers(self):
        manager = create_cache_manager(CacheConfig(enabled=False, log_level="WARNING"))
        async with manager:
            assert await manager.put("configuration:x", 1) is True
            assert await manager.get("configuration:x", "miss") == "miss"
        logging.getLogger("tiercache").setLevel(logging.NOTSET)


# ============================================================================
# Faults
# ============================================================================


class TestCacheFaults:
    def test_domain(self):
        fault = TierUnavailableFault("database", "get", "timed out after 5.0s")
        assert isinstance(fault, CacheFault)
        assert isinstance(fault, Fault)
        assert fault.domain == FaultDomain.CACHE
        assert fault.code == "CACHE_TIER_UNAVAILABLE"
        assert fault.retryable is True
        assert fault.metadata["tier"] == "database"

    def test_serialization_fault(self):
        fault = CacheSerializationFault("k:1", "serialize", "circular reference")
        assert fault.retryable is False
        assert "k:1" in fault.message

    def test_invalid_key_errors(self):
        fault = InvalidKeyFault("bad key", ["key contains invalid characters"])
        assert fault.errors == ["key contains invalid characters"]
        assert fault.severity is Severity.ERROR

    def test_config_fault_is_fatal(self):
        fault = CacheConfigFault("memory_max_size must be positive")
        assert fault.severity is Severity.FATAL
        assert fault.severity.log_level == logging.CRITICAL

    def test_to_dict(self):
        data = WarmingStrategyFault("critical_data", "feed offline").to_dict()
        assert data["code"] == "CACHE_WARMING_FAILED"
        assert data["domain"] == "cache"
        assert data["severity"] == "warn"
        assert data["metadata"] == {"strategy": "critical_data", "reason": "feed offline"}

    def test_str(self):
        assert str(CacheConfigFault("x")) == "[CACHE_CONFIG_INVALID] Invalid cache configuration: x"

    def test_fault_requires_code_message_domain(self):
        with pytest.raises(TypeError):
            Fault(code="X")
