"""
Tests for cache addressing.

Covers:
- CacheKey: canonical form, hierarchy, equality, validation, parsing
- CacheLevel: priority order, TTL profile, tier selectors
- CacheKeyManager: content hashing, time buckets, versioned/tagged/template
  keys, named generators
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

# ── Keys ─────────────────────────────────────────────────────────────────────
from tiercache.cache.keys import (
    MAX_KEY_LENGTH,
    MAX_TTL,
    CacheKey,
    is_valid_namespace,
    namespace_pattern,
    to_key,
)

# ── Tiers ────────────────────────────────────────────────────────────────────
from tiercache.cache.levels import CacheLevel

# ── Key manager ──────────────────────────────────────────────────────────────
from tiercache.cache.key_manager import CacheKeyManager

# ── Faults ───────────────────────────────────────────────────────────────────
from tiercache.cache.faults import InvalidKeyFault


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def key_manager(clock):
    return CacheKeyManager(clock=clock)


# ============================================================================
# CacheKey
# ============================================================================


class TestCacheKey:
    def test_root_canonical(self):
        key = CacheKey(namespace="ip_reputation", identifier="1.2.3.4")
        assert key.canonical() == "ip_reputation:1.2.3.4"
        assert str(key) == "ip_reputation:1.2.3.4"
        assert not key.is_hierarchical

    def test_child_extends_parent(self):
        root = CacheKey(namespace="analytics", identifier="daily")
        child = root.create_child("2025-01-15")
        assert child.canonical() == "analytics:daily:2025-01-15"
        assert child.namespace == "analytics"
        assert child.is_hierarchical
        assert child.segments == ["analytics", "daily", "2025-01-15"]

    def test_grandchild(self):
        key = CacheKey(namespace="analytics", identifier="daily").create_child("eu").create_child("web")
        assert key.canonical() == "analytics:daily:eu:web"

    def test_sibling_shares_parent(self):
        child = CacheKey(namespace="analytics", identifier="daily").create_child("2025-01-15")
        sibling = child.create_sibling("2025-01-16")
        assert sibling.canonical() == "analytics:daily:2025-01-16"
        assert sibling.parent == child.parent

    def test_child_inherits_tags_and_ttl(self):
        root = CacheKey(namespace="spam_patterns", identifier="keyword", tags=frozenset({"detection"}), ttl=60)
        child = root.create_child("7")
        assert child.tags == frozenset({"detection"})
        assert child.ttl == 60

    def test_equality_ignores_tags_and_ttl(self):
        a = CacheKey(namespace="configuration", identifier="limits")
        b = a.with_tags("settings").with_ttl(30)
        assert a == b
        assert hash(a) == hash(b)
        assert b.tags == frozenset({"settings"})
        assert b.ttl == 30

    def test_tags_coerced_to_frozenset(self):
        key = CacheKey(namespace="ns", identifier="id", tags=["a", "b", "a"])
        assert key.tags == frozenset({"a", "b"})

    def test_with_tags_merges(self):
        key = CacheKey.make("id", namespace="ns", tags=["a"]).with_tags("b")
        assert key.tags == frozenset({"a", "b"})

    def test_parse_with_namespace(self):
        key = CacheKey.parse("rate_limits:1.2.3.4:60")
        assert key.namespace == "rate_limits"
        assert key.identifier == "1.2.3.4:60"
        assert key.canonical() == "rate_limits:1.2.3.4:60"

    def test_parse_without_namespace(self):
        key = CacheKey.parse("orphan", default_namespace="misc")
        assert key.namespace == "misc"
        assert key.canonical() == "misc:orphan"

    def test_to_key_passthrough(self):
        key = CacheKey(namespace="ns", identifier="id")
        assert to_key(key) is key
        assert to_key("ns:id") == key

    def test_namespace_pattern(self):
        assert namespace_pattern("geolocation") == "geolocation:*"

    def test_repr_shows_tags_and_ttl(self):
        key = CacheKey.make("id", namespace="ns", tags=["t"], ttl=5)
        assert "ns:id" in repr(key)
        assert "ttl=5" in repr(key)


class TestCacheKeyValidation:
    def test_valid_key(self):
        assert CacheKey(namespace="geolocation", identifier="10.0.0.1").is_valid()

    def test_empty_namespace(self):
        errors = CacheKey(namespace="", identifier="x").validation_errors()
        assert "namespace is required" in errors

    def test_empty_identifier(self):
        errors = CacheKey(namespace="ns", identifier="").validation_errors()
        assert "identifier is required" in errors

    def test_namespace_with_separator_rejected(self):
        errors = CacheKey(namespace="a:b", identifier="x").validation_errors()
        assert any("namespace contains invalid characters" in e for e in errors)

    def test_whitespace_rejected(self):
        errors = CacheKey(namespace="ns", identifier="has space").validation_errors()
        assert "key contains invalid characters" in errors

    def test_structural_check_allows_free_form_identifiers(self):
        for identifier in ("user@example.com", "10.0.0.0/8", "has space"):
            assert CacheKey(namespace="ns", identifier=identifier).is_valid(strict=False)

    def test_structural_check_still_rejects_malformed_keys(self):
        assert not CacheKey(namespace="bad ns", identifier="x").is_valid(strict=False)
        assert not CacheKey(namespace="ns", identifier="").is_valid(strict=False)
        assert not CacheKey(namespace="ns", identifier="x" * MAX_KEY_LENGTH).is_valid(strict=False)
        assert not CacheKey(namespace="ns", identifier="x", ttl=-1).is_valid(strict=False)

    @pytest.mark.parametrize(
        "namespace, expected",
        [
            ("ip_reputation", True),
            ("v1.stats-x", True),
            ("", False),
            ("*", False),
            ("ip_*", False),
            ("a:b", False),
        ],
    )
    def test_is_valid_namespace(self, namespace, expected):
        assert is_valid_namespace(namespace) is expected

    def test_length_limit(self):
        ok = CacheKey(namespace="ns", identifier="x" * (MAX_KEY_LENGTH - 3))
        too_long = CacheKey(namespace="ns", identifier="x" * (MAX_KEY_LENGTH - 2))
        assert ok.is_valid()
        assert any("exceeds" in e for e in too_long.validation_errors())

    @pytest.mark.parametrize("ttl", [-1, MAX_TTL + 1])
    def test_ttl_out_of_range(self, ttl):
        assert not CacheKey(namespace="ns", identifier="id", ttl=ttl).is_valid()

    @pytest.mark.parametrize("ttl", [0, 1, MAX_TTL])
    def test_ttl_in_range(self, ttl):
        assert CacheKey(namespace="ns", identifier="id", ttl=ttl).is_valid()


# ============================================================================
# CacheLevel
# ============================================================================


class TestCacheLevel:
    def test_priority_order(self):
        assert CacheLevel.by_priority() == [CacheLevel.REQUEST, CacheLevel.MEMORY, CacheLevel.DATABASE]

    def test_ttl_profile(self):
        assert CacheLevel.REQUEST.default_ttl == 0
        assert CacheLevel.MEMORY.default_ttl == 3600
        assert CacheLevel.DATABASE.default_ttl == 86400
        assert CacheLevel.MEMORY.max_ttl == 43200
        assert CacheLevel.DATABASE.max_ttl == MAX_TTL

    def test_string_values(self):
        assert CacheLevel("memory") is CacheLevel.MEMORY
        assert CacheLevel.DATABASE == "database"

    def test_coerce_none_selects_all(self):
        assert CacheLevel.coerce(None) == CacheLevel.by_priority()

    def test_coerce_single(self):
        assert CacheLevel.coerce("memory") == [CacheLevel.MEMORY]

    def test_coerce_sorts_and_dedupes(self):
        selected = CacheLevel.coerce(["database", CacheLevel.REQUEST, "database"])
        assert selected == [CacheLevel.REQUEST, CacheLevel.DATABASE]

    def test_coerce_unknown(self):
        with pytest.raises(ValueError):
            CacheLevel.coerce("disk")

    def test_describe(self):
        info = CacheLevel.MEMORY.describe()
        assert info["level"] == "memory"
        assert info["priority"] == 2
        assert info["expected_response_time"] == "1.0-5.0ms"
        assert info["supports_tagging"] is True
        assert CacheLevel.REQUEST.describe()["supports_distribution"] is False


# ============================================================================
# CacheKeyManager
# ============================================================================


class TestGenerate:
    def test_parameter_order_independent(self, key_manager):
        a = key_manager.generate("analysis_results", {"ip": "1.2.3.4", "form": "signup"})
        b = key_manager.generate("analysis_results", {"form": "signup", "ip": "1.2.3.4"})
        assert a == b

    def test_different_parameters_differ(self, key_manager):
        a = key_manager.generate("analysis_results", {"ip": "1.2.3.4"})
        b = key_manager.generate("analysis_results", {"ip": "1.2.3.5"})
        assert a != b

    def test_digest_shape(self, key_manager):
        key = key_manager.generate("analysis_results", {"n": 1})
        assert key.namespace == "analysis_results"
        assert len(key.identifier) == 32
        int(key.identifier, 16)

    def test_nested_parameters(self, key_manager):
        a = key_manager.generate("ns", {"filters": {"b": 2, "a": 1}})
        b = key_manager.generate("ns", {"filters": {"a": 1, "b": 2}})
        assert a == b

    def test_invalid_namespace(self, key_manager):
        with pytest.raises(InvalidKeyFault):
            key_manager.generate("bad ns", {"x": 1})


class TestTimeBasedKeys:
    def test_hour_bucket(self, key_manager):
        key = key_manager.create_time_based("statistics", "hour")
        assert key.canonical() == "statistics:2025-01-15-10"
        assert key.ttl == 1800
        assert key.tags == frozenset({"time_based", "hour"})

    def test_day_bucket(self, key_manager):
        key = key_manager.create_time_based("statistics", "day")
        assert key.canonical() == "statistics:2025-01-15"
        assert key.ttl == 48600

    def test_week_bucket(self, key_manager):
        key = key_manager.create_time_based("statistics", "week")
        assert key.canonical() == "statistics:2025-W03"
        assert key.ttl == 4 * 86400 + 48600

    def test_week_bucket_uses_iso_year(self, key_manager, clock):
        clock.set(datetime(2024, 12, 31, 12, 0, tzinfo=timezone.utc))
        key = key_manager.create_time_based("statistics", "week")
        assert key.identifier == "2025-W01"

    def test_month_bucket_ttl_capped(self, key_manager):
        key = key_manager.create_time_based("statistics", "month")
        assert key.canonical() == "statistics:2025-01"
        assert key.ttl == MAX_TTL
        assert key.is_valid()

    def test_month_bucket_rolls_year(self, key_manager, clock):
        clock.set(datetime(2024, 12, 30, 12, 0, tzinfo=timezone.utc))
        key = key_manager.create_time_based("statistics", "month")
        assert key.identifier == "2024-12"
        assert key.ttl == 36 * 3600

    def test_same_bucket_same_key(self, key_manager, clock):
        first = key_manager.create_time_based("rate_limits", "hour", identifier="1.2.3.4")
        clock.advance(minutes=29)
        second = key_manager.create_time_based("rate_limits", "hour", identifier="1.2.3.4")
        assert first == second
        assert second.ttl == 60

    def test_boundary_gives_new_key(self, key_manager, clock):
        first = key_manager.create_time_based("rate_limits", "hour")
        clock.advance(minutes=30)
        second = key_manager.create_time_based("rate_limits", "hour")
        assert first != second
        assert second.identifier == "2025-01-15-11"
        assert second.ttl == 3600

    def test_ttl_at_least_one_second(self, key_manager, clock):
        clock.advance(seconds=59.5, minutes=29)
        key = key_manager.create_time_based("rate_limits", "hour")
        assert key.ttl == 1

    def test_identifier_becomes_parent(self, key_manager):
        key = key_manager.create_time_based("rate_limits", "day", identifier="1.2.3.4")
        assert key.canonical() == "rate_limits:1.2.3.4:2025-01-15"
        assert key.namespace == "rate_limits"

    def test_unknown_granularity(self, key_manager):
        with pytest.raises(InvalidKeyFault) as exc_info:
            key_manager.create_time_based("statistics", "fortnight")
        assert "unknown granularity" in exc_info.value.errors[0]


class TestKeyFactories:
    def test_hierarchical_root(self, key_manager):
        root = key_manager.create_hierarchical("analytics", "daily")
        assert root.canonical() == "analytics:daily"
        assert root.create_child("eu").canonical() == "analytics:daily:eu"

    def test_hierarchical_invalid(self, key_manager):
        with pytest.raises(InvalidKeyFault):
            key_manager.create_hierarchical("analytics", "")

    def test_versioned(self, key_manager):
        key = key_manager.create_versioned("configuration", "thresholds", 3)
        assert key.canonical() == "configuration:thresholds.v3"
        assert "versioned" in key.tags

    def test_tagged(self, key_manager):
        key = key_manager.create_tagged("ip_reputation", "1.2.3.4", ["blocklist", "security"])
        assert key.tags == frozenset({"blocklist", "security"})

    def test_from_pattern(self, key_manager):
        key = key_manager.create_from_pattern("rate_limits:{ip}:{window}", {"ip": "1.2.3.4", "window": 60})
        assert key.namespace == "rate_limits"
        assert key.canonical() == "rate_limits:1.2.3.4:60"

    def test_from_pattern_missing_value(self, key_manager):
        with pytest.raises(InvalidKeyFault) as exc_info:
            key_manager.create_from_pattern("rate_limits:{ip}:{window}", {"ip": "1.2.3.4"})
        assert exc_info.value.errors == ["missing value for placeholder 'window'"]

    def test_from_pattern_requires_namespace(self, key_manager):
        with pytest.raises(InvalidKeyFault):
            key_manager.create_from_pattern("{ip}", {"ip": "host"})

    def test_validate_key(self, key_manager):
        assert key_manager.validate_key("configuration:limits") == {"valid": True, "errors": []}
        result = key_manager.validate_key("bad key")
        assert result["valid"] is False
        assert result["errors"]

    def test_namespace_ttl_from_config(self, key_manager):
        assert key_manager.namespace_ttl("geolocation") == 604800
        assert key_manager.namespace_ttl("unknown") is None


class TestKeyGenerators:
    def test_builtin_generators(self, key_manager):
        assert key_manager.get_generators() == [
            "analytics",
            "configuration",
            "geolocation",
            "ip_reputation",
            "spam_pattern",
        ]

    def test_ip_reputation(self, key_manager):
        key = key_manager.generate_with("ip_reputation", ip="203.0.113.9")
        assert key.canonical() == "ip_reputation:203.0.113.9"
        assert "security" in key.tags

    def test_spam_pattern(self, key_manager):
        assert key_manager.generate_with("spam_pattern", pattern_type="keyword").canonical() == (
            "spam_patterns:keyword"
        )
        key = key_manager.generate_with("spam_pattern", pattern_type="keyword", pattern_id=7)
        assert key.canonical() == "spam_patterns:keyword:7"
        assert key.namespace == "spam_patterns"

    def test_geolocation_and_configuration(self, key_manager):
        assert key_manager.generate_with("geolocation", ip="10.0.0.1").canonical() == "geolocation:10.0.0.1"
        assert key_manager.generate_with("configuration", name="limits").canonical() == "configuration:limits"

    def test_analytics_dimensions_sorted(self, key_manager):
        key = key_manager.generate_with(
            "analytics", metric="submissions", date="2025-01-15", region="eu", channel="web"
        )
        assert key.canonical() == "analytics:submissions:2025-01-15:channel-web:region-eu"

    def test_custom_generator(self, key_manager):
        key_manager.register_generator(
            "session", lambda user: CacheKey(namespace="sessions", identifier=str(user))
        )
        assert key_manager.generate_with("session", user=42).canonical() == "sessions:42"
        assert "session" in key_manager.get_generators()

    def test_unknown_generator(self, key_manager):
        with pytest.raises(InvalidKeyFault):
            key_manager.generate_with("nope")

    def test_bad_parameters(self, key_manager):
        with pytest.raises(InvalidKeyFault):
            key_manager.generate_with("ip_reputation", address="1.2.3.4")

    def test_generator_output_validated(self, key_manager):
        key_manager.register_generator("broken", lambda: CacheKey(namespace="ns", identifier="has space"))
        with pytest.raises(InvalidKeyFault):
            key_manager.generate_with("broken")
