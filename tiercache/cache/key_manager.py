"""
TierCache — Key construction.

``CacheKeyManager`` is a pure factory for ``CacheKey`` values:
- content-addressed keys from parameter maps (order independent)
- hierarchical, versioned, tagged and template keys
- time-bucketed keys whose TTL runs to the bucket boundary
- named generators for the well-known security namespaces

Every factory validates what it builds and raises ``InvalidKeyFault``
instead of returning a malformed key.
"""

from __future__ import annotations

import hashlib
import json
import math
import string
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..clock import Clock, SystemClock
from .core import CacheConfig
from .faults import InvalidKeyFault
from .keys import MAX_TTL, CacheKey, KeyLike, to_key

KeyGenerator = Callable[..., CacheKey]

GRANULARITIES = ("hour", "day", "week", "month")

_HASH_LENGTH = 32


class CacheKeyManager:
    """
    Builds validated cache keys.

    Time-based keys read the injected clock, so two calls inside one
    bucket give the same key and a call after the boundary gives a new
    one.
    """

    def __init__(self, clock: Optional[Clock] = None, config: Optional[CacheConfig] = None):
        self._clock = clock or SystemClock()
        self._config = config or CacheConfig()
        self._generators: Dict[str, KeyGenerator] = {}
        self._register_defaults()

    # ── Core factories ───────────────────────────────────────────────

    def generate(self, namespace: str, params: Mapping[str, Any]) -> CacheKey:
        """
        Content-addressed key: the identifier is a sha256 digest of the
        parameters serialized with sorted names.
        """
        try:
            canonical = json.dumps(dict(params), sort_keys=True, separators=(",", ":"), default=str)
        except (TypeError, ValueError) as e:
            raise InvalidKeyFault(f"{namespace}:<params>", [f"parameters are not serializable: {e}"]) from e
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:_HASH_LENGTH]
        return self._checked(CacheKey(namespace=namespace, identifier=digest))

    def create_hierarchical(self, namespace: str, segment: str) -> CacheKey:
        """Root key ``namespace:segment``; derive children with ``create_child``."""
        return self._checked(CacheKey(namespace=namespace, identifier=segment))

    def create_time_based(
        self,
        namespace: str,
        granularity: str = "hour",
        identifier: Optional[str] = None,
    ) -> CacheKey:
        """
        Key for the current time bucket.

        Buckets: ``hour`` (YYYY-MM-DD-HH), ``day`` (YYYY-MM-DD),
        ``week`` (ISO YYYY-Www) and ``month`` (YYYY-MM). The TTL is the
        number of whole seconds until the bucket ends, at least 1 and at
        most ``MAX_TTL`` (a month bucket outlives the TTL limit).
        """
        if granularity not in GRANULARITIES:
            raise InvalidKeyFault(
                f"{namespace}:<{granularity}>",
                [f"unknown granularity '{granularity}' (expected one of {', '.join(GRANULARITIES)})"],
            )

        now = self._clock.now()
        bucket, boundary = _bucket(now, granularity)
        ttl = min(MAX_TTL, max(1, math.ceil((boundary - now).total_seconds())))

        parent = f"{namespace}:{identifier}" if identifier else None
        key = CacheKey(
            namespace=namespace,
            identifier=bucket,
            parent=parent,
            tags=frozenset(("time_based", granularity)),
            ttl=ttl,
        )
        return self._checked(key)

    def create_versioned(self, namespace: str, identifier: str, version: Any) -> CacheKey:
        return self._checked(
            CacheKey(
                namespace=namespace,
                identifier=f"{identifier}.v{version}",
                tags=frozenset(("versioned",)),
            )
        )

    def create_tagged(self, namespace: str, identifier: str, tags: Iterable[str]) -> CacheKey:
        return self._checked(CacheKey(namespace=namespace, identifier=identifier, tags=frozenset(tags)))

    def create_from_pattern(self, pattern: str, values: Mapping[str, Any]) -> CacheKey:
        """
        Fill ``{name}`` placeholders of a ``"namespace:..."`` template.

        Example: ``create_from_pattern("rate_limits:{ip}:{window}", {"ip": "1.2.3.4", "window": 60})``
        """
        names = [field for _, field, _, _ in string.Formatter().parse(pattern) if field]
        missing = [name for name in names if name not in values]
        if missing:
            raise InvalidKeyFault(pattern, [f"missing value for placeholder '{name}'" for name in missing])
        try:
            text = pattern.format_map(dict(values))
        except (IndexError, ValueError) as e:
            raise InvalidKeyFault(pattern, [f"malformed pattern: {e}"]) from e
        if ":" not in text:
            raise InvalidKeyFault(text, ["pattern must start with a namespace"])
        return self._checked(CacheKey.parse(text))

    # ── Named generators ─────────────────────────────────────────────

    def register_generator(self, name: str, generator: KeyGenerator) -> None:
        self._generators[name] = generator

    def get_generators(self) -> List[str]:
        return sorted(self._generators)

    def generate_with(self, name: str, **params: Any) -> CacheKey:
        generator = self._generators.get(name)
        if generator is None:
            raise InvalidKeyFault(f"<{name}>", [f"unknown key generator '{name}'"])
        try:
            key = generator(**params)
        except TypeError as e:
            raise InvalidKeyFault(f"<{name}>", [f"bad parameters for generator '{name}': {e}"]) from e
        return self._checked(key)

    def _register_defaults(self) -> None:
        self._generators.update({
            "ip_reputation": self._ip_reputation,
            "spam_pattern": self._spam_pattern,
            "geolocation": self._geolocation,
            "configuration": self._configuration,
            "analytics": self._analytics,
        })

    @staticmethod
    def _ip_reputation(ip: str) -> CacheKey:
        return CacheKey(namespace="ip_reputation", identifier=ip, tags=frozenset(("ip_reputation", "security")))

    @staticmethod
    def _spam_pattern(pattern_type: str, pattern_id: Optional[str] = None) -> CacheKey:
        key = CacheKey(
            namespace="spam_patterns",
            identifier=pattern_type,
            tags=frozenset(("spam_patterns", "detection", pattern_type)),
        )
        if pattern_id is not None:
            key = key.create_child(str(pattern_id))
        return key

    @staticmethod
    def _geolocation(ip: str) -> CacheKey:
        return CacheKey(namespace="geolocation", identifier=ip, tags=frozenset(("geolocation", "ip_data")))

    @staticmethod
    def _configuration(name: str) -> CacheKey:
        return CacheKey(namespace="configuration", identifier=name, tags=frozenset(("configuration", "settings")))

    @staticmethod
    def _analytics(metric: str, date: Optional[str] = None, **dimensions: Any) -> CacheKey:
        key = CacheKey(namespace="analytics", identifier=metric, tags=frozenset(("analytics", "metrics", metric)))
        if date is not None:
            key = key.create_child(str(date))
        for name in sorted(dimensions):
            key = key.create_child(f"{name}-{dimensions[name]}")
        return key

    # ── Validation ───────────────────────────────────────────────────

    def validate_key(self, key: KeyLike) -> Dict[str, Any]:
        errors = to_key(key, self._config.default_namespace).validation_errors()
        return {"valid": not errors, "errors": errors}

    def namespace_ttl(self, namespace: str) -> Optional[int]:
        return self._config.namespace_ttl(namespace)

    def _checked(self, key: CacheKey) -> CacheKey:
        errors = key.validation_errors()
        if errors:
            raise InvalidKeyFault(str(key), errors)
        return key


def _bucket(now: datetime, granularity: str):
    """Bucket label and the instant the bucket ends."""
    if granularity == "hour":
        start = now.replace(minute=0, second=0, microsecond=0)
        return start.strftime("%Y-%m-%d-%H"), start + timedelta(hours=1)

    if granularity == "day":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return start.strftime("%Y-%m-%d"), start + timedelta(days=1)

    if granularity == "week":
        year, week, weekday = now.isocalendar()
        start = now.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=weekday - 1)
        return f"{year}-W{week:02d}", start + timedelta(weeks=1)

    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        boundary = start.replace(year=start.year + 1, month=1)
    else:
        boundary = start.replace(month=start.month + 1)
    return start.strftime("%Y-%m"), boundary


__all__ = ["CacheKeyManager", "GRANULARITIES"]
