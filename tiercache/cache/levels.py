"""
TierCache — Cache tiers.

Three tiers ordered by priority: Request (per operation), Memory
(shared, volatile) and Database (durable).
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union


class CacheLevel(str, Enum):
    """Cache tier, ordered by read priority."""
    REQUEST = "request"
    MEMORY = "memory"
    DATABASE = "database"

    @property
    def priority(self) -> int:
        return _PROFILE[self]["priority"]

    @property
    def default_ttl(self) -> int:
        """Tier default TTL in seconds (0 = no expiry)."""
        return _PROFILE[self]["default_ttl"]

    @property
    def max_ttl(self) -> int:
        """Upper bound applied to TTLs in this tier (0 = no cap)."""
        return _PROFILE[self]["max_ttl"]

    @property
    def supports_tagging(self) -> bool:
        return _PROFILE[self]["tagging"]

    @property
    def supports_distribution(self) -> bool:
        return _PROFILE[self]["distributed"]

    @property
    def supports_pattern_matching(self) -> bool:
        return _PROFILE[self]["pattern_matching"]

    @property
    def is_durable(self) -> bool:
        """Whether entries may be kept without expiry."""
        return _PROFILE[self]["durable"]

    @property
    def response_time_range(self) -> Tuple[float, float]:
        """Expected response time range in milliseconds."""
        return _PROFILE[self]["response_ms"]

    def describe(self) -> Dict[str, object]:
        low, high = self.response_time_range
        return {
            "level": self.value,
            "priority": self.priority,
            "default_ttl": self.default_ttl,
            "max_ttl": self.max_ttl,
            "expected_response_time": f"{low}-{high}ms",
            "supports_tagging": self.supports_tagging,
            "supports_distribution": self.supports_distribution,
            "supports_pattern_matching": self.supports_pattern_matching,
        }

    @classmethod
    def by_priority(cls) -> List["CacheLevel"]:
        return sorted(cls, key=lambda level: level.priority)

    @classmethod
    def coerce(
        cls,
        value: Optional[Union["CacheLevel", str, Iterable[Union["CacheLevel", str]]]],
    ) -> List["CacheLevel"]:
        """
        Normalize a tier selector into a priority-ordered list.

        ``None`` selects every tier.
        """
        if value is None:
            return cls.by_priority()
        if isinstance(value, (CacheLevel, str)):
            return [cls(value)]
        levels = {cls(v) for v in value}
        return sorted(levels, key=lambda level: level.priority)


_PROFILE = {
    CacheLevel.REQUEST: {
        "priority": 1,
        "default_ttl": 0,
        "max_ttl": 0,
        "tagging": False,
        "distributed": False,
        "pattern_matching": True,
        "response_ms": (0.1, 1.0),
        "durable": False,
    },
    CacheLevel.MEMORY: {
        "priority": 2,
        "default_ttl": 3600,
        "max_ttl": 43200,
        "tagging": True,
        "distributed": True,
        "pattern_matching": True,
        "response_ms": (1.0, 5.0),
        "durable": False,
    },
    CacheLevel.DATABASE: {
        "priority": 3,
        "default_ttl": 86400,
        "max_ttl": 604800,
        "tagging": True,
        "distributed": True,
        "pattern_matching": True,
        "response_ms": (5.0, 50.0),
        "durable": True,
    },
}


TierSelector = Optional[Union[CacheLevel, str, Iterable[Union[CacheLevel, str]]]]


__all__ = ["CacheLevel", "TierSelector"]
