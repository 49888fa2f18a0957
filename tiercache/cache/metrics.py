"""
TierCache — Metrics collector.

An explicitly owned counter set passed into the CacheManager. Tests and
embedders create one per manager; nothing here is module-global.
"""

from __future__ import annotations

from collections import Counter, deque
from typing import Any, Deque, Dict, Optional

from .levels import CacheLevel


class MetricsCollector:
    """
    Counters for cache activity.

    ``hit_ratio`` is ``hits / (hits + misses)`` as a fraction; it is 0.0
    before any read. Response times are kept as a bounded window of
    samples in seconds and reported in milliseconds.
    """

    __slots__ = (
        "hits",
        "misses",
        "puts",
        "deletes",
        "backfills",
        "errors",
        "tier_hits",
        "tier_errors",
        "tier_backfills",
        "_response_times",
    )

    def __init__(self, max_samples: int = 1000):
        self.hits = 0
        self.misses = 0
        self.puts = 0
        self.deletes = 0
        self.backfills = 0
        self.errors = 0
        self.tier_hits: Counter = Counter()
        self.tier_errors: Counter = Counter()
        self.tier_backfills: Counter = Counter()
        self._response_times: Deque[float] = deque(maxlen=max_samples)

    # ── Recording ────────────────────────────────────────────────────

    def record_hit(self, tier: CacheLevel, seconds: Optional[float] = None) -> None:
        self.hits += 1
        self.tier_hits[CacheLevel(tier).value] += 1
        if seconds is not None:
            self._response_times.append(seconds)

    def record_miss(self, seconds: Optional[float] = None) -> None:
        self.misses += 1
        if seconds is not None:
            self._response_times.append(seconds)

    def record_put(self) -> None:
        self.puts += 1

    def record_delete(self) -> None:
        self.deletes += 1

    def record_backfill(self, tier: CacheLevel) -> None:
        self.backfills += 1
        self.tier_backfills[CacheLevel(tier).value] += 1

    def record_error(self, tier: CacheLevel, operation: str) -> None:
        self.errors += 1
        self.tier_errors[f"{CacheLevel(tier).value}.{operation}"] += 1

    # ── Derived values ───────────────────────────────────────────────

    @property
    def operations_count(self) -> int:
        return self.hits + self.misses

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    @property
    def average_response_time_ms(self) -> float:
        if not self._response_times:
            return 0.0
        return sum(self._response_times) / len(self._response_times) * 1000.0

    @property
    def p99_response_time_ms(self) -> float:
        if not self._response_times:
            return 0.0
        ordered = sorted(self._response_times)
        idx = min(int(len(ordered) * 0.99), len(ordered) - 1)
        return ordered[idx] * 1000.0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "puts": self.puts,
            "deletes": self.deletes,
            "backfills": self.backfills,
            "errors": self.errors,
            "hit_ratio": self.hit_ratio,
            "hit_ratio_percent": round(self.hit_ratio * 100.0, 2),
            "operations_count": self.operations_count,
            "average_response_time": round(self.average_response_time_ms, 3),
            "p99_response_time": round(self.p99_response_time_ms, 3),
            "tier_hits": {level.value: self.tier_hits.get(level.value, 0) for level in CacheLevel},
            "tier_errors": dict(self.tier_errors),
            "tier_backfills": dict(self.tier_backfills),
        }

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.puts = 0
        self.deletes = 0
        self.backfills = 0
        self.errors = 0
        self.tier_hits.clear()
        self.tier_errors.clear()
        self.tier_backfills.clear()
        self._response_times.clear()
