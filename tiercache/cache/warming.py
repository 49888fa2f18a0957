"""
TierCache — Cache warming.

Pre-populates tiers from producer callables, either directly
(``warm``) or through named strategies that each return a producer
mapping (``warm_cache``). Producer failures are reported per key and
never propagate.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..clock import Clock, SystemClock
from .core import CacheConfig
from .faults import WarmingStrategyFault
from .keys import KeyLike, to_key
from .levels import TierSelector
from .manager import resolve_value

logger = logging.getLogger("tiercache.cache.warming")

Producer = Callable[[], Any]
WarmingStrategy = Callable[[], Mapping[KeyLike, Producer]]


class CacheWarmingService:
    """
    Runs producers and writes their values through the manager.

    Re-warming a key overwrites whatever the tiers hold.
    """

    def __init__(
        self,
        manager: Any,
        clock: Optional[Clock] = None,
        config: Optional[CacheConfig] = None,
    ):
        self._manager = manager
        self._clock = clock or SystemClock()
        self._config = config or CacheConfig()
        self._strategies: Dict[str, WarmingStrategy] = {}
        self._stats = _empty_stats()
        self._register_defaults()

    # ── Strategies ───────────────────────────────────────────────────

    def register_strategy(self, name: str, strategy: WarmingStrategy) -> None:
        self._strategies[name] = strategy

    def get_strategies(self) -> List[str]:
        return list(self._strategies)

    def _register_defaults(self) -> None:
        self.register_strategy("configuration_data", self._configuration_data)
        self.register_strategy("critical_data", self._critical_data)

    def _configuration_data(self) -> Dict[KeyLike, Producer]:
        return {
            f"configuration:{name}": (lambda value=value: value)
            for name, value in self._config.warm_configuration.items()
        }

    def _critical_data(self) -> Dict[KeyLike, Producer]:
        def status() -> Dict[str, Any]:
            return {"status": "operational", "timestamp": self._clock.now().isoformat()}

        return {"system:status": status}

    # ── Warming ──────────────────────────────────────────────────────

    async def warm(
        self,
        producers: Mapping[KeyLike, Producer],
        ttl: Optional[int] = None,
        tiers: TierSelector = None,
    ) -> Dict[str, Dict[str, Any]]:
        """
        Produce and store every key.

        Returns ``{canonical_key: {"success", "duration", "error"?}}``.
        """
        results: Dict[str, Dict[str, Any]] = {}
        started = time.perf_counter()

        for key, producer in producers.items():
            cache_key = to_key(key, self._config.default_namespace)
            name = cache_key.canonical()
            key_started = time.perf_counter()
            result: Dict[str, Any] = {"success": False}

            try:
                value = await resolve_value(producer)
            except Exception as e:
                logger.warning(f"Warming producer for '{name}' failed: {e}")
                result["error"] = str(e)
            else:
                if await self._manager.put(cache_key, value, ttl, tiers):
                    result["success"] = True
                else:
                    result["error"] = "write rejected"

            result["duration"] = time.perf_counter() - key_started
            results[name] = result

            self._stats["total_warmed"] += 1
            if result["success"]:
                self._stats["successful_warmed"] += 1
            else:
                self._stats["failed_warmed"] += 1

        self._stats["last_warming_time"] = self._clock.now().isoformat()
        self._stats["warming_duration"] = time.perf_counter() - started

        ok = sum(1 for r in results.values() if r["success"])
        if results:
            logger.info(f"Cache warmed {ok}/{len(results)} keys")
        return results

    async def warm_cache(
        self,
        strategy_names: Optional[Iterable[str]] = None,
        tiers: TierSelector = None,
    ) -> Dict[str, Dict[str, Any]]:
        """Run named strategies (all registered ones by default)."""
        names = list(strategy_names or self._strategies)
        report: Dict[str, Dict[str, Any]] = {}

        for name in names:
            strategy = self._strategies.get(name)
            if strategy is None:
                report[name] = {"success": False, "error": "Strategy not found"}
                continue

            started = time.perf_counter()
            try:
                producers = await resolve_value(strategy)
                if not isinstance(producers, Mapping):
                    raise TypeError(f"expected a mapping of producers, got {type(producers).__name__}")
            except Exception as e:
                fault = WarmingStrategyFault(name, str(e))
                logger.log(fault.severity.log_level, str(fault))
                report[name] = {"success": False, "error": str(e), "fault": fault.to_dict()}
                continue

            details = await self.warm(producers, tiers=tiers)
            successful = sum(1 for r in details.values() if r["success"])
            report[name] = {
                "success": successful == len(details),
                "strategy": name,
                "warmed_keys": len(details),
                "successful_keys": successful,
                "failed_keys": len(details) - successful,
                "duration": time.perf_counter() - started,
                "details": details,
            }

        return report

    # ── Stats ────────────────────────────────────────────────────────

    def get_stats(self) -> Dict[str, Any]:
        return dict(self._stats)

    def reset_stats(self) -> None:
        self._stats = _empty_stats()


def _empty_stats() -> Dict[str, Any]:
    return {
        "total_warmed": 0,
        "successful_warmed": 0,
        "failed_warmed": 0,
        "last_warming_time": None,
        "warming_duration": 0.0,
    }


__all__ = ["CacheWarmingService", "WarmingStrategy"]
