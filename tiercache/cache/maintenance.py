"""
TierCache — Maintenance runs.

Named operations over the tiers:

- ``cleanup``   purge expired entries in every enabled tier
- ``optimize``  store-specific statistics/planner refresh
- ``vacuum``    reclaim storage
- ``reindex``   rebuild indexes
- ``validate``  put/get/forget round trip on the Database tier
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Tuple

from .keys import CacheKey
from .levels import CacheLevel

logger = logging.getLogger("tiercache.cache.maintenance")

OPERATIONS = ("cleanup", "optimize", "vacuum", "reindex", "validate")

_HOOKS = {
    "cleanup": "purge_expired",
    "optimize": "optimize",
    "vacuum": "vacuum",
    "reindex": "reindex",
}

VALIDATION_KEY = CacheKey(namespace="system", identifier="__maintenance_validate__")

# Database size above which a vacuum is recommended
VACUUM_THRESHOLD_MB = 100.0


class CacheMaintenanceService:
    """Runs maintenance operations through the manager's tier adapters."""

    def __init__(self, manager: Any):
        self._manager = manager

    async def maintenance(self, operations: Iterable[str] = ("cleanup", "optimize")) -> Dict[str, bool]:
        """Run ``operations`` and report success per operation."""
        report = await self.run(operations)
        return {name: result["success"] for name, result in report["operations"].items()}

    async def run(self, operations: Iterable[str] = ("cleanup", "optimize")) -> Dict[str, Any]:
        """Run ``operations`` and return a detailed report."""
        operations = list(operations)
        started = time.perf_counter()
        logger.info(f"Cache maintenance started: {', '.join(operations)}")

        before = await self.database_statistics()
        results: Dict[str, Dict[str, Any]] = {}
        for name in operations:
            op_started = time.perf_counter()
            success, processed, errors = await self._perform(name)
            results[name] = {
                "success": success,
                "duration_seconds": round(time.perf_counter() - op_started, 4),
                "items_processed": processed,
                "errors": errors,
            }
            if not success:
                logger.warning(f"Cache maintenance '{name}' failed: {'; '.join(errors)}")
        after = await self.database_statistics()

        succeeded = sum(1 for r in results.values() if r["success"])
        total = len(results)
        duration = time.perf_counter() - started
        logger.info(f"Cache maintenance finished: {succeeded}/{total} operations succeeded")

        return {
            "operations": results,
            "summary": {
                "total_operations": total,
                "successful_operations": succeeded,
                "failed_operations": total - succeeded,
                "duration_seconds": round(duration, 4),
                "success_rate": round(succeeded / total * 100.0, 2) if total else 0.0,
            },
            "database_statistics": {"before": before, "after": after},
            "recommendations": self._recommendations(results, after),
        }

    async def database_statistics(self) -> Dict[str, Any]:
        return await self._manager.tier(CacheLevel.DATABASE).describe()

    # ── Operations ───────────────────────────────────────────────────

    async def _perform(self, name: str) -> Tuple[bool, int, List[str]]:
        if name == "validate":
            return await self._validate()

        hook = _HOOKS.get(name)
        if hook is None:
            return False, 0, [f"unknown operation '{name}'"]

        processed = 0
        errors: List[str] = []
        for level in self._manager.enabled_tiers():
            count = await self._manager.tier(level).maintain(hook)
            if count is None:
                errors.append(f"{level.value} tier failed")
            else:
                processed += count
        return not errors, processed, errors

    async def _validate(self) -> Tuple[bool, int, List[str]]:
        tier = self._manager.tier(CacheLevel.DATABASE)
        if not tier.enabled:
            return False, 0, ["database tier disabled"]

        sample = {"checked_at": self._manager.clock.now().isoformat()}
        errors: List[str] = []
        if not await tier.put(VALIDATION_KEY, sample, ttl=60):
            errors.append("write failed")
        else:
            entry = await tier.get(VALIDATION_KEY)
            if entry is None or entry.value != sample:
                errors.append("read back mismatch")
        if not await tier.forget(VALIDATION_KEY):
            errors.append("delete failed")
        return not errors, 1, errors

    # ── Recommendations ──────────────────────────────────────────────

    def _recommendations(self, results: Dict[str, Dict[str, Any]], stats: Dict[str, Any]) -> List[str]:
        recommendations = []

        failed = [name for name, r in results.items() if not r["success"]]
        if failed:
            recommendations.append(f"Investigate failed maintenance operations: {', '.join(failed)}")

        if stats.get("expired_keys"):
            recommendations.append(
                f"{stats['expired_keys']} expired entries remain in the database tier; run 'cleanup'"
            )

        if stats.get("total_size_mb", 0) > VACUUM_THRESHOLD_MB and "vacuum" not in results:
            recommendations.append("Database tier exceeds 100 MB; schedule a 'vacuum'")

        hit_ratio = self._manager.metrics.hit_ratio
        threshold = self._manager.config.min_hit_ratio_threshold
        if self._manager.metrics.operations_count and hit_ratio < threshold:
            recommendations.append(
                f"Hit ratio {hit_ratio:.0%} is below the {threshold:.0%} target; consider cache warming"
            )

        return recommendations


__all__ = ["CacheMaintenanceService", "OPERATIONS"]
