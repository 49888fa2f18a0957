"""
TierCache — Performance monitoring.

Periodically snapshots the manager's metrics into a bounded history,
raises threshold alerts, classifies overall health, and builds
dashboard and windowed report views over the history.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from datetime import timedelta
from typing import Any, Deque, Dict, List, Mapping, Optional

from ..clock import Clock, SystemClock
from .faults import CacheConfigFault
from .levels import CacheLevel

logger = logging.getLogger("tiercache.cache.monitor")


DEFAULT_THRESHOLDS: Dict[str, float] = {
    "hit_ratio_warning": 70.0,        # percent
    "hit_ratio_critical": 50.0,       # percent
    "response_time_warning": 10.0,    # milliseconds
    "response_time_critical": 50.0,   # milliseconds
}

# Change in mean hit ratio (percentage points) treated as noise
TREND_TOLERANCE = 5.0


class CachePerformanceMonitor:
    """
    Metrics history, alerts and health over a ``CacheManager``.

    Hit ratios are handled in percent and response times in
    milliseconds throughout this module.
    """

    def __init__(
        self,
        manager: Any,
        clock: Optional[Clock] = None,
        thresholds: Optional[Mapping[str, float]] = None,
        history_size: int = 1000,
    ):
        self._manager = manager
        self._clock = clock or SystemClock()
        self._thresholds = dict(DEFAULT_THRESHOLDS)
        if thresholds:
            self.set_thresholds(**thresholds)
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self._alerts: Deque[Dict[str, Any]] = deque(maxlen=history_size)

    # ── Collection ───────────────────────────────────────────────────

    async def collect_metrics(self) -> Dict[str, Any]:
        """Snapshot current metrics, store it, and check thresholds."""
        cache_stats = self._manager.get_stats()
        level_stats = await self._level_stats(cache_stats)

        snapshot = {
            "timestamp": self._clock.now(),
            "cache_stats": cache_stats,
            "level_stats": level_stats,
            "derived_metrics": self._derived_metrics(cache_stats),
        }
        self._history.append(snapshot)
        self._check_thresholds(cache_stats)
        return snapshot

    async def _level_stats(self, cache_stats: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        status = await self._manager.tier_status()
        total_hits = cache_stats["hits"]
        result = {}
        for level in CacheLevel.by_priority():
            hits = cache_stats["tier_hits"].get(level.value, 0)
            info = dict(status[level.value])
            info["hits"] = hits
            info["hit_share"] = round(hits / total_hits * 100.0, 2) if total_hits else 0.0
            info["backfills"] = cache_stats["tier_backfills"].get(level.value, 0)
            result[level.value] = info
        return result

    def _derived_metrics(self, cache_stats: Dict[str, Any]) -> Dict[str, Any]:
        hit_ratio = cache_stats["hit_ratio_percent"]
        response_time = cache_stats["average_response_time"]
        total = cache_stats["operations_count"]

        # Weighted 70/30 between hit ratio and a response time penalty
        response_score = max(0.0, 100.0 - response_time * 2)
        performance_score = hit_ratio * 0.7 + response_score * 0.3 if total else 0.0

        return {
            "total_operations": total,
            "cache_efficiency": round(hit_ratio / 100.0 * min(1.0, total / 1000), 4) if total else 0.0,
            "performance_score": round(performance_score, 2),
            "error_rate": round(cache_stats["errors"] / total * 100.0, 2) if total else 0.0,
        }

    # ── Alerts ───────────────────────────────────────────────────────

    def _check_thresholds(self, cache_stats: Dict[str, Any]) -> None:
        if not cache_stats["operations_count"]:
            return

        hit_ratio = cache_stats["hit_ratio_percent"]
        response_time = cache_stats["average_response_time"]

        if hit_ratio < self._thresholds["hit_ratio_critical"]:
            self._alert("critical", "hit_ratio", f"Cache hit ratio critically low: {hit_ratio}%")
        elif hit_ratio < self._thresholds["hit_ratio_warning"]:
            self._alert("warning", "hit_ratio", f"Cache hit ratio below optimal: {hit_ratio}%")

        if response_time > self._thresholds["response_time_critical"]:
            self._alert(
                "critical", "response_time", f"Average response time critically high: {response_time}ms"
            )
        elif response_time > self._thresholds["response_time_warning"]:
            self._alert(
                "warning", "response_time", f"Average response time above optimal: {response_time}ms"
            )

    def _alert(self, severity: str, kind: str, message: str) -> None:
        alert = {
            "id": f"alert_{uuid.uuid4().hex[:12]}",
            "timestamp": self._clock.now(),
            "severity": severity,
            "type": kind,
            "message": message,
        }
        self._alerts.append(alert)
        if severity == "critical":
            logger.error(message)
        else:
            logger.warning(message)

    def get_recent_alerts(self, hours: float = 24) -> List[Dict[str, Any]]:
        cutoff = self._clock.now() - timedelta(hours=hours)
        return [alert for alert in self._alerts if alert["timestamp"] >= cutoff]

    # ── Views ────────────────────────────────────────────────────────

    def health_status(self, cache_stats: Dict[str, Any]) -> str:
        """Classify health as excellent, good, fair or poor."""
        if not cache_stats["operations_count"]:
            return "excellent"

        hit_ratio = cache_stats["hit_ratio_percent"]
        response_time = cache_stats["average_response_time"]

        if hit_ratio < self._thresholds["hit_ratio_critical"]:
            return "poor"
        if (
            hit_ratio < self._thresholds["hit_ratio_warning"]
            or response_time > self._thresholds["response_time_critical"]
        ):
            return "fair"
        if response_time > self._thresholds["response_time_warning"]:
            return "good"
        return "excellent"

    async def get_dashboard_data(self) -> Dict[str, Any]:
        current = await self.collect_metrics()
        stats = current["cache_stats"]
        return {
            "current_metrics": current,
            "health_status": self.health_status(stats),
            "level_comparison": {
                level: {
                    "priority": info["priority"],
                    "expected_response_time": info["expected_response_time"],
                    "enabled": info["enabled"],
                    "healthy": info["healthy"],
                    "hit_share": info["hit_share"],
                }
                for level, info in current["level_stats"].items()
            },
            "quick_stats": {
                "hit_ratio": stats["hit_ratio_percent"],
                "total_hits": stats["hits"],
                "total_misses": stats["misses"],
                "avg_response_time": stats["average_response_time"],
                "errors": stats["errors"],
            },
            "recent_alerts": self.get_recent_alerts(hours=1),
        }

    def get_performance_report(self, window_days: float = 1) -> Dict[str, Any]:
        """Summary, trends and recommendations over the last ``window_days``."""
        cutoff = self._clock.now() - timedelta(days=window_days)
        snapshots = [s for s in self._history if s["timestamp"] >= cutoff]
        if not snapshots:
            return {"error": "No metrics available for the specified period"}

        summary = _summarize(snapshots)
        return {
            "period": f"{window_days} day(s)",
            "metrics_count": len(snapshots),
            "summary": summary,
            "trends": _trends(snapshots),
            "alerts": self.get_recent_alerts(hours=window_days * 24),
            "recommendations": self._recommendations(summary),
        }

    def _recommendations(self, summary: Dict[str, float]) -> List[str]:
        recommendations = []
        if summary["avg_hit_ratio"] < self._thresholds["hit_ratio_warning"]:
            recommendations.append("Consider increasing cache TTL values or reviewing cache key strategies")
        minimum = self._manager.config.min_hit_ratio_threshold * 100.0
        if summary["avg_hit_ratio"] < minimum:
            recommendations.append(f"Hit ratio is below the {minimum:.0f}% target; consider cache warming")
        if summary["avg_response_time"] > self._thresholds["response_time_warning"]:
            recommendations.append("Investigate slow cache operations and the Database tier")
        return recommendations

    # ── Thresholds & housekeeping ────────────────────────────────────

    def set_thresholds(self, **values: float) -> None:
        unknown = sorted(set(values) - set(DEFAULT_THRESHOLDS))
        if unknown:
            raise CacheConfigFault(f"unknown monitor thresholds: {', '.join(unknown)}")
        self._thresholds.update({name: float(value) for name, value in values.items()})

    def get_thresholds(self) -> Dict[str, float]:
        return dict(self._thresholds)

    def cleanup(self, retention_hours: float = 168) -> int:
        """Drop snapshots and alerts older than the retention window."""
        cutoff = self._clock.now() - timedelta(hours=retention_hours)
        before = len(self._history) + len(self._alerts)
        kept = [s for s in self._history if s["timestamp"] >= cutoff]
        self._history.clear()
        self._history.extend(kept)
        kept_alerts = [alert for alert in self._alerts if alert["timestamp"] >= cutoff]
        self._alerts.clear()
        self._alerts.extend(kept_alerts)
        return before - len(self._history) - len(self._alerts)

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)


def _summarize(snapshots: List[Dict[str, Any]]) -> Dict[str, float]:
    hit_ratios = [s["cache_stats"]["hit_ratio_percent"] for s in snapshots]
    response_times = [s["cache_stats"]["average_response_time"] for s in snapshots]
    return {
        "avg_hit_ratio": round(sum(hit_ratios) / len(hit_ratios), 2),
        "min_hit_ratio": min(hit_ratios),
        "max_hit_ratio": max(hit_ratios),
        "avg_response_time": round(sum(response_times) / len(response_times), 3),
        "min_response_time": min(response_times),
        "max_response_time": max(response_times),
    }


def _trends(snapshots: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Compare the mean hit ratio of the older and newer half of the window."""
    if len(snapshots) < 2:
        return {"trend_direction": "stable", "hit_ratio_change": 0.0, "samples": len(snapshots)}

    middle = len(snapshots) // 2
    older = [s["cache_stats"]["hit_ratio_percent"] for s in snapshots[:middle]]
    newer = [s["cache_stats"]["hit_ratio_percent"] for s in snapshots[middle:]]
    change = sum(newer) / len(newer) - sum(older) / len(older)

    if change > TREND_TOLERANCE:
        direction = "improving"
    elif change < -TREND_TOLERANCE:
        direction = "degrading"
    else:
        direction = "stable"
    return {"trend_direction": direction, "hit_ratio_change": round(change, 2), "samples": len(snapshots)}


__all__ = ["CachePerformanceMonitor", "DEFAULT_THRESHOLDS"]
