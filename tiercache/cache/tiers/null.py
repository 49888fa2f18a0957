"""
TierCache — Null (no-op) tier store.

Stands in for a tier that is switched off in configuration: writes are
accepted and dropped, reads always miss. It has no pattern capability.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from ..core import CacheEntry, CacheStats, TierStore


class NullTierStore(TierStore):
    """No-op tier store."""

    __slots__ = ("_stats",)

    def __init__(self):
        self._stats = CacheStats(store="null")

    @property
    def name(self) -> str:
        return "null"

    async def initialize(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    async def get(self, key: str) -> Optional[CacheEntry]:
        self._stats.misses += 1
        return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
        namespace: str = "default",
    ) -> None:
        self._stats.sets += 1

    async def delete(self, key: str) -> bool:
        return False

    async def exists(self, key: str) -> bool:
        return False

    async def clear(self) -> int:
        return 0

    async def keys(self, pattern: str = "*") -> List[str]:
        return []

    async def stats(self) -> CacheStats:
        return self._stats
