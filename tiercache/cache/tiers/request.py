"""
TierCache — Request tier.

Values live for one logical operation only. The backing dict is held in
a ``ContextVar`` so concurrent operations (tasks) never see each
other's data:

- ``async with store.scope():`` brackets an operation with a fresh dict
- without an explicit scope, each task lazily gets its own dict, bound
  to that task so child tasks that inherit the context start empty
"""

from __future__ import annotations

import asyncio
import fnmatch
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple

from ...clock import Clock, SystemClock, now_ts
from ..core import CacheEntry, CacheStats, TierStore


_SCOPED = object()


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class RequestTierStore(TierStore):
    """Per-operation store backed by a context variable."""

    def __init__(self, clock: Optional[Clock] = None, name: str = "request"):
        self._clock = clock or SystemClock()
        # (owner, data): owner is the task that created the dict, or _SCOPED
        self._var: ContextVar[Optional[Tuple[object, Dict[str, CacheEntry]]]] = ContextVar(
            f"tiercache_{name}_store",
            default=None,
        )
        self._stats = CacheStats(store="request")

    @property
    def name(self) -> str:
        return "request"

    def supports_pattern_delete(self) -> bool:
        return True

    async def initialize(self) -> None:
        pass

    async def shutdown(self) -> None:
        self._var.set(None)

    # ── Scope ────────────────────────────────────────────────────────

    @asynccontextmanager
    async def scope(self) -> AsyncIterator[Dict[str, CacheEntry]]:
        """Run the enclosed block against a fresh, private store."""
        data: Dict[str, CacheEntry] = {}
        token = self._var.set((_SCOPED, data))
        try:
            yield data
        finally:
            data.clear()
            self._var.reset(token)

    def _data(self) -> Dict[str, CacheEntry]:
        current = self._var.get()
        if current is not None and current[0] is _SCOPED:
            return current[1]
        owner = _current_task()
        if current is None or current[0] is not owner:
            current = (owner, {})
            self._var.set(current)
        return current[1]

    # ── Operations ───────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[CacheEntry]:
        data = self._data()
        entry = data.get(key)
        if entry is None:
            self._stats.misses += 1
            return None
        if entry.is_expired(now_ts(self._clock)):
            del data[key]
            self._stats.expirations += 1
            self._stats.misses += 1
            return None
        entry.touch()
        self._stats.hits += 1
        return entry

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
        namespace: str = "default",
    ) -> None:
        now = now_ts(self._clock)
        self._data()[key] = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl if ttl else None,
            tags=tuple(tags),
            namespace=namespace,
        )
        self._stats.sets += 1

    async def delete(self, key: str) -> bool:
        if self._data().pop(key, None) is not None:
            self._stats.deletes += 1
            return True
        return False

    async def exists(self, key: str) -> bool:
        entry = self._data().get(key)
        return entry is not None and not entry.is_expired(now_ts(self._clock))

    async def clear(self) -> int:
        data = self._data()
        count = len(data)
        data.clear()
        return count

    async def keys(self, pattern: str = "*") -> List[str]:
        now = now_ts(self._clock)
        return [
            k for k, e in self._data().items()
            if not e.is_expired(now) and fnmatch.fnmatchcase(k, pattern)
        ]

    async def stats(self) -> CacheStats:
        self._stats.size = len(self._data())
        return self._stats

    async def delete_by_pattern(self, pattern: str) -> int:
        data = self._data()
        matched = [k for k in data if fnmatch.fnmatchcase(k, pattern)]
        for key in matched:
            del data[key]
        self._stats.deletes += len(matched)
        return len(matched)

    async def delete_by_tags(self, tags: Set[str]) -> int:
        data = self._data()
        matched = [k for k, e in data.items() if set(e.tags) & tags]
        for key in matched:
            del data[key]
        return len(matched)

    async def purge_expired(self) -> int:
        data = self._data()
        now = now_ts(self._clock)
        expired = [k for k, e in data.items() if e.is_expired(now)]
        for key in expired:
            del data[key]
        self._stats.expirations += len(expired)
        return len(expired)
