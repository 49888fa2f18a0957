"""
TierCache — Dependency-aware invalidation.

Namespaces form a directed graph ("when A changes, B is stale").
Invalidating a key or namespace walks the graph breadth-first and
clears every reachable dependent namespace exactly once, so cycles
terminate.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .faults import CacheConfigFault
from .keys import KeyLike, is_valid_namespace, namespace_pattern, to_key

logger = logging.getLogger("tiercache.cache.invalidation")


DEFAULT_DEPENDENCIES: Dict[str, Tuple[str, ...]] = {
    "configuration": ("spam_patterns", "ip_reputation", "analytics"),
    "spam_patterns": ("analytics", "statistics"),
    "ip_reputation": ("geolocation", "analytics", "statistics"),
}


@dataclass(frozen=True)
class InvalidationEvent:
    """What one invalidation call did."""
    kind: str                     # "key", "namespace", "pattern", "tags"
    target: str
    cascaded: Tuple[str, ...]     # dependent namespaces cleared, in visit order
    deleted: int


InvalidationListener = Callable[[InvalidationEvent], Any]


class CacheInvalidationService:
    """
    Invalidates keys, namespaces, patterns and tags, cascading through
    namespace dependencies.

    Args:
        manager: The ``CacheManager`` to delete from
        dependencies: Extra edges, ``{namespace: [dependent, ...]}``
        seed_defaults: Start from the built-in security namespace graph
    """

    def __init__(
        self,
        manager: Any,
        dependencies: Optional[Mapping[str, Iterable[str]]] = None,
        seed_defaults: bool = True,
    ):
        self._manager = manager
        self._graph: Dict[str, List[str]] = {}
        self._listeners: List[InvalidationListener] = []
        self._stats = _empty_stats()

        if seed_defaults:
            for namespace, dependents in DEFAULT_DEPENDENCIES.items():
                for dependent in dependents:
                    self.add_dependency(namespace, dependent)
        for namespace, dependents in (dependencies or {}).items():
            for dependent in dependents:
                self.add_dependency(namespace, dependent)

    # ── Dependency graph ─────────────────────────────────────────────

    def add_dependency(self, namespace: str, dependent: str) -> None:
        """Declare that ``dependent`` goes stale when ``namespace`` changes."""
        for name in (namespace, dependent):
            if not is_valid_namespace(name):
                raise CacheConfigFault(f"invalid namespace in dependency: {name!r}")
        edges = self._graph.setdefault(namespace, [])
        if dependent not in edges:
            edges.append(dependent)

    def remove_dependency(self, namespace: str, dependent: str) -> bool:
        edges = self._graph.get(namespace)
        if not edges or dependent not in edges:
            return False
        edges.remove(dependent)
        if not edges:
            del self._graph[namespace]
        return True

    def get_dependencies(self, namespace: str) -> List[str]:
        return list(self._graph.get(namespace, ()))

    def dependency_graph(self) -> Dict[str, List[str]]:
        return {namespace: list(edges) for namespace, edges in self._graph.items()}

    # ── Listeners ────────────────────────────────────────────────────

    def on_invalidated(self, listener: InvalidationListener) -> None:
        """Register a callback run after every invalidation."""
        self._listeners.append(listener)

    def _emit(self, event: InvalidationEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Invalidation listener failed: {e}", exc_info=True)

    # ── Invalidation ─────────────────────────────────────────────────

    async def invalidate(self, key: KeyLike) -> bool:
        """
        Forget ``key`` everywhere, then clear every namespace that
        depends (transitively) on the key's namespace.

        Returns the result of forgetting the key itself. A malformed key
        is rejected without touching any tier.
        """
        cache_key = to_key(key, self._manager.config.default_namespace)
        errors = cache_key.validation_errors(strict=False)
        if errors:
            logger.warning(f"Rejected invalidation of invalid key '{cache_key}': {'; '.join(errors)}")
            return False
        removed = await self._manager.forget(cache_key)
        self._stats["invalidations"] += 1

        cascaded, deleted = await self._cascade(cache_key.namespace)
        self._emit(InvalidationEvent("key", cache_key.canonical(), cascaded, deleted))
        logger.debug(f"Invalidated '{cache_key}' (cascade={list(cascaded)})")
        return removed

    async def invalidate_by_namespace(self, namespace: str) -> int:
        """Clear a namespace and its dependents. Returns the delete count."""
        if not is_valid_namespace(namespace):
            logger.warning(f"Rejected invalidation of invalid namespace {namespace!r}")
            return 0
        deleted = await self._manager.delete_by_pattern(namespace_pattern(namespace))
        self._stats["invalidations"] += 1

        cascaded, cascade_deleted = await self._cascade(namespace)
        total = deleted + cascade_deleted
        self._emit(InvalidationEvent("namespace", namespace, cascaded, total))
        logger.info(f"Invalidated namespace '{namespace}' ({total} deletes, cascade={list(cascaded)})")
        return total

    async def invalidate_by_pattern(self, pattern: str) -> int:
        deleted = await self._manager.delete_by_pattern(pattern)
        self._stats["invalidations"] += 1
        self._stats["pattern_invalidations"] += 1
        self._emit(InvalidationEvent("pattern", pattern, (), deleted))
        return deleted

    async def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        tag_set = set(tags)
        deleted = await self._manager.delete_by_tags(tag_set)
        self._stats["invalidations"] += 1
        self._stats["tag_invalidations"] += 1
        self._emit(InvalidationEvent("tags", ",".join(sorted(tag_set)), (), deleted))
        return deleted

    async def _cascade(self, origin: str) -> Tuple[Tuple[str, ...], int]:
        """
        Breadth-first walk from ``origin``; each namespace cleared once.

        Direct dependents count as dependency invalidations, deeper ones
        as cascade invalidations.
        """
        visited: Set[str] = {origin}
        queue = deque((namespace, 1) for namespace in self._graph.get(origin, ()))
        order: List[str] = []
        deleted = 0

        while queue:
            namespace, depth = queue.popleft()
            if namespace in visited:
                continue
            visited.add(namespace)
            order.append(namespace)

            deleted += await self._manager.delete_by_pattern(namespace_pattern(namespace))
            if depth == 1:
                self._stats["dependency_invalidations"] += 1
            else:
                self._stats["cascade_invalidations"] += 1
            queue.extend((dependent, depth + 1) for dependent in self._graph.get(namespace, ()))

        return tuple(order), deleted

    # ── Stats ────────────────────────────────────────────────────────

    def get_stats(self) -> Dict[str, int]:
        stats = dict(self._stats)
        stats["dependency_edges"] = sum(len(edges) for edges in self._graph.values())
        return stats

    def reset_stats(self) -> None:
        self._stats = _empty_stats()


def _empty_stats() -> Dict[str, int]:
    return {
        "invalidations": 0,
        "cascade_invalidations": 0,
        "dependency_invalidations": 0,
        "pattern_invalidations": 0,
        "tag_invalidations": 0,
    }


__all__ = [
    "CacheInvalidationService",
    "InvalidationEvent",
    "DEFAULT_DEPENDENCIES",
]
