"""
TierCache — Core types, protocols, and data structures.

Defines the storage contract every tier store implements, the entry
and statistics records they exchange, and the serializer protocol used
by stores that keep values outside the process.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Set,
    Tuple,
    runtime_checkable,
)


# ============================================================================
# Cache Entry
# ============================================================================

@dataclass(slots=True)
class CacheEntry:
    """
    Single cache entry with metadata.

    Times are POSIX timestamps taken from the store's clock, so expiry
    can be evaluated against any injected clock.
    """
    key: str
    value: Any
    created_at: float = 0.0
    expires_at: Optional[float] = None
    tags: Tuple[str, ...] = ()
    namespace: str = "default"
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        if self.expires_at is None:
            return False
        return now >= self.expires_at

    def ttl_remaining(self, now: float) -> Optional[float]:
        """Remaining TTL in seconds, or None if no expiry."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - now)

    def touch(self) -> None:
        self.access_count += 1

    def __repr__(self) -> str:
        return f"<CacheEntry key={self.key!r} ns={self.namespace!r} hits={self.access_count}>"


# ============================================================================
# Cache Stats
# ============================================================================

@dataclass
class CacheStats:
    """Per-store statistics for diagnostics."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    expirations: int = 0
    errors: int = 0
    size: int = 0
    max_size: int = 0
    store: str = "unknown"

    @property
    def hit_rate(self) -> float:
        """Store-local hit rate as a percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "errors": self.errors,
            "hit_rate": round(self.hit_rate, 2),
            "size": self.size,
            "max_size": self.max_size,
            "store": self.store,
        }


# ============================================================================
# Cache Serializer Protocol
# ============================================================================

@runtime_checkable
class CacheSerializer(Protocol):
    """Protocol for cache value serialization."""

    def serialize(self, value: Any) -> bytes:
        ...

    def deserialize(self, data: bytes) -> Any:
        ...


# ============================================================================
# Tier Store
# ============================================================================

class TierStore(ABC):
    """
    Abstract tier store. Defines the storage contract.

    Stores enforce their own TTLs and raise on failure; the tier adapter
    in ``operations`` turns failures into degraded results. Stores that
    talk to I/O must bound every call so a dead dependency surfaces as
    an error rather than a hang.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Acquire resources (connections, background tasks)."""
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        """Release resources."""
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """
        Retrieve entry by key.

        Returns None if the key doesn't exist or has expired.
        """
        ...

    @abstractmethod
    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
        namespace: str = "default",
    ) -> None:
        """
        Store a value.

        Args:
            key: Physical key
            value: Value to store
            ttl: Time-to-live in seconds (None or 0 = no expiry)
            tags: Tags for group invalidation
            namespace: Logical namespace
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete by key. Returns True if the key existed."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        ...

    @abstractmethod
    async def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        ...

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        """List keys matching a glob pattern."""
        ...

    @abstractmethod
    async def stats(self) -> CacheStats:
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Store name for diagnostics."""
        ...

    # ── Capabilities ─────────────────────────────────────────────────

    def supports_pattern_delete(self) -> bool:
        """Whether ``delete_by_pattern`` can enumerate matching keys."""
        return False

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the count."""
        raise NotImplementedError(f"{self.name} cannot delete by pattern")

    @property
    def supports_tagging(self) -> bool:
        return False

    async def delete_by_tags(self, tags: Set[str]) -> int:
        """Delete entries carrying any of ``tags``."""
        return 0

    @property
    def is_distributed(self) -> bool:
        """Whether entries are visible to other processes."""
        return False

    # ── Maintenance hooks ────────────────────────────────────────────

    async def purge_expired(self) -> int:
        """Remove expired entries. Returns the number removed."""
        return 0

    async def optimize(self) -> int:
        return 0

    async def vacuum(self) -> int:
        return 0

    async def reindex(self) -> int:
        return 0

    async def health_check(self) -> bool:
        return True

    async def describe(self) -> Dict[str, Any]:
        """Store-level statistics for maintenance reports."""
        stats = await self.stats()
        return {"store": self.name, "total_keys": stats.size}


# ============================================================================
# Cache Config
# ============================================================================

DEFAULT_NAMESPACE_TTLS: Dict[str, int] = {
    "spam_patterns": 86400,       # 24 hours
    "ip_reputation": 3600,        # 1 hour
    "rate_limits": 3600,          # 1 hour
    "geolocation": 604800,        # 7 days
    "configuration": 1800,        # 30 minutes
    "statistics": 300,            # 5 minutes
    "analysis_results": 1800,     # 30 minutes
}

DEFAULT_WARM_CONFIGURATION: Dict[str, Any] = {
    "max_submissions_per_minute": 60,
    "ip_reputation_threshold": 0.7,
    "spam_pattern_sensitivity": 0.8,
}


@dataclass
class CacheConfig:
    """
    Cache subsystem configuration.

    Loaded through ``ConfigLoader.get_cache_config()`` or built directly.
    """
    enabled: bool = True                 # False wires every tier to a null store
    request_enabled: bool = True
    memory_enabled: bool = True
    database_enabled: bool = True
    default_namespace: str = "default"
    key_prefix: str = "tc:"              # Prefix for keys in shared stores

    # Memory tier
    memory_backend: str = "memory"       # "memory" or "redis"
    memory_max_size: int = 10000
    memory_sweep_interval: float = 30.0  # Seconds between expiry sweeps (0 = disabled)

    # Redis-specific
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 10
    redis_socket_timeout: float = 5.0
    redis_socket_connect_timeout: float = 5.0

    # Database tier
    database_path: str = "tiercache.db"
    database_table: str = "cache_entries"
    serializer: str = "json"             # "json", "pickle", "msgpack"
    operation_timeout: float = 5.0       # Upper bound for one store call

    # TTLs, dependencies, warming
    namespace_ttls: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_NAMESPACE_TTLS))
    dependencies: Dict[str, List[str]] = field(default_factory=dict)
    seed_dependencies: bool = True
    warm_configuration: Dict[str, Any] = field(
        default_factory=lambda: dict(DEFAULT_WARM_CONFIGURATION)
    )

    # Monitoring
    thresholds: Dict[str, float] = field(default_factory=dict)
    min_hit_ratio_threshold: float = 0.8
    metrics_history_size: int = 1000

    # Observability
    log_level: str = "WARNING"

    def namespace_ttl(self, namespace: str) -> Optional[int]:
        """Configured default TTL for ``namespace``, or None."""
        return self.namespace_ttls.get(namespace)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
