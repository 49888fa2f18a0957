"""
TierCache — Fault domain integration.

Typed cache faults. Tier failures are caught at the tier adapter and
turned into degraded results; key validation faults are raised to the
caller that built the key.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from tiercache.faults.core import Fault, FaultDomain, Severity


# Register cache fault domain
FaultDomain.CACHE = FaultDomain("cache", "Cache subsystem faults")


class CacheFault(Fault):
    """Base class for all cache faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.WARN,
        retryable: bool = True,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CACHE,
            severity=severity,
            retryable=retryable,
            public=False,
            metadata=metadata,
        )


class TierUnavailableFault(CacheFault):
    """A tier's underlying store cannot be reached or timed out."""

    def __init__(self, tier: str, operation: str, reason: str, **kwargs):
        super().__init__(
            code="CACHE_TIER_UNAVAILABLE",
            message=f"Cache tier '{tier}' unavailable during {operation}: {reason}",
            severity=Severity.WARN,
            retryable=True,
            metadata={"tier": tier, "operation": operation, "reason": reason},
        )


class CacheSerializationFault(CacheFault):
    """Failed to serialize/deserialize a cache value."""

    def __init__(self, key: str, operation: str, reason: str, **kwargs):
        super().__init__(
            code="CACHE_SERIALIZATION_FAILED",
            message=f"Cache {operation} failed for key '{key}': {reason}",
            severity=Severity.WARN,
            retryable=False,
            metadata={"key": key, "operation": operation, "reason": reason},
        )


class InvalidKeyFault(CacheFault):
    """Malformed namespace, identifier or key parameters."""

    def __init__(self, key: str, errors: Iterable[str], **kwargs):
        errors = list(errors)
        super().__init__(
            code="CACHE_INVALID_KEY",
            message=f"Invalid cache key '{key}': {'; '.join(errors)}",
            severity=Severity.ERROR,
            retryable=False,
            metadata={"key": key, "errors": errors},
        )

    @property
    def errors(self) -> list[str]:
        return self.metadata["errors"]


class CacheConfigFault(CacheFault):
    """Cache configuration error."""

    def __init__(self, reason: str, **kwargs):
        super().__init__(
            code="CACHE_CONFIG_INVALID",
            message=f"Invalid cache configuration: {reason}",
            severity=Severity.FATAL,
            retryable=False,
            metadata={"reason": reason},
        )


class WarmingStrategyFault(CacheFault):
    """A warming strategy failed to produce its key set."""

    def __init__(self, strategy: str, reason: str, **kwargs):
        super().__init__(
            code="CACHE_WARMING_FAILED",
            message=f"Warming strategy '{strategy}' failed: {reason}",
            severity=Severity.WARN,
            retryable=True,
            metadata={"strategy": strategy, "reason": reason},
        )


__all__ = [
    "CacheFault",
    "TierUnavailableFault",
    "CacheSerializationFault",
    "InvalidKeyFault",
    "CacheConfigFault",
    "WarmingStrategyFault",
]
