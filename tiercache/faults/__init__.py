"""
TierCache Faults - Structured fault signals.

Errors in TierCache are typed values carrying a code, a domain, a
severity and retry semantics. Cache operations mostly report them as
degraded results rather than raising them.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain registry
- Severity: Severity levels
"""

from .core import (
    DOMAIN_DEFAULTS,
    Fault,
    FaultDomain,
    Severity,
)

__all__ = [
    "DOMAIN_DEFAULTS",
    "Fault",
    "FaultDomain",
    "Severity",
]
