"""
TierCache Tiers — Storage implementations.
"""

from .request import RequestTierStore
from .memory import MemoryTierStore
from .redis import RedisTierStore
from .database import DatabaseTierStore
from .null import NullTierStore

__all__ = [
    "RequestTierStore",
    "MemoryTierStore",
    "RedisTierStore",
    "DatabaseTierStore",
    "NullTierStore",
]
