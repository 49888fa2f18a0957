"""
TierCache Testing - Cache test utilities.

Provides :class:`MockTierStore` and :class:`CacheTestMixin`.
"""

from .cache import CacheTestMixin, MockTierStore

__all__ = ["CacheTestMixin", "MockTierStore"]
