"""
TierCache — Pluggable serializers for out-of-process tiers.

The Database tier and the Redis-backed Memory tier store bytes. JSON is
the default; pickle keeps arbitrary Python objects; msgpack is compact
and cross-language. Failures are logged and re-raised so the store can
report them as serialization faults.
"""

from __future__ import annotations

import json
import logging
import pickle
from typing import Any

logger = logging.getLogger("tiercache.cache.serializers")


class JsonCacheSerializer:
    """
    JSON serializer: safe, human-readable, cross-language.

    Handles Python primitives and containers. Anything else raises, so
    a value is never stored in a lossy form.
    """

    name = "json"

    def serialize(self, value: Any) -> bytes:
        try:
            return json.dumps(value, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"JSON serialization failed: {e}")
            raise

    def deserialize(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"JSON deserialization failed: {e}")
            raise


class PickleCacheSerializer:
    """
    Pickle serializer: supports arbitrary Python objects.

    Only use with trusted stores: unpickling can execute code.
    """

    name = "pickle"

    def serialize(self, value: Any) -> bytes:
        try:
            return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            logger.warning(f"Pickle serialization failed: {e}")
            raise

    def deserialize(self, data: bytes) -> Any:
        try:
            return pickle.loads(data)
        except (pickle.UnpicklingError, EOFError) as e:
            logger.warning(f"Pickle deserialization failed: {e}")
            raise


class MsgpackCacheSerializer:
    """
    MessagePack serializer: compact binary, cross-language.

    Requires the ``msgpack`` package (``pip install tiercache[msgpack]``).
    """

    name = "msgpack"

    def __init__(self):
        try:
            import msgpack
        except ImportError:
            raise ImportError(
                "MsgpackCacheSerializer requires 'msgpack' package. "
                "Install with: pip install msgpack"
            )
        self._msgpack = msgpack

    def serialize(self, value: Any) -> bytes:
        try:
            return self._msgpack.packb(value, use_bin_type=True, default=str)
        except (TypeError, ValueError) as e:
            logger.warning(f"Msgpack serialization failed: {e}")
            raise

    def deserialize(self, data: bytes) -> Any:
        try:
            return self._msgpack.unpackb(data, raw=False)
        except Exception as e:
            logger.warning(f"Msgpack deserialization failed: {e}")
            raise


SERIALIZERS = {
    "json": JsonCacheSerializer,
    "pickle": PickleCacheSerializer,
    "msgpack": MsgpackCacheSerializer,
}


def get_serializer(name: str = "json"):
    """
    Factory for serializer instances.

    Args:
        name: "json", "pickle", or "msgpack"
    """
    cls = SERIALIZERS.get(name)
    if cls is None:
        raise ValueError(f"Unknown serializer: {name}. Options: {list(SERIALIZERS.keys())}")
    return cls()
