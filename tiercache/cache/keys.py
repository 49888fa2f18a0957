"""
TierCache — Cache key value object.

A ``CacheKey`` addresses one cached value. Its canonical string is the
physical key used by every tier:

- root key:  ``namespace:identifier``
- child key: ``<parent canonical>:identifier``

Tags and TTL travel with the key but never change its canonical form.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import FrozenSet, Iterable, List, Optional, Union

MAX_KEY_LENGTH = 250
MAX_TTL = 604800  # 7 days
DEFAULT_NAMESPACE = "default"

_NAMESPACE_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")
_CANONICAL_RE = re.compile(r"^[A-Za-z0-9:_.\-]+$")


@dataclass(frozen=True)
class CacheKey:
    """
    Immutable cache address.

    Two keys with the same canonical form are interchangeable, so
    equality and hashing only look at the canonical form.
    """
    namespace: str
    identifier: str
    parent: Optional[str] = None
    tags: FrozenSet[str] = field(default_factory=frozenset)
    ttl: Optional[int] = None

    def __post_init__(self) -> None:
        if not isinstance(self.tags, frozenset):
            object.__setattr__(self, "tags", frozenset(self.tags or ()))

    # ── Canonical form ───────────────────────────────────────────────

    def canonical(self) -> str:
        if self.parent:
            return f"{self.parent}:{self.identifier}"
        return f"{self.namespace}:{self.identifier}"

    def __str__(self) -> str:
        return self.canonical()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CacheKey):
            return self.canonical() == other.canonical()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.canonical())

    @property
    def is_hierarchical(self) -> bool:
        return self.parent is not None

    @property
    def segments(self) -> List[str]:
        return self.canonical().split(":")

    # ── Derivation ───────────────────────────────────────────────────

    def create_child(self, segment: str) -> "CacheKey":
        """New key one level below this one."""
        return CacheKey(
            namespace=self.namespace,
            identifier=segment,
            parent=self.canonical(),
            tags=self.tags,
            ttl=self.ttl,
        )

    def create_sibling(self, segment: str) -> "CacheKey":
        """New key with the same parent and a different last segment."""
        return replace(self, identifier=segment)

    def with_tags(self, *tags: str) -> "CacheKey":
        return replace(self, tags=self.tags | frozenset(tags))

    def with_ttl(self, ttl: Optional[int]) -> "CacheKey":
        return replace(self, ttl=ttl)

    # ── Validation ───────────────────────────────────────────────────

    def validation_errors(self, strict: bool = True) -> List[str]:
        """
        Problems that make this key unusable.

        ``strict=False`` checks structure only (namespace, identifier,
        length, ttl) and lets identifiers such as e-mail addresses or
        CIDR ranges through; ``strict=True`` also enforces the key
        character set.
        """
        errors = []
        if not self.namespace:
            errors.append("namespace is required")
        elif not is_valid_namespace(self.namespace):
            errors.append(f"namespace contains invalid characters: {self.namespace!r}")
        if not self.identifier:
            errors.append("identifier is required")

        canonical = self.canonical()
        if len(canonical) > MAX_KEY_LENGTH:
            errors.append(f"key exceeds {MAX_KEY_LENGTH} characters ({len(canonical)})")
        if strict and self.identifier and not _CANONICAL_RE.match(canonical):
            errors.append("key contains invalid characters")

        if self.ttl is not None and not (0 <= self.ttl <= MAX_TTL):
            errors.append(f"ttl must be between 0 and {MAX_TTL} seconds")
        return errors

    def is_valid(self, strict: bool = True) -> bool:
        return not self.validation_errors(strict)

    # ── Parsing ──────────────────────────────────────────────────────

    @classmethod
    def parse(cls, text: str, default_namespace: str = DEFAULT_NAMESPACE) -> "CacheKey":
        """
        Build a key from a raw string.

        ``"ns:rest"`` lands in namespace ``ns``; a string without a
        separator lands in ``default_namespace``.
        """
        namespace, sep, identifier = text.partition(":")
        if not sep:
            return cls(namespace=default_namespace, identifier=text)
        return cls(namespace=namespace, identifier=identifier)

    @classmethod
    def make(
        cls,
        identifier: str,
        namespace: str = DEFAULT_NAMESPACE,
        tags: Iterable[str] = (),
        ttl: Optional[int] = None,
    ) -> "CacheKey":
        return cls(namespace=namespace, identifier=identifier, tags=frozenset(tags), ttl=ttl)

    def __repr__(self) -> str:
        extra = ""
        if self.tags:
            extra += f", tags={sorted(self.tags)}"
        if self.ttl is not None:
            extra += f", ttl={self.ttl}"
        return f"<CacheKey {self.canonical()!r}{extra}>"


KeyLike = Union[CacheKey, str]


def to_key(key: KeyLike, default_namespace: str = DEFAULT_NAMESPACE) -> CacheKey:
    """Normalize a string or key into a ``CacheKey``."""
    if isinstance(key, CacheKey):
        return key
    return CacheKey.parse(key, default_namespace=default_namespace)


def is_valid_namespace(namespace: str) -> bool:
    """True for a non-empty name made of ``[A-Za-z0-9_.-]`` only."""
    return bool(namespace) and _NAMESPACE_RE.match(namespace) is not None


def namespace_pattern(namespace: str) -> str:
    """Glob matching every physical key of ``namespace``."""
    return f"{namespace}:*"


__all__ = [
    "CacheKey",
    "KeyLike",
    "MAX_KEY_LENGTH",
    "MAX_TTL",
    "DEFAULT_NAMESPACE",
    "to_key",
    "is_valid_namespace",
    "namespace_pattern",
]
