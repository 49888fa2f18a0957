"""
TierCache — Database tier via aiosqlite.

The durable fallback tier. One table holds ``key → serialized value``
with a nullable expiry:

    key TEXT PRIMARY KEY, value BLOB, namespace TEXT, tags TEXT,
    expires_at REAL NULL, created_at REAL

Every statement is bounded by ``operation_timeout``; timeouts and
driver errors surface as ``TierUnavailableFault``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sqlite3
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, TypeVar

import aiosqlite

from ...clock import Clock, SystemClock, now_ts
from ..core import CacheEntry, CacheStats, TierStore
from ..faults import CacheSerializationFault, TierUnavailableFault

logger = logging.getLogger("tiercache.cache.tiers.database")

T = TypeVar("T")

# Table names are interpolated into SQL
_TABLE_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class DatabaseTierStore(TierStore):
    """
    SQLite-backed durable store.

    Features:
    - WAL journal mode for concurrent readers
    - Lazy expiry on read plus ``purge_expired`` for bulk cleanup
    - GLOB-based pattern deletes
    - Maintenance hooks mapped to ANALYZE/PRAGMA optimize, VACUUM, REINDEX
    """

    def __init__(
        self,
        path: str = "tiercache.db",
        table: str = "cache_entries",
        serializer: Optional[Any] = None,
        clock: Optional[Clock] = None,
        operation_timeout: float = 5.0,
    ):
        if not _TABLE_NAME_RE.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._path = path
        self._table = table
        self._clock = clock or SystemClock()
        self._timeout = operation_timeout
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._stats = CacheStats(store="database")

        if serializer is None:
            from ..serializers import JsonCacheSerializer
            self._serializer = JsonCacheSerializer()
        else:
            self._serializer = serializer

    @property
    def name(self) -> str:
        return "database:sqlite"

    @property
    def is_distributed(self) -> bool:
        return True

    @property
    def supports_tagging(self) -> bool:
        return True

    def supports_pattern_delete(self) -> bool:
        return True

    @property
    def path(self) -> str:
        return self._path

    # ── Lifecycle ────────────────────────────────────────────────────

    async def initialize(self) -> None:
        if self._connection is not None:
            return
        async with self._lock:
            if self._connection is not None:
                return
            try:
                conn = await aiosqlite.connect(self._path)
                await conn.execute("PRAGMA journal_mode=WAL")
                conn.row_factory = aiosqlite.Row
                await conn.execute(
                    f'CREATE TABLE IF NOT EXISTS "{self._table}" ('
                    "key TEXT PRIMARY KEY, "
                    "value BLOB NOT NULL, "
                    "namespace TEXT NOT NULL DEFAULT 'default', "
                    "tags TEXT NOT NULL DEFAULT '[]', "
                    "expires_at REAL NULL, "
                    "created_at REAL NOT NULL)"
                )
                await conn.execute(
                    f'CREATE INDEX IF NOT EXISTS "ix_{self._table}_expires_at" '
                    f'ON "{self._table}" (expires_at)'
                )
                await conn.execute(
                    f'CREATE INDEX IF NOT EXISTS "ix_{self._table}_namespace" '
                    f'ON "{self._table}" (namespace)'
                )
                await conn.commit()
            except (sqlite3.Error, OSError) as e:
                logger.error(f"Database tier failed to open {self._path}: {e}")
                raise TierUnavailableFault("database", "initialize", str(e)) from e
            self._connection = conn
            logger.info(f"Database tier connected: {self._path} (table={self._table})")

    async def shutdown(self) -> None:
        async with self._lock:
            if self._connection is not None:
                await self._connection.close()
                self._connection = None
                logger.info("Database tier disconnected")

    # ── Execution helpers ────────────────────────────────────────────

    async def _run(self, operation: str, key: str, fn: Callable[[aiosqlite.Connection], Awaitable[T]]) -> T:
        if self._connection is None:
            self._stats.errors += 1
            raise TierUnavailableFault("database", operation, "not connected")
        try:
            return await asyncio.wait_for(fn(self._connection), self._timeout)
        except asyncio.TimeoutError as e:
            self._stats.errors += 1
            logger.warning(f"Database {operation.upper()} timed out for key '{key}' after {self._timeout}s")
            raise TierUnavailableFault("database", operation, f"timed out after {self._timeout}s") from e
        except (sqlite3.Error, ValueError) as e:
            self._stats.errors += 1
            logger.warning(f"Database {operation.upper()} error for key '{key}': {e}")
            raise TierUnavailableFault("database", operation, str(e)) from e

    async def _write(self, conn: aiosqlite.Connection, sql: str, params: Tuple = ()) -> int:
        cursor = await conn.execute(sql, params)
        await conn.commit()
        return cursor.rowcount

    def _now(self) -> float:
        return now_ts(self._clock)

    # ── Operations ───────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[CacheEntry]:
        async def fetch(conn: aiosqlite.Connection):
            cursor = await conn.execute(
                f'SELECT value, namespace, tags, expires_at, created_at FROM "{self._table}" WHERE key = ?',
                (key,),
            )
            return await cursor.fetchone()

        row = await self._run("get", key, fetch)
        if row is None:
            self._stats.misses += 1
            return None

        if row["expires_at"] is not None and self._now() >= row["expires_at"]:
            await self._run(
                "get",
                key,
                lambda conn: self._write(conn, f'DELETE FROM "{self._table}" WHERE key = ?', (key,)),
            )
            self._stats.expirations += 1
            self._stats.misses += 1
            return None

        try:
            value = self._serializer.deserialize(row["value"])
        except Exception as e:
            self._stats.errors += 1
            raise CacheSerializationFault(key, "deserialize", str(e)) from e

        self._stats.hits += 1
        return CacheEntry(
            key=key,
            value=value,
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            tags=tuple(json.loads(row["tags"])),
            namespace=row["namespace"],
        )

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
        namespace: str = "default",
    ) -> None:
        try:
            blob = self._serializer.serialize(value)
        except Exception as e:
            self._stats.errors += 1
            raise CacheSerializationFault(key, "serialize", str(e)) from e

        now = self._now()
        params = (
            key,
            blob,
            namespace,
            json.dumps(sorted(tags)),
            now + ttl if ttl else None,
            now,
        )
        await self._run(
            "set",
            key,
            lambda conn: self._write(
                conn,
                f'INSERT OR REPLACE INTO "{self._table}" '
                "(key, value, namespace, tags, expires_at, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                params,
            ),
        )
        self._stats.sets += 1

    async def delete(self, key: str) -> bool:
        deleted = await self._run(
            "delete",
            key,
            lambda conn: self._write(conn, f'DELETE FROM "{self._table}" WHERE key = ?', (key,)),
        )
        if deleted:
            self._stats.deletes += 1
        return deleted > 0

    async def exists(self, key: str) -> bool:
        async def fetch(conn: aiosqlite.Connection):
            cursor = await conn.execute(
                f'SELECT 1 FROM "{self._table}" WHERE key = ? '
                "AND (expires_at IS NULL OR expires_at > ?)",
                (key, self._now()),
            )
            return await cursor.fetchone()

        return await self._run("exists", key, fetch) is not None

    async def clear(self) -> int:
        return await self._run(
            "clear",
            "*",
            lambda conn: self._write(conn, f'DELETE FROM "{self._table}"'),
        )

    async def keys(self, pattern: str = "*") -> List[str]:
        async def fetch(conn: aiosqlite.Connection):
            cursor = await conn.execute(
                f'SELECT key FROM "{self._table}" WHERE key GLOB ? '
                "AND (expires_at IS NULL OR expires_at > ?) ORDER BY key",
                (pattern, self._now()),
            )
            return await cursor.fetchall()

        rows = await self._run("keys", pattern, fetch)
        return [row["key"] for row in rows]

    async def stats(self) -> CacheStats:
        if self._connection is not None:
            try:
                self._stats.size = await self._count()
            except TierUnavailableFault:
                pass
        return self._stats

    async def delete_by_pattern(self, pattern: str) -> int:
        deleted = await self._run(
            "delete_by_pattern",
            pattern,
            lambda conn: self._write(conn, f'DELETE FROM "{self._table}" WHERE key GLOB ?', (pattern,)),
        )
        self._stats.deletes += deleted
        return deleted

    async def delete_by_tags(self, tags: Set[str]) -> int:
        async def fetch(conn: aiosqlite.Connection):
            cursor = await conn.execute(f'SELECT key, tags FROM "{self._table}" WHERE tags != \'[]\'')
            return await cursor.fetchall()

        rows = await self._run("delete_by_tags", ",".join(sorted(tags)), fetch)
        matched = [row["key"] for row in rows if set(json.loads(row["tags"])) & tags]
        if not matched:
            return 0

        async def remove(conn: aiosqlite.Connection) -> int:
            await conn.executemany(
                f'DELETE FROM "{self._table}" WHERE key = ?',
                [(k,) for k in matched],
            )
            await conn.commit()
            return len(matched)

        deleted = await self._run("delete_by_tags", ",".join(sorted(tags)), remove)
        self._stats.deletes += deleted
        return deleted

    # ── Maintenance ──────────────────────────────────────────────────

    async def purge_expired(self) -> int:
        now = self._now()
        purged = await self._run(
            "purge_expired",
            "*",
            lambda conn: self._write(
                conn,
                f'DELETE FROM "{self._table}" WHERE expires_at IS NOT NULL AND expires_at <= ?',
                (now,),
            ),
        )
        self._stats.expirations += purged
        if purged:
            logger.info(f"Database tier purged {purged} expired entries")
        return purged

    async def optimize(self) -> int:
        async def run(conn: aiosqlite.Connection) -> int:
            await conn.execute("ANALYZE")
            await conn.execute("PRAGMA optimize")
            await conn.commit()
            return 1

        return await self._run("optimize", "*", run)

    async def vacuum(self) -> int:
        async def run(conn: aiosqlite.Connection) -> int:
            await conn.commit()
            await conn.execute("VACUUM")
            return 1

        return await self._run("vacuum", "*", run)

    async def reindex(self) -> int:
        async def run(conn: aiosqlite.Connection) -> int:
            await conn.execute(f'REINDEX "{self._table}"')
            await conn.commit()
            return 1

        return await self._run("reindex", "*", run)

    async def health_check(self) -> bool:
        if self._connection is None:
            return False

        async def ping(conn: aiosqlite.Connection):
            cursor = await conn.execute("SELECT 1")
            return await cursor.fetchone()

        try:
            await self._run("health_check", "*", ping)
            return True
        except TierUnavailableFault:
            return False

    async def describe(self) -> Dict[str, Any]:
        async def fetch(conn: aiosqlite.Connection):
            cursor = await conn.execute(
                "SELECT COUNT(*) AS total_keys, "
                "COALESCE(SUM(LENGTH(value)), 0) AS total_bytes, "
                "MIN(created_at) AS oldest_entry, "
                "MAX(created_at) AS newest_entry, "
                "SUM(CASE WHEN expires_at IS NOT NULL AND expires_at <= ? THEN 1 ELSE 0 END) AS expired_keys "
                f'FROM "{self._table}"',
                (self._now(),),
            )
            return await cursor.fetchone()

        row = await self._run("describe", "*", fetch)
        return {
            "store": self.name,
            "path": self._path,
            "total_keys": row["total_keys"],
            "total_size_mb": round(row["total_bytes"] / 1024 / 1024, 3),
            "expired_keys": row["expired_keys"] or 0,
            "oldest_entry": row["oldest_entry"],
            "newest_entry": row["newest_entry"],
        }

    async def _count(self) -> int:
        async def fetch(conn: aiosqlite.Connection):
            cursor = await conn.execute(f'SELECT COUNT(*) FROM "{self._table}"')
            row = await cursor.fetchone()
            return row[0]

        return await self._run("count", "*", fetch)
