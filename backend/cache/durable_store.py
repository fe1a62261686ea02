"""
Durable Cache Store
持久化缓存存储

SQLite-backed tiers for profile payloads and rendered card images.

Database layout:
profile_cache(handle TEXT PRIMARY KEY, data TEXT, cached_at INTEGER)
image_cache(cache_key TEXT PRIMARY KEY, image BLOB, cached_at INTEGER)

- One row per key, writes are INSERT OR REPLACE (upsert)
- Keys are case-insensitive (stored lower-cased)
- cached_at is epoch milliseconds
- Any sqlite failure surfaces as CacheBackendError
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import aiosqlite

from core.errors import CacheBackendError
from .models import CacheRecord, now_ms

logger = logging.getLogger(__name__)


def _encode_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _decode_json(raw: Any) -> Any:
    return json.loads(raw)


def _encode_bytes(value: Any) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"image cache values must be bytes, got {type(value).__name__}")
    return bytes(value)


def _decode_bytes(raw: Any) -> bytes:
    return bytes(raw)


class SQLiteCacheBackend:
    """
    Owns the SQLite connection shared by the durable tiers

    Lifecycle: initialize() once at startup, close() at shutdown.
    """

    def __init__(self, db_path: str = "./databases/cards.db"):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None

        self.profiles = DurableCacheTier(
            self,
            name="profile",
            table="profile_cache",
            key_column="handle",
            value_column="data",
            encode=_encode_json,
            decode=_decode_json,
        )
        self.screenshots = DurableCacheTier(
            self,
            name="screenshot",
            table="image_cache",
            key_column="cache_key",
            value_column="image",
            encode=_encode_bytes,
            decode=_decode_bytes,
        )

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def initialize(self) -> None:
        """Open the database and create tables if needed"""
        if self._db is not None:
            return

        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self._db = await aiosqlite.connect(self.db_path)
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA synchronous=NORMAL")
            await self._db.execute("PRAGMA temp_store=MEMORY")

            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS profile_cache (
                    handle TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    cached_at INTEGER NOT NULL
                )
            """)
            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS image_cache (
                    cache_key TEXT PRIMARY KEY,
                    image BLOB NOT NULL,
                    cached_at INTEGER NOT NULL
                )
            """)
            await self._db.commit()
        except (sqlite3.Error, OSError) as e:
            raise CacheBackendError(detail=f"failed to open {self.db_path}: {e}") from e

        logger.info(f"[Cache] SQLite cache ready: {self.db_path}")

    async def close(self) -> None:
        """Close the connection (errors are logged, never raised)"""
        db, self._db = self._db, None
        if db is None:
            return
        try:
            await db.close()
            logger.info("[Cache] SQLite connection closed")
        except Exception as e:
            logger.error(f"[Cache] Failed to close SQLite connection: {e}")

    def connection(self) -> aiosqlite.Connection:
        if self._db is None:
            raise CacheBackendError(detail="cache database is not open")
        return self._db

    async def stats(self) -> Dict[str, Any]:
        """Row counts per tier"""
        return {
            "path": self.db_path,
            "profiles": await self.profiles.count(),
            "screenshots": await self.screenshots.count(),
        }


class DurableCacheTier:
    """
    One durable tier (one table)

    Uniform contract shared with the disk tier:
    get(key), set(key, value), prune_older_than(ttl), clear()
    """

    def __init__(
        self,
        backend: SQLiteCacheBackend,
        name: str,
        table: str,
        key_column: str,
        value_column: str,
        encode: Callable[[Any], Any],
        decode: Callable[[Any], Any],
    ):
        self.name = name
        self._backend = backend
        self._table = table
        self._key_column = key_column
        self._value_column = value_column
        self._encode = encode
        self._decode = decode

    @staticmethod
    def normalize_key(key: str) -> str:
        return key.strip().lower()

    async def get(self, key: str) -> Optional[CacheRecord]:
        """
        Get record by key

        Returns:
            CacheRecord (possibly stale) or None
        """
        normalized = self.normalize_key(key)
        sql = (
            f"SELECT {self._value_column}, cached_at FROM {self._table} "
            f"WHERE {self._key_column} = ?"
        )
        try:
            db = self._backend.connection()
            async with db.execute(sql, (normalized,)) as cursor:
                row = await cursor.fetchone()
        except (sqlite3.Error, ValueError) as e:
            raise CacheBackendError(detail=f"{self.name} get failed: {e}") from e

        if row is None:
            return None

        try:
            value = self._decode(row[0])
        except (ValueError, TypeError) as e:
            logger.warning(f"[Cache] Undecodable {self.name} entry {normalized}: {e}")
            return None

        return CacheRecord(key=normalized, value=value, cached_at=int(row[1]))

    async def set(self, key: str, value: Any, cached_at: Optional[int] = None) -> None:
        """
        Upsert value under key

        Args:
            key: Cache key (case-insensitive)
            value: Value to store
            cached_at: Epoch millis override (defaults to now)
        """
        normalized = self.normalize_key(key)
        encoded = self._encode(value)
        sql = (
            f"INSERT OR REPLACE INTO {self._table} "
            f"({self._key_column}, {self._value_column}, cached_at) VALUES (?, ?, ?)"
        )
        try:
            db = self._backend.connection()
            await db.execute(sql, (normalized, encoded, cached_at if cached_at is not None else now_ms()))
            await db.commit()
        except (sqlite3.Error, ValueError) as e:
            raise CacheBackendError(detail=f"{self.name} set failed: {e}") from e

    async def delete(self, key: str) -> bool:
        sql = f"DELETE FROM {self._table} WHERE {self._key_column} = ?"
        return await self._write(sql, (self.normalize_key(key),)) > 0

    async def prune_older_than(self, ttl_seconds: float) -> int:
        """
        Remove rows older than ttl

        Returns:
            Number of rows removed
        """
        cutoff = now_ms() - int(ttl_seconds * 1000)
        sql = f"DELETE FROM {self._table} WHERE cached_at < ?"
        removed = await self._write(sql, (cutoff,))
        if removed:
            logger.info(f"[Cache] Pruned {removed} expired {self.name} entries")
        return removed

    async def clear(self) -> int:
        """Remove every row"""
        return await self._write(f"DELETE FROM {self._table}", ())

    async def count(self) -> int:
        try:
            db = self._backend.connection()
            async with db.execute(f"SELECT COUNT(*) FROM {self._table}") as cursor:
                row = await cursor.fetchone()
        except (sqlite3.Error, ValueError) as e:
            raise CacheBackendError(detail=f"{self.name} count failed: {e}") from e
        return int(row[0]) if row else 0

    async def _write(self, sql: str, params: tuple) -> int:
        try:
            db = self._backend.connection()
            cursor = await db.execute(sql, params)
            await db.commit()
            return cursor.rowcount
        except (sqlite3.Error, ValueError) as e:
            raise CacheBackendError(detail=f"{self.name} write failed: {e}") from e
