"""LocalSQLiteCacheBackend — aiosqlite-based async verdict cache.

Uses aiosqlite EXCLUSIVELY. The stdlib sqlite3 synchronous module is
PROHIBITED in phishscan/cache/.

Features:
  - WAL mode: PRAGMA journal_mode=WAL (concurrent reads while writing)
  - Schema version guard: PRAGMA user_version=1 — RuntimeError on mismatch, refuse startup
  - Long-lived connection: opened in initialize(), closed in close()
  - Upsert on url_hash: re-analysing a URL replaces its verdict, keeps hit_count
  - Timestamps stored as fixed-width UTC ISO 8601 strings (lexical order = time order)

Every data method raises ``CacheUnavailableError`` on failure. ResultCache
converts that into a miss / no-op.
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from typing import Any, Optional

import aiosqlite

from phishscan.cache.models import CacheEntry, entry_from_row, to_iso
from phishscan.errors import CacheUnavailableError
from phishscan.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS url_cache (
    url_hash    TEXT PRIMARY KEY,
    domain      TEXT NOT NULL,
    score       TEXT NOT NULL CHECK(score IN ('Safe', 'Low', 'Medium', 'High', 'Critical')),
    highlights  TEXT NOT NULL DEFAULT '[]',
    summary     TEXT NOT NULL,
    hit_count   INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL,
    expires_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_url_cache_expires_at
    ON url_cache(expires_at);

CREATE INDEX IF NOT EXISTS idx_url_cache_hit_count
    ON url_cache(hit_count DESC);
"""

_SCHEMA_VERSION = 1

_UPSERT_SQL = """
INSERT INTO url_cache
    (url_hash, domain, score, highlights, summary, hit_count, created_at, expires_at)
VALUES (?,?,?,?,?,?,?,?)
ON CONFLICT(url_hash) DO UPDATE SET
    domain     = excluded.domain,
    score      = excluded.score,
    highlights = excluded.highlights,
    summary    = excluded.summary,
    created_at = excluded.created_at,
    expires_at = excluded.expires_at
"""


# ─── Row deserialiser ─────────────────────────────────────────────────────────


def _row_to_entry(row: aiosqlite.Row) -> CacheEntry:
    """Convert an aiosqlite Row to a CacheEntry.

    highlights : JSON string → list[dict]; undecodable JSON is a corrupt row.
    """
    raw = dict(row)
    try:
        raw["highlights"] = json.loads(raw.get("highlights") or "[]")
    except (TypeError, ValueError) as exc:
        raise CacheUnavailableError("corrupt cache row: highlights is not JSON") from exc
    return entry_from_row(raw)


# ─── LocalSQLiteCacheBackend ──────────────────────────────────────────────────


class LocalSQLiteCacheBackend:
    """Async SQLite cache backend using aiosqlite exclusively.

    Default path: ~/.phishscan/cache.db (``cache.path`` in config).

    Usage:
        backend = LocalSQLiteCacheBackend(db_path="/tmp/cache.db")
        await backend.initialize()   # raises RuntimeError on schema version mismatch
        await backend.put_entry(entry)
        entry = await backend.get_entry(fingerprint, now)
        await backend.close()
    """

    def __init__(self, db_path: str = "~/.phishscan/cache.db") -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the SQLite connection, enable WAL mode, and create/verify schema.

        Steps:
          1. Create parent directory if absent
          2. Open aiosqlite connection (long-lived), dict-like rows
          3. PRAGMA journal_mode=WAL
          4. Read PRAGMA user_version
             - 0: fresh DB → create schema, set user_version=1
             - 1: compatible schema → no-op
             - other: RuntimeError

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode=WAL;")

        cursor = await self._db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            # executescript may not honour PRAGMA in all SQLite builds
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            await self._db.commit()
            logger.info(
                "cache_db_schema_created",
                db_path=self._db_path,
                schema_version=_SCHEMA_VERSION,
            )
        elif current_version == _SCHEMA_VERSION:
            logger.info(
                "cache_db_schema_ok",
                db_path=self._db_path,
                schema_version=current_version,
            )
        else:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"Unsupported cache database schema version: {current_version}. "
                f"Delete {self._db_path} to reset the cache."
            )

    async def close(self) -> None:
        """Close the aiosqlite connection gracefully."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("cache_db_closed", db_path=self._db_path)

    # ── CacheBackend Protocol Methods ─────────────────────────────────────────

    async def get_entry(self, fingerprint: str, now: datetime) -> Optional[CacheEntry]:
        row = await self._fetchone(
            "SELECT * FROM url_cache WHERE url_hash = ? AND expires_at > ?",
            (fingerprint, to_iso(now)),
        )
        return _row_to_entry(row) if row is not None else None

    async def put_entry(self, entry: CacheEntry) -> None:
        row = entry.to_row()
        await self._execute(
            _UPSERT_SQL,
            (
                row["url_hash"],
                row["domain"],
                row["score"],
                json.dumps(row["highlights"], ensure_ascii=False),
                row["summary"],
                row["hit_count"],
                row["created_at"],
                row["expires_at"],
            ),
        )

    async def increment_hit_count(self, fingerprint: str) -> None:
        await self._execute(
            "UPDATE url_cache SET hit_count = hit_count + 1 WHERE url_hash = ?",
            (fingerprint,),
        )

    async def top_entries(self, now: datetime, limit: int) -> list[CacheEntry]:
        db = self._require_db()
        try:
            cursor = await db.execute(
                "SELECT * FROM url_cache WHERE expires_at > ? "
                "ORDER BY hit_count DESC, created_at DESC LIMIT ?",
                (to_iso(now), limit),
            )
            rows = await cursor.fetchall()
        except Exception as exc:
            raise CacheUnavailableError(f"sqlite query failed: {type(exc).__name__}") from exc
        return [_row_to_entry(row) for row in rows]

    async def prune_expired(self, now: datetime) -> int:
        cursor = await self._execute(
            "DELETE FROM url_cache WHERE expires_at <= ?",
            (to_iso(now),),
        )
        count: int = cursor.rowcount  # type: ignore[assignment]
        if count > 0:
            logger.info("cache_prune_complete", backend="sqlite", deleted_count=count)
        return count

    async def health_check(self) -> bool:
        """Returns True if the DB connection is alive and queryable."""
        try:
            assert self._db is not None
            await self._db.execute("SELECT 1")
            return True
        except Exception:
            return False

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise CacheUnavailableError("sqlite cache not initialized")
        return self._db

    async def _fetchone(self, sql: str, params: tuple[Any, ...]) -> Optional[aiosqlite.Row]:
        db = self._require_db()
        try:
            cursor = await db.execute(sql, params)
            return await cursor.fetchone()
        except Exception as exc:
            raise CacheUnavailableError(f"sqlite query failed: {type(exc).__name__}") from exc

    async def _execute(self, sql: str, params: tuple[Any, ...]) -> aiosqlite.Cursor:
        db = self._require_db()
        try:
            cursor = await db.execute(sql, params)
            await db.commit()
            return cursor
        except Exception as exc:
            raise CacheUnavailableError(f"sqlite write failed: {type(exc).__name__}") from exc
