"""SupabaseCacheBackend — async Supabase verdict cache.

All calls are wrapped in asyncio.wait_for with a 5-second timeout.
Failures are logged and re-raised as ``CacheUnavailableError``; ResultCache
turns them into a miss / no-op, so the request path never sees them.

The supabase library is an optional dependency — if it is not installed,
``initialize()`` logs a warning and the backend stays unavailable
(``available`` is False); the factory then falls back to NullCacheBackend.

Install: pip install phishscan[supabase]

Environment:
  SUPABASE_URL  — required for SupabaseCacheBackend selection in factory.py
  SUPABASE_KEY  — required (service role key, not anon key)

Table (create in the Supabase project):

    create table url_cache (
        url_hash    text primary key,
        domain      text not null,
        score       text not null,
        highlights  jsonb not null default '[]',
        summary     text not null,
        hit_count   integer not null default 0,
        created_at  timestamptz not null default now(),
        expires_at  timestamptz not null
    );
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Optional

from phishscan.cache.models import CacheEntry, entry_from_row, to_iso
from phishscan.errors import CacheUnavailableError
from phishscan.utils.logger import get_logger

logger = get_logger(__name__)

# supabase is an optional dependency; without it this backend stays unavailable.
try:
    from supabase import create_async_client  # type: ignore[import-untyped]
    _SUPABASE_AVAILABLE = True
except ImportError:
    _SUPABASE_AVAILABLE = False

# ─── Constants ────────────────────────────────────────────────────────────────

_SUPABASE_TIMEOUT_S = 5.0
"""All Supabase operations are wrapped in asyncio.wait_for(timeout=_SUPABASE_TIMEOUT_S)."""

_TABLE_NAME = "url_cache"


# ─── SupabaseCacheBackend ─────────────────────────────────────────────────────


class SupabaseCacheBackend:
    """Async Supabase cache backend (PostgREST ``url_cache`` table).

    Usage:
        backend = SupabaseCacheBackend(url="https://...", key="service-role-key")
        await backend.initialize()
        if backend.available:
            entry = await backend.get_entry(fingerprint, now)
        await backend.close()
    """

    def __init__(
        self,
        url: str,
        key: str,
        table_name: str = _TABLE_NAME,
        timeout_s: float = _SUPABASE_TIMEOUT_S,
    ) -> None:
        self._url = url
        self._key = key
        self._table_name = table_name
        self._timeout_s = timeout_s
        self._client: Optional[Any] = None

    @property
    def available(self) -> bool:
        return self._client is not None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Create the async Supabase client.

        Library missing or connection failure → logged, client stays None.
        """
        if not _SUPABASE_AVAILABLE:
            logger.warning(
                "supabase_cache_unavailable",
                reason="supabase library not installed",
                hint="pip install phishscan[supabase]",
            )
            return

        try:
            self._client = await asyncio.wait_for(
                create_async_client(self._url, self._key),
                timeout=self._timeout_s,
            )
            logger.info(
                "supabase_cache_initialized",
                table=self._table_name,
                timeout_s=self._timeout_s,
            )
        except Exception as exc:
            logger.error(
                "supabase_cache_init_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self._client = None

    async def close(self) -> None:
        """Drop the Supabase client (HTTP clients are stateless)."""
        self._client = None
        logger.debug("supabase_cache_closed")

    # ── CacheBackend Protocol Methods ─────────────────────────────────────────

    async def get_entry(self, fingerprint: str, now: datetime) -> Optional[CacheEntry]:
        response = await self._run(
            "get_entry",
            self._table()
            .select("*")
            .eq("url_hash", fingerprint)
            .gt("expires_at", to_iso(now))
            .limit(1),
        )
        if not response.data:
            return None
        return entry_from_row(response.data[0])

    async def put_entry(self, entry: CacheEntry) -> None:
        payload = entry.to_row()
        # Leave hit_count to the column default on insert and untouched on update
        payload.pop("hit_count", None)
        await self._run(
            "put_entry",
            self._table().upsert(payload, on_conflict="url_hash"),
        )

    async def increment_hit_count(self, fingerprint: str) -> None:
        response = await self._run(
            "read_hit_count",
            self._table().select("hit_count").eq("url_hash", fingerprint).limit(1),
        )
        if not response.data:
            return
        current = int(response.data[0].get("hit_count") or 0)
        await self._run(
            "increment_hit_count",
            self._table().update({"hit_count": current + 1}).eq("url_hash", fingerprint),
        )

    async def top_entries(self, now: datetime, limit: int) -> list[CacheEntry]:
        response = await self._run(
            "top_entries",
            self._table()
            .select("*")
            .gt("expires_at", to_iso(now))
            .order("hit_count", desc=True)
            .limit(limit),
        )
        return [entry_from_row(row) for row in response.data or []]

    async def prune_expired(self, now: datetime) -> int:
        response = await self._run(
            "prune_expired",
            self._table().delete().lte("expires_at", to_iso(now)),
        )
        # Supabase may or may not return the deleted rows
        count = len(response.data) if response.data else 0
        if count > 0:
            logger.info("cache_prune_complete", backend="supabase", deleted_count=count)
        return count

    async def health_check(self) -> bool:
        """Returns True if Supabase answers a one-row select within the timeout."""
        if self._client is None:
            return False
        try:
            response = await asyncio.wait_for(
                self._table().select("url_hash", count="exact").limit(1).execute(),
                timeout=self._timeout_s,
            )
            return response is not None
        except Exception as exc:
            logger.error(
                "supabase_cache_health_check_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _table(self) -> Any:
        if self._client is None:
            raise CacheUnavailableError("supabase cache not initialized")
        return self._client.table(self._table_name)

    async def _run(self, operation: str, query: Any) -> Any:
        """Execute a query builder with the timeout; wrap every failure."""
        try:
            return await asyncio.wait_for(query.execute(), timeout=self._timeout_s)
        except Exception as exc:
            logger.error(
                f"supabase_{operation}_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise CacheUnavailableError(f"supabase {operation} failed") from exc
