"""Cache backend factory — backend selection and initialization.

Backend selection by ``cache.backend``:
  auto     → SupabaseCacheBackend if SUPABASE_URL and SUPABASE_KEY are both set,
             otherwise LocalSQLiteCacheBackend
  supabase → SupabaseCacheBackend (requires the env vars)
  sqlite   → LocalSQLiteCacheBackend at ``cache.path``
  memory   → MemoryCacheBackend (process-local)
  none     → NullCacheBackend

The cache is optional: any initialization failure (library missing, Supabase
unreachable, env vars absent, SQLite schema version mismatch) is logged at
WARNING and degrades to NullCacheBackend. Startup never fails because of the cache.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from phishscan.cache.protocol import CacheBackend, NullCacheBackend
from phishscan.utils.logger import get_logger

if TYPE_CHECKING:
    from phishscan.config import Config

logger = get_logger(__name__)

# ─── Environment variable names ───────────────────────────────────────────────

_ENV_SUPABASE_URL = "SUPABASE_URL"
_ENV_SUPABASE_KEY = "SUPABASE_KEY"


async def create_cache_backend(config: "Config") -> CacheBackend:
    """Create and initialize the configured cache backend.

    Args:
        config: Application Config; reads ``config.cache``.

    Returns:
        Initialized CacheBackend. NullCacheBackend when disabled or on failure.
    """
    choice = config.cache.backend
    supabase_url = os.getenv(_ENV_SUPABASE_URL)
    supabase_key = os.getenv(_ENV_SUPABASE_KEY)

    if choice == "none":
        logger.info("cache_backend_selected", backend="NullCacheBackend", reason="disabled")
        return NullCacheBackend()

    if choice == "memory":
        from phishscan.cache.memory_backend import MemoryCacheBackend

        logger.info("cache_backend_selected", backend="MemoryCacheBackend")
        return MemoryCacheBackend()

    if choice == "supabase" or (choice == "auto" and supabase_url and supabase_key):
        if not (supabase_url and supabase_key):
            logger.warning(
                "cache_backend_fallback",
                requested="supabase",
                backend="NullCacheBackend",
                reason="SUPABASE_URL / SUPABASE_KEY not set",
            )
            return NullCacheBackend()
        return await _create_supabase_backend(supabase_url, supabase_key)

    return await _create_local_sqlite_backend(config.cache.path)


async def _create_supabase_backend(url: str, key: str) -> CacheBackend:
    from phishscan.cache.supabase_backend import SupabaseCacheBackend

    backend = SupabaseCacheBackend(url=url, key=key)
    await backend.initialize()
    if not backend.available:
        logger.warning(
            "cache_backend_fallback",
            requested="supabase",
            backend="NullCacheBackend",
            reason="supabase client unavailable",
        )
        return NullCacheBackend()

    logger.info(
        "cache_backend_selected",
        backend="SupabaseCacheBackend",
        # Never log the key, only the URL host
        supabase_host=url.split("//")[-1].split(".")[0] if "//" in url else "unknown",
    )
    return backend


async def _create_local_sqlite_backend(db_path: str) -> CacheBackend:
    from phishscan.cache.sqlite_backend import LocalSQLiteCacheBackend

    backend = LocalSQLiteCacheBackend(db_path=db_path)
    try:
        await backend.initialize()
    except Exception as exc:
        logger.warning(
            "cache_backend_fallback",
            requested="sqlite",
            backend="NullCacheBackend",
            db_path=db_path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        await backend.close()
        return NullCacheBackend()

    logger.info("cache_backend_selected", backend="LocalSQLiteCacheBackend", db_path=db_path)
    return backend
