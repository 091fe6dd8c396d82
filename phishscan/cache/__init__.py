"""PhishScan verdict cache package.

Re-exports the public API for ergonomic imports:

    from phishscan.cache import ResultCache, CacheBackend, NullCacheBackend

Layout:
    models.py           — CacheEntry + CacheRow (pydantic row validation)
    protocol.py         — CacheBackend Protocol + NullCacheBackend
    store.py            — KeyValueStore Protocol + InMemoryStore (TTL)
    memory_backend.py   — MemoryCacheBackend (KeyValueStore, capped index)
    sqlite_backend.py   — LocalSQLiteCacheBackend (aiosqlite, WAL, PRAGMA version guard)
    supabase_backend.py — SupabaseCacheBackend (async client, 5s timeout)
    factory.py          — create_cache_backend() — backend selection by config + env vars
    result_cache.py     — ResultCache, fingerprint(), is_valid_url(), extract_domain(),
                          run_cache_pruner()
"""

from phishscan.cache.models import CacheEntry
from phishscan.cache.protocol import CacheBackend, NullCacheBackend
from phishscan.cache.result_cache import (
    ResultCache,
    extract_domain,
    fingerprint,
    is_valid_url,
    run_cache_pruner,
)

__all__ = [
    "CacheEntry",
    "CacheBackend",
    "NullCacheBackend",
    "ResultCache",
    "extract_domain",
    "fingerprint",
    "is_valid_url",
    "run_cache_pruner",
]
