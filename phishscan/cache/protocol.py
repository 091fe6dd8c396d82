"""CacheBackend Protocol + NullCacheBackend.

CacheEntry is defined in phishscan/cache/models.py.
This module defines the pluggable backend interface that ResultCache talks to.

Layout:
    models.py   — CacheEntry, CacheRow (pydantic row validation)
    protocol.py — CacheBackend Protocol + NullCacheBackend
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from phishscan.cache.models import CacheEntry
from phishscan.utils.logger import get_logger

logger = get_logger(__name__)


# ─── CacheBackend Protocol ────────────────────────────────────────────────────


@runtime_checkable
class CacheBackend(Protocol):
    """Pluggable verdict-cache backend interface.

    Implementations: MemoryCacheBackend, LocalSQLiteCacheBackend,
    SupabaseCacheBackend, NullCacheBackend.
    Selection via create_cache_backend() factory (cache/factory.py).

    Error contract: data methods raise ``CacheUnavailableError`` on any failure
    (connectivity, timeout, corrupt row). They never return partial data.
    ``ResultCache`` is the only caller and converts every such error into a
    miss or a no-op. ``health_check()`` and ``close()`` never raise.
    """

    async def get_entry(self, fingerprint: str, now: datetime) -> Optional[CacheEntry]:
        """Return the entry for ``fingerprint`` if one exists with ``expires_at > now``."""
        ...

    async def put_entry(self, entry: CacheEntry) -> None:
        """Insert or replace the entry keyed by ``entry.fingerprint``.

        An existing row's ``hit_count`` is preserved.
        """
        ...

    async def increment_hit_count(self, fingerprint: str) -> None:
        """Add one to the entry's hit counter. No-op if the entry is gone."""
        ...

    async def top_entries(self, now: datetime, limit: int) -> list[CacheEntry]:
        """Unexpired entries ordered by ``hit_count`` DESC, at most ``limit``."""
        ...

    async def prune_expired(self, now: datetime) -> int:
        """Delete entries with ``expires_at <= now``. Returns the number removed."""
        ...

    async def health_check(self) -> bool:
        """Returns True if the backend is operational. Must not raise."""
        ...

    async def close(self) -> None:
        """Clean up connections and resources. Called during graceful shutdown."""
        ...


# ─── NullCacheBackend ────────────────────────────────────────────────────────


class NullCacheBackend:
    """No-op CacheBackend — caching disabled, or the configured backend failed to start.

    Every lookup misses, every write is discarded.
    """

    async def get_entry(self, fingerprint: str, now: datetime) -> Optional[CacheEntry]:
        return None

    async def put_entry(self, entry: CacheEntry) -> None:
        logger.debug("null_cache_put_discarded", url_hash=entry.fingerprint[:12])

    async def increment_hit_count(self, fingerprint: str) -> None:
        return None

    async def top_entries(self, now: datetime, limit: int) -> list[CacheEntry]:
        return []

    async def prune_expired(self, now: datetime) -> int:
        return 0

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ─── Protocol compliance assertion ────────────────────────────────────────────
# Runs at import time: protocol drift fails the import.
assert isinstance(NullCacheBackend(), CacheBackend), (
    "NullCacheBackend does not satisfy CacheBackend protocol — implementation error"
)
