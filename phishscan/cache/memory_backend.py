"""MemoryCacheBackend — CacheBackend over a KeyValueStore.

Default store is the process-local ``InMemoryStore``; any other KeyValueStore
(e.g. a networked one) can be injected without changing ResultCache.

Entries are stored as backend rows (``CacheEntry.to_row()``) under
``url_cache:<fingerprint>``, so they round-trip through the same pydantic
validation as the SQLite and Supabase backends. Every write carries a TTL equal
to the entry's lifetime.

``top_entries()`` needs key enumeration, which the KeyValueStore Protocol does
not offer; the backend keeps its own fingerprint index for that. The index is
ordered by last write and holds at most ``max_entries`` fingerprints: a write
beyond the cap deletes the least recently written entry from the store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from phishscan.cache.models import CacheEntry, entry_from_row
from phishscan.cache.store import InMemoryStore, KeyValueStore
from phishscan.constants import MEMORY_CACHE_MAX_ENTRIES
from phishscan.errors import CacheUnavailableError
from phishscan.utils.logger import get_logger

logger = get_logger(__name__)

_KEY_PREFIX = "url_cache:"


def _ttl_ms(entry: CacheEntry) -> int:
    return max(0, int((entry.expires_at - entry.created_at).total_seconds() * 1000))


class MemoryCacheBackend:
    """CacheBackend storing rows in a KeyValueStore.

    Store exceptions are re-raised as ``CacheUnavailableError``.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        max_entries: int = MEMORY_CACHE_MAX_ENTRIES,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self._store: KeyValueStore = store if store is not None else InMemoryStore()
        self.max_entries = max_entries
        # dict as an insertion-ordered set: oldest write first
        self._fingerprints: dict[str, None] = {}

    @property
    def entry_count(self) -> int:
        """Fingerprints currently indexed."""
        return len(self._fingerprints)

    async def get_entry(self, fingerprint: str, now: datetime) -> Optional[CacheEntry]:
        row = await self._call_get(fingerprint)
        if row is None:
            self._fingerprints.pop(fingerprint, None)
            return None
        entry = entry_from_row(row)
        if entry.is_expired(now):
            return None
        return entry

    async def put_entry(self, entry: CacheEntry) -> None:
        row = entry.to_row()
        existing = await self._call_get(entry.fingerprint)
        if existing is not None:
            row["hit_count"] = int(existing.get("hit_count") or 0)
        await self._call_set(entry.fingerprint, row, _ttl_ms(entry))
        self._fingerprints.pop(entry.fingerprint, None)
        self._fingerprints[entry.fingerprint] = None

        evicted = 0
        while len(self._fingerprints) > self.max_entries:
            oldest = next(iter(self._fingerprints))
            await self._call_delete(oldest)
            del self._fingerprints[oldest]
            evicted += 1
        if evicted:
            logger.debug("cache_evicted", backend="memory", evicted_count=evicted)

    async def increment_hit_count(self, fingerprint: str) -> None:
        row = await self._call_get(fingerprint)
        if row is None:
            return
        entry = entry_from_row(row)
        row["hit_count"] = entry.hit_count + 1
        await self._call_set(fingerprint, row, _ttl_ms(entry))

    async def top_entries(self, now: datetime, limit: int) -> list[CacheEntry]:
        entries: list[CacheEntry] = []
        for fingerprint in list(self._fingerprints):
            row = await self._call_get(fingerprint)
            if row is None:
                self._fingerprints.pop(fingerprint, None)
                continue
            entry = entry_from_row(row)
            if not entry.is_expired(now):
                entries.append(entry)
        entries.sort(key=lambda e: (-e.hit_count, e.fingerprint))
        return entries[:limit]

    async def prune_expired(self, now: datetime) -> int:
        removed = 0
        for fingerprint in list(self._fingerprints):
            row = await self._call_get(fingerprint)
            if row is not None and not entry_from_row(row).is_expired(now):
                continue
            await self._call_delete(fingerprint)
            self._fingerprints.pop(fingerprint, None)
            if row is not None:
                removed += 1
        if removed:
            logger.info("cache_prune_complete", backend="memory", deleted_count=removed)
        return removed

    async def health_check(self) -> bool:
        try:
            await self._store.get(_KEY_PREFIX + "__health__")
            return True
        except Exception:
            return False

    async def close(self) -> None:
        self._fingerprints.clear()

    async def _call_get(self, fingerprint: str) -> Optional[dict]:
        try:
            return await self._store.get(_KEY_PREFIX + fingerprint)
        except Exception as exc:
            raise CacheUnavailableError(f"store get failed: {type(exc).__name__}") from exc

    async def _call_set(self, fingerprint: str, row: dict, ttl_ms: int) -> None:
        try:
            await self._store.set(_KEY_PREFIX + fingerprint, row, ttl_ms=ttl_ms)
        except Exception as exc:
            raise CacheUnavailableError(f"store set failed: {type(exc).__name__}") from exc

    async def _call_delete(self, fingerprint: str) -> None:
        try:
            await self._store.delete(_KEY_PREFIX + fingerprint)
        except Exception as exc:
            raise CacheUnavailableError(f"store delete failed: {type(exc).__name__}") from exc
