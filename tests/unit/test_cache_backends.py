"""Unit tests for the CacheBackend implementations.

Covers:
  - InMemoryStore — TTL eviction, copy semantics
  - MemoryCacheBackend — KeyValueStore-backed, hit_count preserved on re-put,
    entry TTL passed to the store, index capped at max_entries
  - LocalSQLiteCacheBackend — aiosqlite on tmp_path: WAL, user_version guard,
    upsert, expiry filter, ordering, prune, corrupt rows
  - Protocol compliance for every backend
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import aiosqlite
import pytest

from phishscan.cache.memory_backend import MemoryCacheBackend
from phishscan.cache.models import CacheEntry, entry_from_row
from phishscan.cache.protocol import CacheBackend, NullCacheBackend
from phishscan.cache.sqlite_backend import LocalSQLiteCacheBackend
from phishscan.cache.store import InMemoryStore, KeyValueStore
from phishscan.cache.supabase_backend import SupabaseCacheBackend
from phishscan.errors import CacheUnavailableError
from phishscan.models.analysis import AnalysisResult, Highlight, RiskLevel

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def _entry(
    fingerprint: str = "a" * 64,
    domain: str = "evil.example.com",
    score: RiskLevel = RiskLevel.HIGH,
    created_at: datetime = NOW,
    days: int = 7,
) -> CacheEntry:
    return CacheEntry(
        fingerprint=fingerprint,
        domain=domain,
        result=AnalysisResult(
            score=score,
            highlights=(Highlight("계좌 확인", "Financial request"),),
            summary="요약",
        ),
        created_at=created_at,
        expires_at=created_at + timedelta(days=days),
    )


# ─── Protocol compliance ──────────────────────────────────────────────────────


class TestProtocolCompliance:
    @pytest.mark.parametrize(
        "backend",
        [
            NullCacheBackend(),
            MemoryCacheBackend(),
            LocalSQLiteCacheBackend(db_path="/tmp/unused.db"),
            SupabaseCacheBackend(url="https://test.supabase.co", key="k"),
        ],
        ids=["null", "memory", "sqlite", "supabase"],
    )
    def test_satisfies_cache_backend_protocol(self, backend: Any) -> None:
        assert isinstance(backend, CacheBackend)


# ─── Row validation ───────────────────────────────────────────────────────────


class TestEntryFromRow:
    def test_round_trip(self) -> None:
        entry = _entry()
        assert entry_from_row(entry.to_row()) == entry

    def test_unknown_columns_ignored(self) -> None:
        row = _entry().to_row()
        row["id"] = 17
        assert entry_from_row(row).fingerprint == "a" * 64

    @pytest.mark.parametrize(
        "mutation",
        [
            {"score": "Severe"},
            {"summary": None},
            {"highlights": [{"text": "only text"}]},
            {"expires_at": "not a date"},
        ],
    )
    def test_corrupt_row_raises_cache_unavailable(self, mutation: dict[str, Any]) -> None:
        row = _entry().to_row()
        row.update(mutation)
        with pytest.raises(CacheUnavailableError):
            entry_from_row(row)

    def test_row_never_contains_raw_url(self) -> None:
        row = _entry().to_row()
        assert set(row) == {
            "url_hash",
            "domain",
            "score",
            "highlights",
            "summary",
            "hit_count",
            "created_at",
            "expires_at",
        }


# ─── InMemoryStore ────────────────────────────────────────────────────────────


class TestInMemoryStore:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryStore(), KeyValueStore)

    async def test_get_missing_returns_none(self) -> None:
        assert await InMemoryStore().get("nope") is None

    async def test_set_get_delete(self) -> None:
        store = InMemoryStore()
        await store.set("k", {"count": 1})
        assert await store.get("k") == {"count": 1}
        await store.delete("k")
        assert await store.get("k") is None

    async def test_delete_missing_is_noop(self) -> None:
        await InMemoryStore().delete("nope")

    async def test_ttl_eviction(self, fake_clock: Any) -> None:
        store = InMemoryStore(clock=fake_clock)
        await store.set("k", {"v": 1}, ttl_ms=1000)
        fake_clock.advance(999)
        assert await store.get("k") == {"v": 1}
        fake_clock.advance(1)
        assert await store.get("k") is None
        assert len(store) == 0

    async def test_values_are_copied(self) -> None:
        store = InMemoryStore()
        value = {"count": 1}
        await store.set("k", value)
        value["count"] = 99
        fetched = await store.get("k")
        assert fetched == {"count": 1}
        fetched["count"] = 42  # type: ignore[index]
        assert await store.get("k") == {"count": 1}

    async def test_keys_by_prefix(self) -> None:
        store = InMemoryStore()
        await store.set("a:1", {})
        await store.set("a:2", {})
        await store.set("b:1", {})
        assert sorted(store.keys("a:")) == ["a:1", "a:2"]


# ─── MemoryCacheBackend ───────────────────────────────────────────────────────


class TestMemoryCacheBackend:
    async def test_put_get(self) -> None:
        backend = MemoryCacheBackend()
        await backend.put_entry(_entry())
        entry = await backend.get_entry("a" * 64, NOW)
        assert entry is not None
        assert entry.result.score is RiskLevel.HIGH

    async def test_expired_is_invisible(self) -> None:
        backend = MemoryCacheBackend()
        await backend.put_entry(_entry(days=1))
        assert await backend.get_entry("a" * 64, NOW + timedelta(days=1)) is None

    async def test_reput_preserves_hit_count(self) -> None:
        backend = MemoryCacheBackend()
        await backend.put_entry(_entry())
        await backend.increment_hit_count("a" * 64)
        await backend.put_entry(_entry(score=RiskLevel.LOW))
        entry = await backend.get_entry("a" * 64, NOW)
        assert entry is not None
        assert entry.hit_count == 1
        assert entry.result.score is RiskLevel.LOW

    async def test_increment_missing_is_noop(self) -> None:
        await MemoryCacheBackend().increment_hit_count("missing")

    async def test_top_entries_ordered_by_hits(self) -> None:
        backend = MemoryCacheBackend()
        await backend.put_entry(_entry("a" * 64, domain="a.example"))
        await backend.put_entry(_entry("b" * 64, domain="b.example"))
        await backend.put_entry(_entry("c" * 64, domain="c.example", days=0))
        for _ in range(3):
            await backend.increment_hit_count("b" * 64)
        top = await backend.top_entries(NOW, limit=10)
        assert [e.domain for e in top] == ["b.example", "a.example"]
        assert len(await backend.top_entries(NOW, limit=1)) == 1

    async def test_uses_injected_store(self) -> None:
        store = InMemoryStore()
        backend = MemoryCacheBackend(store=store)
        await backend.put_entry(_entry())
        assert store.keys() == ["url_cache:" + "a" * 64]

    async def test_store_failure_becomes_cache_unavailable(self) -> None:
        class _BrokenStore(InMemoryStore):
            async def get(self, key: str) -> Any:
                raise ConnectionError("kv down")

        backend = MemoryCacheBackend(store=_BrokenStore())
        with pytest.raises(CacheUnavailableError):
            await backend.get_entry("a" * 64, NOW)
        assert await backend.health_check() is False

    async def test_writes_carry_entry_lifetime_as_ttl(self, fake_clock: Any) -> None:
        store = InMemoryStore(clock=fake_clock)
        backend = MemoryCacheBackend(store=store)
        await backend.put_entry(_entry(days=7))
        await backend.increment_hit_count("a" * 64)

        fake_clock.advance(7 * 24 * 60 * 60 * 1000 - 1)
        assert store.keys() == ["url_cache:" + "a" * 64]
        fake_clock.advance(1)
        assert await backend.get_entry("a" * 64, NOW) is None
        assert len(store) == 0
        assert backend.entry_count == 0

    async def test_many_stores_stay_within_cap(self) -> None:
        store = InMemoryStore()
        backend = MemoryCacheBackend(store=store, max_entries=100)
        for i in range(1000):
            await backend.put_entry(_entry(f"{i:064x}"))
        assert len(store) == 100
        assert backend.entry_count == 100
        # the most recent writes survive
        assert await backend.get_entry(f"{999:064x}", NOW) is not None
        assert await backend.get_entry(f"{899:064x}", NOW) is None

    async def test_rewrite_refreshes_eviction_order(self) -> None:
        backend = MemoryCacheBackend(max_entries=2)
        await backend.put_entry(_entry("a" * 64))
        await backend.put_entry(_entry("b" * 64))
        await backend.put_entry(_entry("a" * 64))
        await backend.put_entry(_entry("c" * 64))
        assert await backend.get_entry("a" * 64, NOW) is not None
        assert await backend.get_entry("b" * 64, NOW) is None

    async def test_prune_clears_index(self) -> None:
        store = InMemoryStore()
        backend = MemoryCacheBackend(store=store)
        await backend.put_entry(_entry("a" * 64, days=1))
        await backend.put_entry(_entry("b" * 64, days=30))
        assert await backend.prune_expired(NOW + timedelta(days=2)) == 1
        assert backend.entry_count == 1
        assert store.keys() == ["url_cache:" + "b" * 64]

    def test_rejects_non_positive_cap(self) -> None:
        with pytest.raises(ValueError):
            MemoryCacheBackend(max_entries=0)


# ─── LocalSQLiteCacheBackend ──────────────────────────────────────────────────


@pytest.fixture
async def sqlite_backend(tmp_path: Any) -> Any:
    backend = LocalSQLiteCacheBackend(db_path=str(tmp_path / "cache.db"))
    await backend.initialize()
    yield backend
    await backend.close()


class TestLocalSQLiteCacheBackend:
    async def test_wal_mode_and_schema_version(self, tmp_path: Any) -> None:
        db_path = str(tmp_path / "wal.db")
        backend = LocalSQLiteCacheBackend(db_path=db_path)
        await backend.initialize()
        await backend.close()

        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute("PRAGMA journal_mode;")
            assert (await cursor.fetchone())[0] == "wal"
            cursor = await db.execute("PRAGMA user_version;")
            assert (await cursor.fetchone())[0] == 1

    async def test_reinitialize_existing_db(self, tmp_path: Any) -> None:
        db_path = str(tmp_path / "again.db")
        for _ in range(2):
            backend = LocalSQLiteCacheBackend(db_path=db_path)
            await backend.initialize()
            await backend.close()

    async def test_unsupported_schema_version_raises(self, tmp_path: Any) -> None:
        db_path = str(tmp_path / "future.db")
        async with aiosqlite.connect(db_path) as db:
            await db.execute("PRAGMA user_version = 99;")
            await db.commit()
        backend = LocalSQLiteCacheBackend(db_path=db_path)
        with pytest.raises(RuntimeError):
            await backend.initialize()

    async def test_creates_parent_directory(self, tmp_path: Any) -> None:
        db_path = tmp_path / "nested" / "dir" / "cache.db"
        backend = LocalSQLiteCacheBackend(db_path=str(db_path))
        await backend.initialize()
        await backend.close()
        assert db_path.exists()

    async def test_put_get_round_trip(self, sqlite_backend: Any) -> None:
        entry = _entry()
        await sqlite_backend.put_entry(entry)
        assert await sqlite_backend.get_entry(entry.fingerprint, NOW) == entry

    async def test_expired_is_invisible(self, sqlite_backend: Any) -> None:
        await sqlite_backend.put_entry(_entry(days=7))
        assert await sqlite_backend.get_entry("a" * 64, NOW + timedelta(days=7)) is None
        assert await sqlite_backend.get_entry("a" * 64, NOW + timedelta(days=6)) is not None

    async def test_upsert_preserves_hit_count(self, sqlite_backend: Any) -> None:
        await sqlite_backend.put_entry(_entry())
        await sqlite_backend.increment_hit_count("a" * 64)
        await sqlite_backend.increment_hit_count("a" * 64)
        await sqlite_backend.put_entry(_entry(score=RiskLevel.CRITICAL))
        entry = await sqlite_backend.get_entry("a" * 64, NOW)
        assert entry is not None
        assert entry.hit_count == 2
        assert entry.result.score is RiskLevel.CRITICAL

    async def test_top_entries(self, sqlite_backend: Any) -> None:
        await sqlite_backend.put_entry(_entry("a" * 64, domain="a.example"))
        await sqlite_backend.put_entry(_entry("b" * 64, domain="b.example"))
        await sqlite_backend.put_entry(
            _entry("c" * 64, domain="old.example", created_at=NOW - timedelta(days=10))
        )
        await sqlite_backend.increment_hit_count("b" * 64)
        top = await sqlite_backend.top_entries(NOW, limit=100)
        assert [e.domain for e in top] == ["b.example", "a.example"]

    async def test_prune_expired(self, sqlite_backend: Any) -> None:
        await sqlite_backend.put_entry(_entry("a" * 64))
        await sqlite_backend.put_entry(
            _entry("b" * 64, created_at=NOW - timedelta(days=10))
        )
        assert await sqlite_backend.prune_expired(NOW) == 1
        assert await sqlite_backend.get_entry("a" * 64, NOW) is not None

    async def test_corrupt_highlights_json(self, sqlite_backend: Any) -> None:
        await sqlite_backend.put_entry(_entry())
        db = sqlite_backend._db
        await db.execute("UPDATE url_cache SET highlights = '{not json' WHERE url_hash = ?", ("a" * 64,))
        await db.commit()
        with pytest.raises(CacheUnavailableError):
            await sqlite_backend.get_entry("a" * 64, NOW)

    async def test_health_check(self, sqlite_backend: Any) -> None:
        assert await sqlite_backend.health_check() is True

    async def test_uninitialized_backend(self, tmp_path: Any) -> None:
        backend = LocalSQLiteCacheBackend(db_path=str(tmp_path / "never.db"))
        assert await backend.health_check() is False
        with pytest.raises(CacheUnavailableError):
            await backend.get_entry("a" * 64, NOW)
        with pytest.raises(CacheUnavailableError):
            await backend.put_entry(_entry())
