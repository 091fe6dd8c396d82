"""Unit tests for phishscan/ratelimit — RateLimitPolicy + RateLimiter.

The limiter's storage reads ``time.time()``; the ``frozen_time`` fixture pins
it to the fake clock so windows can be walked forward deterministically.

Verifies:
  - exhaustion: limit=10 → remaining 9..0, eleventh denied
  - rollover at reset_at (and reset_at + 1 ms) with a fresh window
  - denied checks do not extend the window
  - development quota reachable only outside production, opt-in, loopback
  - concurrent checks from one client never exceed the limit
  - expired counters are dropped from storage
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from limits.aio.storage import MemoryStorage

from phishscan.config import Config
from phishscan.ratelimit.limiter import RateLimitDecision, RateLimiter, RateLimitPolicy

DAY_MS = 24 * 60 * 60 * 1000


# ─── Exhaustion + rollover ────────────────────────────────────────────────────


class TestRateLimiterWindow:
    async def test_exhaustion(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=10))
        decisions = [await limiter.check("203.0.113.5") for _ in range(11)]

        assert [d.allowed for d in decisions[:10]] == [True] * 10
        assert [d.remaining for d in decisions[:10]] == list(range(9, -1, -1))
        assert decisions[10].allowed is False
        assert decisions[10].remaining == 0
        assert decisions[10].limit == 10

    async def test_first_check_opens_window(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=10))
        decision = await limiter.check("203.0.113.5")
        assert decision.reset_at == frozen_time() + DAY_MS
        assert decision.checked_at == frozen_time()
        assert decision.retry_after_s == DAY_MS // 1000

    async def test_window_is_anchored_at_first_request(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=10))
        first = await limiter.check("c")
        frozen_time.advance(60_000)
        second = await limiter.check("c")
        assert second.reset_at == first.reset_at
        assert second.remaining == 8

    async def test_denied_check_keeps_reset_at(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=1))
        first = await limiter.check("c")
        frozen_time.advance(1000)
        denied = await limiter.check("c")
        assert denied.allowed is False
        assert denied.reset_at == first.reset_at
        assert denied.retry_after_s == DAY_MS // 1000 - 1

    async def test_rollover_one_ms_after_reset(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=10))
        first = await limiter.check("c")
        for _ in range(9):
            await limiter.check("c")
        assert (await limiter.check("c")).allowed is False

        frozen_time.now_ms = first.reset_at + 1
        decision = await limiter.check("c")
        assert decision.allowed is True
        assert decision.remaining == 9
        assert decision.reset_at == frozen_time() + DAY_MS

    async def test_rollover_exactly_at_reset(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=1))
        first = await limiter.check("c")
        assert (await limiter.check("c")).allowed is False
        frozen_time.now_ms = first.reset_at
        assert (await limiter.check("c")).allowed is True

    async def test_still_denied_one_ms_before_reset(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=1))
        first = await limiter.check("c")
        frozen_time.now_ms = first.reset_at - 1
        assert (await limiter.check("c")).allowed is False

    async def test_clients_are_independent(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=1))
        assert (await limiter.check("a")).allowed
        assert not (await limiter.check("a")).allowed
        assert (await limiter.check("b")).allowed

    async def test_peek_does_not_consume(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=2))
        await limiter.check("c")
        for _ in range(3):
            window = await limiter.peek("c")
            assert window.allowed is True
            assert window.remaining == 1
        assert (await limiter.check("c")).allowed is True
        assert (await limiter.peek("c")).allowed is False

    async def test_reset_restores_quota(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=1))
        await limiter.check("c")
        await limiter.reset("c")
        assert (await limiter.peek("c")).remaining == 1
        assert (await limiter.check("c")).allowed

    async def test_shared_storage_shares_quota(self, frozen_time: Any) -> None:
        storage = MemoryStorage()
        first = RateLimiter(RateLimitPolicy(limit=1), storage=storage)
        second = RateLimiter(RateLimitPolicy(limit=1), storage=storage)
        assert first.storage is storage
        assert (await first.check("198.51.100.7")).allowed
        assert not (await second.check("198.51.100.7")).allowed


# ─── Storage growth ───────────────────────────────────────────────────────────


class TestRateLimiterStorage:
    async def test_expired_counters_are_dropped(self, frozen_time: Any) -> None:
        storage = MemoryStorage()
        limiter = RateLimiter(RateLimitPolicy(limit=10), storage=storage)
        for i in range(200):
            await limiter.check(f"10.0.{i // 256}.{i % 256}")
        assert len(storage.storage) == 200

        frozen_time.advance(DAY_MS)
        await limiter.check("192.0.2.1")
        # the storage sweeps expired counters from a background task
        for _ in range(100):
            if len(storage.storage) == 1:
                break
            await asyncio.sleep(0.01)
        assert len(storage.storage) == 1

    async def test_expired_counter_reads_as_empty(self, frozen_time: Any) -> None:
        storage = MemoryStorage()
        limiter = RateLimiter(RateLimitPolicy(limit=10), storage=storage)
        await limiter.check("c")
        key = RateLimitPolicy(limit=10).item_for("c").key_for("c")
        assert await storage.get(key) == 1
        frozen_time.advance(DAY_MS)
        assert await storage.get(key) == 0


# ─── Decision ─────────────────────────────────────────────────────────────────


class TestRateLimitDecision:
    def test_retry_after_rounds_up(self) -> None:
        decision = RateLimitDecision(
            allowed=False, remaining=0, reset_at=10_500, limit=10, checked_at=9_000
        )
        assert decision.retry_after_s == 2


# ─── Policy ───────────────────────────────────────────────────────────────────


class TestRateLimitPolicy:
    def test_production_ignores_dev_mode(self) -> None:
        policy = RateLimitPolicy(limit=10, development_limit=50, allow_dev_mode=True, production=True)
        assert policy.limit_for("127.0.0.1") == 10

    def test_dev_mode_requires_opt_in(self) -> None:
        policy = RateLimitPolicy(limit=10, development_limit=50, allow_dev_mode=False, production=False)
        assert policy.limit_for("127.0.0.1") == 10

    def test_dev_mode_requires_loopback_client(self) -> None:
        policy = RateLimitPolicy(limit=10, development_limit=50, allow_dev_mode=True, production=False)
        assert policy.limit_for("203.0.113.5") == 10

    @pytest.mark.parametrize("client_id", ["127.0.0.1", "::1", "localhost"])
    def test_dev_mode_applies_to_loopback(self, client_id: str) -> None:
        policy = RateLimitPolicy(limit=10, development_limit=50, allow_dev_mode=True, production=False)
        assert policy.limit_for(client_id) == 50

    def test_item_carries_limit_and_window(self) -> None:
        item = RateLimitPolicy(limit=10).item_for("203.0.113.5")
        assert item.amount == 10
        assert item.get_expiry() == DAY_MS // 1000

    def test_from_config_default_is_production(self) -> None:
        policy = RateLimitPolicy.from_config(Config.defaults())
        assert policy.production is True
        assert policy.limit == 10
        assert policy.window_ms == DAY_MS

    def test_from_config_development(self) -> None:
        config = Config.defaults()
        config.environment = "development"
        config.rate_limit.allow_dev_mode = True
        policy = RateLimitPolicy.from_config(config)
        assert policy.limit_for("127.0.0.1") == 50

    async def test_dev_limit_flows_into_decisions(self, frozen_time: Any) -> None:
        policy = RateLimitPolicy(limit=10, development_limit=50, allow_dev_mode=True, production=False)
        limiter = RateLimiter(policy)
        decision = await limiter.check("127.0.0.1")
        assert decision.limit == 50
        assert decision.remaining == 49


# ─── Concurrency ──────────────────────────────────────────────────────────────


class _SlowStorage(MemoryStorage):
    """Yields to the event loop before every increment to interleave callers."""

    async def incr(self, key: str, expiry: Any, *args: Any, **kwargs: Any) -> int:
        await asyncio.sleep(0)
        return await super().incr(key, expiry, *args, **kwargs)


class TestRateLimiterConcurrency:
    async def test_concurrent_checks_never_exceed_limit(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=10), storage=_SlowStorage())
        decisions = await asyncio.gather(*(limiter.check("c") for _ in range(25)))
        assert sum(d.allowed for d in decisions) == 10
        assert sorted(d.remaining for d in decisions if d.allowed) == list(range(10))
        assert all(d.remaining == 0 for d in decisions if not d.allowed)

    async def test_unrelated_clients_all_pass(self, frozen_time: Any) -> None:
        limiter = RateLimiter(RateLimitPolicy(limit=1))
        decisions = await asyncio.gather(*(limiter.check(f"10.0.0.{i}") for i in range(50)))
        assert all(d.allowed for d in decisions)
