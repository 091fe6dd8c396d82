"""Per-client rolling-window rate limiter.

Provides:
  - ``RateLimitPolicy``:   typed quota settings, built once from Config.
  - ``RateLimitDecision``: frozen result of one ``check()``.
  - ``RateLimiter``:       ``check(client_id)`` — consume one request, report the window.

Counting is delegated to the ``limits`` library (the engine behind slowapi):
a ``FixedWindowRateLimiter`` over an async storage. The first hit from a client
opens a window of ``window_ms``; the window is anchored at that request, not
aligned to the calendar day, and denied hits never extend it. Once the clock
reaches the window end the storage expires the counter and the next hit opens
a fresh window.

Storage defaults to ``limits.aio.storage.MemoryStorage``, which increments
under a per-key lock and sweeps expired counters in the background. Any other
``limits`` async storage (e.g. ``async+redis://``) can be injected for
multi-process deployments.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.aio.storage import MemoryStorage, Storage
from limits.aio.strategies import FixedWindowRateLimiter

from phishscan.constants import (
    LOCAL_CLIENT_IDS,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_DEVELOPMENT,
    RATE_LIMIT_WINDOW_HOURS,
)
from phishscan.utils.logger import get_logger

if TYPE_CHECKING:
    from phishscan.config import Config

logger = get_logger(__name__)

_NAMESPACE = "phishscan_analyze"


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return round(time.time() * 1000)


# ─── Policy ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RateLimitPolicy:
    """Quota settings.

    ``development_limit`` is returned by ``limit_for()`` only when ALL hold:
      - ``production`` is False
      - ``allow_dev_mode`` is True
      - the client id is a loopback address (``LOCAL_CLIENT_IDS``)

    In production every client gets ``limit``, whatever the other fields say.
    """

    limit: int = RATE_LIMIT_DEFAULT
    development_limit: int = RATE_LIMIT_DEVELOPMENT
    allow_dev_mode: bool = False
    production: bool = True
    window_ms: int = RATE_LIMIT_WINDOW_HOURS * 60 * 60 * 1000

    @classmethod
    def from_config(cls, config: "Config") -> "RateLimitPolicy":
        rl = config.rate_limit
        return cls(
            limit=rl.limit,
            development_limit=rl.development_limit,
            allow_dev_mode=rl.allow_dev_mode,
            production=config.is_production,
            window_ms=rl.window_hours * 60 * 60 * 1000,
        )

    def is_development_client(self, client_id: str) -> bool:
        if self.production:
            return False
        if client_id not in LOCAL_CLIENT_IDS:
            return False
        return self.allow_dev_mode

    def limit_for(self, client_id: str) -> int:
        return self.development_limit if self.is_development_client(client_id) else self.limit

    def item_for(self, client_id: str) -> RateLimitItem:
        """``limits`` quota item for this client: ``limit_for()`` per ``window_ms``."""
        return RateLimitItemPerSecond(
            self.limit_for(client_id),
            max(1, self.window_ms // 1000),
            namespace=_NAMESPACE,
        )


# ─── Decision ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one ``RateLimiter.check()``.

    Fields:
        allowed:    True if the request may proceed.
        remaining:  Requests left in the current window (0 when denied).
        reset_at:   Window end, epoch milliseconds.
        limit:      Quota that applied to this client.
        checked_at: Clock reading at check time, epoch milliseconds.
    """

    allowed: bool
    remaining: int
    reset_at: int
    limit: int
    checked_at: int = 0

    @property
    def retry_after_s(self) -> int:
        """Whole seconds until the window resets (rounded up)."""
        return math.ceil((self.reset_at - self.checked_at) / 1000)


# ─── Limiter ──────────────────────────────────────────────────────────────────


class RateLimiter:
    """Fixed-window limiter keyed by client id.

    Usage::

        limiter = RateLimiter(RateLimitPolicy.from_config(config))
        decision = await limiter.check(client_id)
        if not decision.allowed:
            ...  # 429
    """

    def __init__(self, policy: RateLimitPolicy, storage: Optional[Storage] = None) -> None:
        self.policy = policy
        self.storage: Storage = storage if storage is not None else MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self.storage)

    async def check(self, client_id: str) -> RateLimitDecision:
        """Consume one request from ``client_id``'s quota."""
        item = self.policy.item_for(client_id)
        allowed = await self._strategy.hit(item, client_id)
        stats = await self._strategy.get_window_stats(item, client_id)
        decision = RateLimitDecision(
            allowed=allowed,
            remaining=stats.remaining if allowed else 0,
            reset_at=round(stats.reset_time * 1000),
            limit=item.amount,
            checked_at=epoch_ms(),
        )
        if not allowed:
            logger.info("rate_limit_exceeded", limit=decision.limit, reset_at=decision.reset_at)
        return decision

    async def peek(self, client_id: str) -> RateLimitDecision:
        """Current window for ``client_id`` without consuming quota.

        ``allowed`` reports whether the next ``check()`` would pass.
        """
        item = self.policy.item_for(client_id)
        stats = await self._strategy.get_window_stats(item, client_id)
        return RateLimitDecision(
            allowed=stats.remaining > 0,
            remaining=stats.remaining,
            reset_at=round(stats.reset_time * 1000),
            limit=item.amount,
            checked_at=epoch_ms(),
        )

    async def reset(self, client_id: str) -> None:
        await self._strategy.clear(self.policy.item_for(client_id), client_id)
