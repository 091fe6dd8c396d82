"""ResultCache — fingerprint-keyed verdict cache for URL submissions.

Provides:
  - ``fingerprint()``:   SHA-256 hex of ``content.strip().lower()``.
  - ``is_valid_url()``:  structural URL check that gates cache use.
  - ``extract_domain()``: lower-cased host of a URL, ``"unknown"`` when unparsable.
  - ``ResultCache``:     ``lookup`` / ``store`` / ``stats`` / ``prune`` over a CacheBackend.
  - ``run_cache_pruner()``: background task calling ``prune()`` every interval.

Fallback policy: any backend failure is logged and converted to a miss
(``lookup`` → None), a no-op (``store``), or None (``stats``). Nothing in this
module raises to the request path.

Privacy: only the fingerprint and the host are ever written or logged. The raw
URL never leaves the request.
"""

from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from phishscan.cache.models import CacheEntry, utc_now
from phishscan.cache.protocol import CacheBackend, NullCacheBackend
from phishscan.constants import CACHE_EXPIRY_DAYS, CACHE_PRUNE_INTERVAL_S, CACHE_STATS_LIMIT
from phishscan.errors import CacheUnavailableError
from phishscan.models.analysis import AnalysisResult
from phishscan.utils.logger import get_logger

logger = get_logger(__name__)

#: Schemes accepted by is_valid_url(). Anything else is analysed but never cached.
URL_SCHEMES: frozenset[str] = frozenset({"http", "https"})


# ─── Pure helpers ─────────────────────────────────────────────────────────────


def fingerprint(content: str) -> str:
    """One-way cache key: SHA-256 hex digest of the trimmed, lower-cased content."""
    return hashlib.sha256(content.strip().lower().encode("utf-8")).hexdigest()


def is_valid_url(content: Any) -> bool:
    """True if ``content`` is a single absolute http(s) URL with a host.

    Leading and trailing whitespace is ignored; whitespace inside disqualifies
    (an email body that merely contains a URL is not a URL).
    """
    if not isinstance(content, str):
        return False
    candidate = content.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return False
    try:
        parsed = urlparse(candidate)
        hostname = parsed.hostname
        _ = parsed.port  # raises ValueError on a malformed port
    except ValueError:
        return False
    return parsed.scheme.lower() in URL_SCHEMES and bool(hostname)


def extract_domain(url: str) -> str:
    """Lower-cased host of ``url``; ``"unknown"`` when it has none."""
    try:
        hostname = urlparse(url.strip().lower()).hostname
    except ValueError:
        return "unknown"
    return hostname or "unknown"


# ─── ResultCache ──────────────────────────────────────────────────────────────


class ResultCache:
    """Best-effort verdict cache.

    Args:
        backend:        CacheBackend (NullCacheBackend disables caching).
        retention_days: Entry lifetime from write time.
        clock:          Returns the current UTC datetime (tests inject a fake).
    """

    def __init__(
        self,
        backend: CacheBackend,
        retention_days: int = CACHE_EXPIRY_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.backend = backend
        self.retention = timedelta(days=retention_days)
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return not isinstance(self.backend, NullCacheBackend)

    async def lookup(self, content: str) -> Optional[AnalysisResult]:
        """Return the cached result for ``content`` or None.

        On a hit the entry's hit counter is incremented; a failure to do so is
        logged and the hit is still returned.
        """
        key = fingerprint(content)
        try:
            entry = await self.backend.get_entry(key, self._clock())
        except CacheUnavailableError as exc:
            logger.warning("cache_lookup_failed", url_hash=key[:12], error=str(exc))
            return None
        except Exception as exc:
            logger.error(
                "cache_lookup_error",
                url_hash=key[:12],
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        if entry is None:
            logger.debug("cache_miss", url_hash=key[:12])
            return None

        try:
            await self.backend.increment_hit_count(key)
        except Exception as exc:
            logger.warning(
                "cache_hit_count_failed",
                url_hash=key[:12],
                error=str(exc),
                error_type=type(exc).__name__,
            )

        logger.info("cache_hit", url_hash=key[:12], domain=entry.domain)
        return entry.result

    async def store(self, content: str, result: AnalysisResult) -> None:
        """Write ``result`` under ``content``'s fingerprint. Never raises."""
        now = self._clock()
        entry = CacheEntry(
            fingerprint=fingerprint(content),
            domain=extract_domain(content),
            result=result,
            created_at=now,
            expires_at=now + self.retention,
        )
        try:
            await self.backend.put_entry(entry)
        except Exception as exc:
            logger.warning(
                "cache_store_failed",
                url_hash=entry.fingerprint[:12],
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return
        logger.debug("cache_stored", url_hash=entry.fingerprint[:12], domain=entry.domain)

    async def stats(self, limit: int = CACHE_STATS_LIMIT) -> Optional[list[dict[str, Any]]]:
        """Most-hit unexpired entries as ``{domain, score, hit_count, created_at}``.

        Returns None when caching is disabled or the backend fails.
        """
        if not self.enabled:
            return None
        try:
            entries = await self.backend.top_entries(self._clock(), limit)
        except Exception as exc:
            logger.warning(
                "cache_stats_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None
        return [entry.stats_dict() for entry in entries]

    async def prune(self) -> int:
        """Delete expired entries. Returns the count removed (0 on failure)."""
        try:
            return await self.backend.prune_expired(self._clock())
        except Exception as exc:
            logger.warning(
                "cache_prune_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return 0


# ─── Background pruning ───────────────────────────────────────────────────────


async def run_cache_pruner(
    result_cache: ResultCache,
    interval_s: float = CACHE_PRUNE_INTERVAL_S,
) -> None:
    """Background asyncio task: ``result_cache.prune()`` every ``interval_s``.

    Registered with asyncio.create_task() during lifespan startup and cancelled
    on shutdown. ``prune()`` already converts backend failures to 0, so the
    only exception that leaves this loop is CancelledError.
    """
    logger.info("cache_pruner_scheduled", interval_s=interval_s)
    while True:
        try:
            await asyncio.sleep(interval_s)
            count = await result_cache.prune()
            logger.info("cache_prune_run", deleted_count=count)
        except asyncio.CancelledError:
            logger.info("cache_pruner_cancelled")
            raise
