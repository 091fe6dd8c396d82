"""Health utility classes and functions for PhishScan.

Provides:
  - LatencyTracker        — rolling window of the last 100 classifier latencies (avg, p99)
  - ComponentHealth       — dataclass snapshot consumed by GET /health
  - check_component_health() — probes the cache backend and classifier configuration
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from phishscan.cache.result_cache import ResultCache
    from phishscan.classifier.client import Classifier

# ─── Data Types ───────────────────────────────────────────────────────────────


@dataclass
class ComponentHealth:
    """Snapshot of dependency health.

    Attributes:
        cache:       "healthy" | "unavailable" | "disabled"
        classifier:  "configured" | "unconfigured"
        avg_llm_ms:  Rolling average of the last 100 classifier calls.
        p99_llm_ms:  p99 of the last 100 classifier calls (0.0 below 10 samples).
    """

    cache: str
    classifier: str
    avg_llm_ms: float
    p99_llm_ms: float

    @property
    def healthy(self) -> bool:
        return self.cache != "unavailable" and self.classifier == "configured"


# ─── LatencyTracker ───────────────────────────────────────────────────────────


class LatencyTracker:
    """Rolling window of latency measurements (last *window* samples).

    Used by ``/health`` to report ``avg_llm_ms`` and ``p99_llm_ms`` without
    storing unbounded history.

    Thread-safety:
        Safe for single-threaded asyncio use (all access from the event loop).

    Usage::

        tracker = LatencyTracker()
        tracker.record(812.4)
        avg = tracker.avg_ms
        p99 = tracker.p99_ms     # 0.0 until 10+ samples
    """

    def __init__(self, window: int = 100) -> None:
        self._times: deque[float] = deque(maxlen=window)

    def record(self, duration_ms: float) -> None:
        """Append a sample; the oldest is evicted once the window is full."""
        self._times.append(duration_ms)

    @property
    def avg_ms(self) -> float:
        if not self._times:
            return 0.0
        return sum(self._times) / len(self._times)

    @property
    def p99_ms(self) -> float:
        """99th percentile; 0.0 when fewer than 10 samples are available."""
        if len(self._times) < 10:
            return 0.0
        sorted_times = sorted(self._times)
        # Use floor index so we never go out-of-bounds
        idx = max(0, int(len(sorted_times) * 0.99) - 1)
        return sorted_times[idx]

    @property
    def count(self) -> int:
        return len(self._times)


# ─── Component Health Check ───────────────────────────────────────────────────


async def check_component_health(
    result_cache: "ResultCache",
    classifier: "Classifier",
    latency_tracker: Optional[LatencyTracker] = None,
) -> ComponentHealth:
    """Return a health snapshot for the cache backend and the classifier.

    The classifier is not called; "configured" only means it has credentials.
    """
    tracker = latency_tracker or LatencyTracker()

    if not result_cache.enabled:
        cache_status = "disabled"
    elif await result_cache.backend.health_check():
        cache_status = "healthy"
    else:
        cache_status = "unavailable"

    return ComponentHealth(
        cache=cache_status,
        classifier="configured" if classifier.configured else "unconfigured",
        avg_llm_ms=tracker.avg_ms,
        p99_llm_ms=tracker.p99_ms,
    )
