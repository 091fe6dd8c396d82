"""Key-value store abstraction behind MemoryCacheBackend.

Provides:
  - ``KeyValueStore``: runtime-checkable Protocol — async ``get`` / ``set`` / ``delete``
    keyed by string. Values are JSON-compatible dicts so a networked store can
    back the same interface without touching callers.
  - ``InMemoryStore``: process-local implementation (the default). Correct for
    single-process deployments only.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Protocol, runtime_checkable


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@runtime_checkable
class KeyValueStore(Protocol):
    """Async string-keyed store.

    ``ttl_ms`` on ``set`` is advisory: an implementation may evict the key once
    it elapses, but callers must still check their own expiry fields.
    """

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        ...

    async def set(self, key: str, value: dict[str, Any], ttl_ms: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryStore:
    """Dict-backed KeyValueStore with TTL eviction.

    Expired keys are dropped when read. Values are shallow-copied on the way
    in and out so callers never share a mutable dict with the store.
    """

    def __init__(self, clock: Callable[[], int] = epoch_ms) -> None:
        self._clock = clock
        self._data: dict[str, tuple[dict[str, Any], Optional[int]]] = {}

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return dict(value)

    async def set(self, key: str, value: dict[str, Any], ttl_ms: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_ms if ttl_ms is not None else None
        self._data[key] = (dict(value), expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        """Snapshot of stored keys starting with ``prefix`` (expired ones included)."""
        return [k for k in self._data if k.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)


# Import-time structural check
assert isinstance(InMemoryStore(), KeyValueStore), (
    "InMemoryStore must satisfy the KeyValueStore Protocol"
)
