"""In-memory key → value store with per-entry expiry.

Used for the ERP gateway's short-lived lookups (stock, currency,
organization, store), the catalog endpoints and the webhook reconciler's
suppression markers.  The clock is injected so tests can move time
forward without sleeping.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_MISSING = object()


class TTLCache:
    """Single-process expiring cache.

    Each entry maps ``key → (value, expires_at)``.  Expired entries are
    dropped when read, and writes sweep the whole store at most once per
    *sweep_interval* seconds so keys that are never read again do not
    accumulate.
    """

    def __init__(self, clock: Clock = time.monotonic, sweep_interval: float = 60.0) -> None:
        self._clock = clock
        self._store: dict[str, tuple[Any, float]] = {}
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self.purge_expired()
        self._store[key] = (value, now + ttl_seconds)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return default
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._store.pop(key, None)
            return default
        return value

    def contains(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def mark(self, key: str, ttl_seconds: float) -> None:
        """Record a presence-only marker."""
        self.set(key, True, ttl_seconds)
        logger.debug("Marker %s set for %ss", key, ttl_seconds)

    def discard(self, key: str) -> None:
        self._store.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        self._next_sweep = now + self._sweep_interval
        expired = [key for key, (_, expires_at) in self._store.items() if now >= expires_at]
        for key in expired:
            self._store.pop(key, None)
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)
