"""
lukudiplomi.engine.cache — Optional best-effort response cache
===============================================================

Boards and leaderboards are expensive to rebuild and are polled by
clients, so services may keep a rendered copy for a while.  The cache is
**never authoritative**: reward, streak and movement checks always read
the database, and a cache that loses every entry only costs time.

The capability is injected.  :class:`NullCache` is used when caching is
disabled; :class:`MemoryCache` is a thread-safe per-process store.

Values are stored JSON-encoded so callers never share mutable objects
with the cache.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import threading
import time
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600


class Cache(Protocol):
    """The four operations services may use."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> None: ...

    def delete(self, key: str) -> None: ...

    def invalidate_pattern(self, pattern: str) -> int: ...


class NullCache:
    """Cache that stores nothing — every lookup is a miss."""

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> None:
        return None

    def delete(self, key: str) -> None:
        return None

    def invalidate_pattern(self, pattern: str) -> int:
        return 0


class MemoryCache:
    """Thread-safe in-memory cache with per-key TTL.

    ``invalidate_pattern`` accepts glob patterns (``board:*``).
    Expired entries are dropped lazily on access and periodically.
    """

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        # key → (expires_at, json payload)
        self._entries: dict[str, tuple[float, str]] = {}
        self._last_cleanup = clock()

    def get(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            self._maybe_cleanup(now)
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, payload = entry
            if expires_at <= now:
                del self._entries[key]
                return None
        logger.debug("Cache hit: %s", key)
        return json.loads(payload)

    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> None:
        payload = json.dumps(value, default=str)
        with self._lock:
            self._entries[key] = (self._clock() + ttl, payload)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_pattern(self, pattern: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for k in doomed:
                del self._entries[k]
        if doomed:
            logger.debug("Cache invalidated %d keys for %s", len(doomed), pattern)
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _maybe_cleanup(self, now: float) -> None:
        """Periodically drop expired entries.  Caller holds the lock."""
        if now - self._last_cleanup < 300:
            return
        self._last_cleanup = now
        expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for k in expired:
            del self._entries[k]


def build_cache(enabled: bool) -> Cache:
    """Return a :class:`MemoryCache` when *enabled*, else a :class:`NullCache`."""
    return MemoryCache() if enabled else NullCache()
