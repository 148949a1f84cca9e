"""
Opaque key-value cache with time-to-live.

The engine only needs ``get`` / ``set`` / ``invalidate``; anything with
those methods (Redis wrapper, memcached, ...) can be passed to
``build_engine``. ``InMemoryCache`` covers single-process use and tests.
Values are JSON-compatible dicts.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 24 * 60 * 60

IDENTITY_KEY = "drug:norm:{}"
PACKAGES_KEY = "ndc:lookup:{}"


def identity_key(name: str) -> str:
    return IDENTITY_KEY.format(" ".join(name.lower().split()))


def packages_key(identity_id: str) -> str:
    return PACKAGES_KEY.format(identity_id)


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl_s: int = DEFAULT_TTL_S) -> None: ...

    def invalidate(self, key: str) -> None: ...


class InMemoryCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 10_000):
        self._clock = clock
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_s: int = DEFAULT_TTL_S) -> None:
        with self._lock:
            if len(self._store) >= self._max_entries and key not in self._store:
                self._evict_expired()
                if len(self._store) >= self._max_entries:
                    # Oldest insertion goes first
                    self._store.pop(next(iter(self._store)))
            self._store[key] = (self._clock() + ttl_s, value)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def _evict_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (exp, _) in self._store.items() if now >= exp]:
            del self._store[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
