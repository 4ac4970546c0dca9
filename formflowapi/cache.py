"""Expiring key/value cache used in front of the identity resolver.

The resolver only depends on :class:`IdentityCache`, so the in-memory
implementation can be replaced by a shared cache without touching callers.
"""

import abc
import threading
import time
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

V = TypeVar("V")


class IdentityCache(abc.ABC, Generic[V]):
    @abc.abstractmethod
    def get(self, key: str) -> Optional[V]:
        """Return the cached value, or None when missing or expired."""

    @abc.abstractmethod
    def set(self, key: str, value: V) -> None:
        ...

    @abc.abstractmethod
    def evict(self, key: str) -> None:
        ...

    @abc.abstractmethod
    def purge_expired(self) -> int:
        """Drop expired entries and return how many were dropped."""


class InMemoryIdentityCache(IdentityCache[V]):
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, V]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: V) -> None:
        now = self._clock()
        with self._lock:
            # sweep expired entries at most once per ttl
            if now - self._last_sweep >= self.ttl_seconds:
                self._sweep(now)
            self._entries[key] = (now + self.ttl_seconds, value)

    def evict(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            return self._sweep(now)

    def _sweep(self, now: float) -> int:
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
