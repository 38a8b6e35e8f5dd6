from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import time
from typing import Any, Callable

# ==================================================
# Cache Contract
# ==================================================


@dataclass(frozen=True)
class CachedItem:
    """
    A cached statement body.

    `stored` is the epoch time in milliseconds when the item was set and `ttl`
    the remaining time to live in milliseconds.
    """

    item: Any
    stored: float
    ttl: float


class Cache(ABC):
    """
    Regulates how often a statement file is re-read from disk.
    """

    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass

    @abstractmethod
    async def get(self, key: str) -> CachedItem | None:
        pass

    @abstractmethod
    async def set(self, key: str, item: Any, ttl_override: float | None = None) -> None:
        pass

    @abstractmethod
    async def drop(self, key: str) -> None:
        pass


# ==================================================
# In-Memory Cache
# ==================================================


class InMemoryCache(Cache):
    """
    Process-local cache with per-key time-to-live. Entries expire lazily on read.
    """

    def __init__(self, expires_in_ms: float = 60000, clock: Callable[[], float] | None = None) -> None:
        if expires_in_ms <= 0:
            raise ValueError("expires_in_ms must be > 0")
        self.expires_in_ms = expires_in_ms
        self._clock = clock or (lambda: time.time() * 1000)
        self._store: dict[str, tuple[Any, float, float]] = {}
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False
        self._store.clear()

    async def get(self, key: str) -> CachedItem | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        item, stored, ttl = entry
        elapsed = self._clock() - stored
        if elapsed >= ttl:
            del self._store[key]
            return None
        return CachedItem(item=item, stored=stored, ttl=ttl - elapsed)

    async def set(self, key: str, item: Any, ttl_override: float | None = None) -> None:
        ttl = ttl_override if ttl_override and ttl_override > 0 else self.expires_in_ms
        self._store[key] = (item, self._clock(), ttl)

    async def drop(self, key: str) -> None:
        self._store.pop(key, None)

    def __len__(self) -> int:
        return len(self._store)
