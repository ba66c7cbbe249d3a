import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class CacheEntry:
    value: Any
    stale_at: float
    last_access: float


class TTLCache:
    """
    In-memory cache for remote service responses.

    Entries go stale after ``ttl`` seconds and are no longer served;
    entries untouched for ``gc_time`` seconds are purged. Least recently
    used entries are evicted past ``max_size``.
    """

    def __init__(
        self,
        default_ttl: float = 300,
        gc_time: float = 600,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.gc_time = gc_time
        self.max_size = max_size
        self._clock = clock
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._last_gc = clock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            now = self._clock()
            self._collect_garbage(now)

            entry = self._cache.get(key)
            if entry is None:
                return None
            if now >= entry.stale_at:
                del self._cache[key]
                return None

            entry.last_access = now
            self._cache.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        async with self._lock:
            now = self._clock()
            ttl = self.default_ttl if ttl is None else ttl
            self._cache[key] = CacheEntry(value=value, stale_at=now + ttl, last_access=now)
            self._cache.move_to_end(key)

            while len(self._cache) > self.max_size:
                self._cache.popitem(last=False)

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()

    def size(self) -> int:
        return len(self._cache)

    def _collect_garbage(self, now: float) -> None:
        if now - self._last_gc < self.gc_time:
            return
        self._last_gc = now
        for key in [k for k, e in self._cache.items() if now - e.last_access >= self.gc_time]:
            del self._cache[key]
