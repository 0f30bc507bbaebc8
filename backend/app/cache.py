from __future__ import annotations

from asyncio import Lock
import logging
import time
from typing import Any, Awaitable, Callable

from .config import SETTINGS_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


class TTLCache:
    """In-memory cache whose entries expire ``ttl_seconds`` after being stored.

    A non-positive TTL disables caching: :meth:`get_or_load` then always
    calls the loader.
    """

    def __init__(self, ttl_seconds: float = 300.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._entries: dict[Any, tuple[Any, float]] = {}

    def _live(self, key: Any) -> tuple[bool, Any]:
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return False, None
        return True, value

    async def get(self, key: Any) -> Any | None:
        async with self._lock:
            return self._live(key)[1]

    async def set(self, key: Any, value: Any) -> None:
        async with self._lock:
            if self.ttl <= 0:
                self._entries.pop(key, None)
                return
            self._entries[key] = (value, self._clock() + self.ttl)

    async def get_or_load(self, key: Any, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for ``key`` or store what ``loader`` returns.

        Loader errors propagate and nothing is cached.
        """

        async with self._lock:
            hit, value = self._live(key)
        if hit:
            return value
        value = await loader()
        await self.set(key, value)
        logger.debug("Cached %r for %.0fs", key, self.ttl)
        return value

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()


# Rating constants change rarely; every completed match reads them.
settings_cache = TTLCache(ttl_seconds=SETTINGS_CACHE_TTL_SECONDS)
