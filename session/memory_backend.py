"""
In-process session backing store for development and tests.

Entries live in a dict owned by one process, so this backend is not shared
between workers. Expired entries are dropped lazily when read.
"""

import time
from typing import Callable, Optional

from session.backend import SessionBackend, StoreResult


class MemorySessionBackend(SessionBackend):
    """
    Dict-backed implementation of SessionBackend with TTL support.

    Args:
        clock: Monotonic clock returning seconds; injectable for tests
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        # key -> (value, expires_at or None)
        self._entries: dict[str, tuple[bytes, Optional[float]]] = {}

    def __contains__(self, key: str) -> bool:
        return self._live_value(key) is not None

    def _live_value(self, key: str) -> Optional[bytes]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def get(self, key: str) -> StoreResult:
        return StoreResult.success(self._live_value(key))

    async def set(self, key: str, value: bytes) -> StoreResult:
        self._entries[key] = (value, None)
        return StoreResult.success()

    async def setex(self, key: str, ttl_seconds: int, value: bytes) -> StoreResult:
        self._entries[key] = (value, self._clock() + ttl_seconds)
        return StoreResult.success()

    async def delete(self, key: str) -> StoreResult:
        self._entries.pop(key, None)
        return StoreResult.success()

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()
