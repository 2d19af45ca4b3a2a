import time
from collections.abc import Callable
from typing import Generic, TypeVar

V = TypeVar("V")

class TTLCache(Generic[V]):
    """Process-local key/value map whose entries expire after a fixed TTL.

    Expired entries are evicted lazily on read. Each key is independent, so
    concurrent coroutines need no locking around single get/set calls.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self._ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def __len__(self) -> int:
        return len(self._entries)
