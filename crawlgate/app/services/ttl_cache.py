import time
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Key/value store whose entries expire after a fixed time-to-live.

    Expired entries are dropped lazily on read and in bulk by sweep().

    A reader that fills the cache after a slow load takes a version() token
    before reading and passes it to set(). The fill is discarded when the key
    was invalidated (or the cache cleared) after the token was taken, so a
    read that raced a write never re-caches what the write replaced.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[V, float]] = {}
        self._version = 0
        self._invalidated_at: Dict[Hashable, int] = {}
        self._cleared_at = 0

    def version(self) -> int:
        return self._version

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(
        self,
        key: Hashable,
        value: V,
        ttl_seconds: Optional[float] = None,
        read_at: Optional[int] = None,
    ) -> bool:
        """Store value; returns False when a read_at token is stale"""
        if read_at is not None:
            if max(self._invalidated_at.get(key, 0), self._cleared_at) > read_at:
                return False
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = (value, self._clock() + ttl)
        return True

    def invalidate(self, key: Hashable) -> None:
        self._version += 1
        self._invalidated_at[key] = self._version
        self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop every expired entry, returning how many were removed"""
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._version += 1
        self._cleared_at = self._version
        self._invalidated_at.clear()
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
