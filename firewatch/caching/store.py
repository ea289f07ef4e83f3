import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class TTLStore(Generic[T]):
    """In-process keyed store with lazy expiry.

    Entries are checked against the clock on read and dropped once stale;
    there is no background sweeper. ``get`` never raises: a missing or
    expired key is ``None``.
    """

    def __init__(self, name: str, default_ttl: float, clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.default_ttl = float(default_ttl)
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        seconds = self.default_ttl if ttl is None else float(ttl)
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + seconds)

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

