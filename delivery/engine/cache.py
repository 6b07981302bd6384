import time
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from delivery.models import Tariff

CacheKey = Tuple[str, str]


class CacheEntry(NamedTuple):
    tariff: Tariff
    created_at: float


def cache_key(region_code: str, city_name: str) -> CacheKey:
    return (region_code or "", (city_name or "").strip().lower())


class TariffCache:
    """
    Process-local memo of resolved tariffs. Entries are replaced, never merged,
    and expire lazily on read. Unbounded: keys are regions x known districts.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.created_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return entry

    def set(self, key: CacheKey, value: Tariff, timestamp: Optional[float] = None):
        self._entries[key] = CacheEntry(value, self.clock() if timestamp is None else timestamp)

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
