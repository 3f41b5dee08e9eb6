# weather_cache.py - Cache interface for upstream weather fetches
import threading
import time
from datetime import timedelta
from typing import Any, Callable, Dict, Tuple, Union

Seconds = Union[int, float, timedelta]


def _ttl_seconds(ttl: Seconds) -> float:
    return ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)


class WeatherCache:
    """Key/value store used by the provider client.

    ``get`` returns ``(value, True)`` on a hit and ``(None, False)`` on a miss.
    A shared store (e.g. a key-value cache service) can be plugged in for
    multi-instance deployments by implementing these two methods.
    """

    def get(self, key: str) -> Tuple[Any, bool]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: Seconds) -> None:
        raise NotImplementedError


class InMemoryTTLCache(WeatherCache):
    """Process-local expire-on-read cache. No eviction beyond TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Tuple[Any, bool]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None, False
            return value, True

    def set(self, key: str, value: Any, ttl: Seconds) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + _ttl_seconds(ttl))
