from __future__ import annotations

import threading
import time
from typing import Any, Callable, TypeVar

T = TypeVar("T")

DAY_SECONDS = 24 * 60 * 60

CACHE_TTL_SECONDS = {
    "channel": DAY_SECONDS,
    "videos": DAY_SECONDS,
    "peers": 7 * DAY_SECONDS,
}


class TTLCache:
    """In-process key/value store with a TTL chosen by artifact kind."""

    def __init__(self, ttls: dict[str, int] | None = None, clock: Callable[[], float] = time.time):
        self.ttls = dict(ttls or CACHE_TTL_SECONDS)
        self._clock = clock
        self._entries: dict[str, tuple[float, str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, kind: str) -> Any | None:
        with self._lock:
            hit = self._entries.get(key)
            if not hit:
                return None
            expires_at, stored_kind, value = hit
            if self._clock() > expires_at:
                self._entries.pop(key, None)
                return None
        if stored_kind != kind:
            return None
        return value

    def set(self, key: str, kind: str, value: Any) -> None:
        ttl = self.ttls[kind]
        with self._lock:
            self._entries[key] = (self._clock() + ttl, kind, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def cached_fetch(
    cache: TTLCache,
    kind: str,
    key: str,
    loader: Callable[[], T],
    store_if: Callable[[T], bool] = lambda value: True,
) -> T:
    hit = cache.get(key, kind)
    if hit is not None:
        return hit
    value = loader()
    if store_if(value):
        cache.set(key, kind, value)
    return value


def channel_cache_key(query: str) -> str:
    return f"channel:{(query or '').strip().lower()}"


def peers_cache_key(niche: list[str], band_min: int, band_max: int) -> str:
    return f"peers:{','.join(sorted(niche))}:{band_min}-{band_max}"


def videos_cache_key(channel_id: str) -> str:
    return f"videos:{channel_id}"
