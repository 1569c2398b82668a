"""
In-memory TTL store for license validation results.

Entries expire lazily: an expired entry is dropped the next time it is read,
there is no sweeper thread. Nothing is persisted, a restart starts empty.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from entitlement_client.config import DEFAULT_CACHE_TTL_SECONDS


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class LicenseCache:
    def __init__(
        self,
        default_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry else None

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def has(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def close(self) -> None:
        self.clear()

    def __len__(self) -> int:
        # Counts entries still held, expired or not
        with self._lock:
            return len(self._entries)

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None

        return entry
