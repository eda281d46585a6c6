"""Explicitly owned TTL cache.

Callers create and inject the cache; nothing here is module-global, so tests
never share entries by accident.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

DEFAULT_TTL_SECONDS = 24 * 60 * 60


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    fingerprint: str = ""


class TTLCache:
    """Key/value cache whose entries expire after ``ttl_seconds``.

    An entry may carry a fingerprint (e.g. a hash of the API key that produced
    it); a lookup with a different fingerprint is a miss.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str, fingerprint: str = "") -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        if entry.fingerprint != fingerprint:
            return None
        return entry.value

    def set(self, key: str, value: Any, fingerprint: str = "") -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock(), fingerprint=fingerprint)

    def invalidate(self, key: str | None = None) -> None:
        """Drop one key, or everything when *key* is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
