from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any

from backend.app.services.continuation import normalize_query
from backend.app.services.search_orchestrator import FilteredVideo

DEFAULT_TTL_SECONDS = 300


@dataclass(frozen=True)
class CacheKey:
    query: str
    location: str
    language: str
    restricted: bool
    page: int

    @classmethod
    def build(
        cls,
        *,
        query: str,
        location: str | None,
        language: str | None,
        restricted: bool,
        page: int,
    ) -> CacheKey:
        return cls(
            query=normalize_query(query),
            location=(location or "").strip().casefold(),
            language=(language or "").strip().casefold(),
            restricted=restricted,
            page=page,
        )

    def next_page(self) -> CacheKey:
        return CacheKey(
            query=self.query,
            location=self.location,
            language=self.language,
            restricted=self.restricted,
            page=self.page + 1,
        )


@dataclass(frozen=True)
class CacheEntry:
    videos: tuple[FilteredVideo, ...]
    token: str | None
    has_more: bool
    total_pages_estimate: int
    timestamp: float
    debug: dict[str, Any]


class ResultCache:
    """
    Search page memo with a fixed TTL.

    Stale entries are dropped when looked up; nothing sweeps them in the
    background.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._lock = Lock()

    def now(self) -> float:
        return self._clock()

    def get(self, key: CacheKey) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.timestamp >= self._ttl_seconds:
                del self._entries[key]
                return None
            return entry

    def set(self, key: CacheKey, entry: CacheEntry) -> None:
        if self._ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
