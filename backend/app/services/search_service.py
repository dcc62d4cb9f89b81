from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any

from backend.app.models.content import SearchLocale
from backend.app.services.errors import ValidationError
from backend.app.services.filter_store import FilterStore
from backend.app.services.provider_chain import summarize_exception_message
from backend.app.services.result_cache import CacheEntry, CacheKey, ResultCache
from backend.app.services.search_orchestrator import (
    FilteredVideo,
    SearchOrchestrator,
    SearchOutcome,
)
from backend.app.telemetry import (
    SEARCH_CACHE_HIT,
    SEARCH_PRELOAD_FINISH,
    SEARCH_RUN_FINISH,
    TelemetryClient,
)

LOGGER = logging.getLogger("tube_guard.search")

REGION_CODES: dict[str, str] = {
    "egypt": "EG",
    "saudi": "SA",
    "uae": "AE",
    "morocco": "MA",
    "us": "US",
    "uk": "GB",
    "france": "FR",
    "spain": "ES",
    "china": "CN",
    "japan": "JP",
    "italy": "IT",
    "germany": "DE",
    "portugal": "PT",
    "turkey": "TR",
    "iran": "IR",
    "مصر": "EG",
    "السعودية": "SA",
    "الإمارات": "AE",
    "المغرب": "MA",
    "إيران": "IR",
    "تركيا": "TR",
}

BackgroundRunner = Callable[[Callable[[], None]], None]


def start_daemon_thread(task: Callable[[], None]) -> None:
    thread = threading.Thread(target=task, name="tube-guard-search-preload")
    thread.daemon = True
    thread.start()


def resolve_region(location: str | None) -> str | None:
    """Map a location name (English or Arabic) or an ISO code to a region code."""
    if location is None:
        return None
    normalized = location.strip()
    if not normalized:
        return None
    mapped = REGION_CODES.get(normalized.casefold())
    if mapped is not None:
        return mapped
    if len(normalized) == 2 and normalized.isascii() and normalized.isalpha():
        return normalized.upper()
    return None


def _normalize_language(language: str | None) -> str | None:
    if language is None:
        return None
    normalized = language.strip().lower()
    return normalized or None


@dataclass(frozen=True)
class SearchResponse:
    videos: tuple[FilteredVideo, ...]
    continuation_token: str | None
    has_more: bool
    page: int
    query: str
    debug: dict[str, Any]
    cached: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "videos": [video.to_payload() for video in self.videos],
            "continuationToken": self.continuation_token,
            "hasMore": self.has_more,
            "page": self.page,
            "query": self.query,
            "debug": self.debug,
        }


class SearchService:
    def __init__(
        self,
        *,
        orchestrator: SearchOrchestrator,
        filter_store: FilterStore,
        cache: ResultCache,
        telemetry: TelemetryClient,
        default_limit: int = 30,
        max_limit: int = 100,
        preload_enabled: bool = True,
        background_runner: BackgroundRunner = start_daemon_thread,
    ) -> None:
        self._orchestrator = orchestrator
        self._filter_store = filter_store
        self._cache = cache
        self._telemetry = telemetry
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._preload_enabled = preload_enabled
        self._background_runner = background_runner
        self._preloads_in_flight: set[CacheKey] = set()
        self._preload_lock = Lock()

    def search(
        self,
        query: str | None,
        *,
        token: str | None = None,
        location: str | None = None,
        language: str | None = None,
        restricted: bool = False,
        limit: int | None = None,
        page: int = 1,
    ) -> SearchResponse:
        normalized_query = (query or "").strip()
        if not normalized_query:
            raise ValidationError(
                "search query is required",
                field="q",
                message_key="search_query_required",
            )
        effective_limit = min(max(1, limit or self._default_limit), self._max_limit)
        effective_page = max(1, page)
        key = CacheKey.build(
            query=normalized_query,
            location=location,
            language=language,
            restricted=restricted,
            page=effective_page,
        )

        cached = self._cache.get(key)
        if cached is not None:
            self._telemetry.emit(SEARCH_CACHE_HIT, page=effective_page, restricted=restricted)
            return SearchResponse(
                videos=cached.videos[:effective_limit],
                continuation_token=cached.token,
                has_more=cached.has_more,
                page=effective_page,
                query=normalized_query,
                debug=cached.debug,
                cached=True,
            )

        locale = SearchLocale(
            region=resolve_region(location), language=_normalize_language(language)
        )
        outcome = self._run(
            normalized_query,
            token=token,
            locale=locale,
            restricted=restricted,
            limit=effective_limit,
        )
        self._cache.set(key, self._entry_for(outcome, page=effective_page))
        self._telemetry.emit(
            SEARCH_RUN_FINISH,
            page=effective_page,
            restricted=restricted,
            attempts=outcome.debug.attempts,
            total_fetched=outcome.debug.total_fetched,
            total_allowed=outcome.debug.total_allowed,
            has_more=outcome.has_more,
        )

        if self._preload_enabled and outcome.next_token is not None:
            self._schedule_preload(
                key.next_page(),
                query=normalized_query,
                token=outcome.next_token,
                locale=locale,
                restricted=restricted,
                limit=effective_limit,
            )

        return SearchResponse(
            videos=outcome.videos,
            continuation_token=outcome.next_token,
            has_more=outcome.has_more,
            page=effective_page,
            query=normalized_query,
            debug=outcome.debug.to_payload(),
        )

    def _run(
        self,
        query: str,
        *,
        token: str | None,
        locale: SearchLocale,
        restricted: bool,
        limit: int,
    ) -> SearchOutcome:
        return self._orchestrator.run(
            query,
            limit=limit,
            restricted=restricted,
            config=self._filter_store.load(),
            locale=locale,
            token=token,
        )

    def _entry_for(self, outcome: SearchOutcome, *, page: int) -> CacheEntry:
        return CacheEntry(
            videos=outcome.videos,
            token=outcome.next_token,
            has_more=outcome.has_more,
            total_pages_estimate=page + 1 if outcome.has_more else page,
            timestamp=self._cache.now(),
            debug=outcome.debug.to_payload(),
        )

    def _schedule_preload(
        self,
        key: CacheKey,
        *,
        query: str,
        token: str,
        locale: SearchLocale,
        restricted: bool,
        limit: int,
    ) -> None:
        with self._preload_lock:
            if key in self._preloads_in_flight or self._cache.get(key) is not None:
                return
            self._preloads_in_flight.add(key)

        def preload() -> None:
            try:
                outcome = self._run(
                    query,
                    token=token,
                    locale=locale,
                    restricted=restricted,
                    limit=limit,
                )
                self._cache.set(key, self._entry_for(outcome, page=key.page))
                self._telemetry.emit(
                    SEARCH_PRELOAD_FINISH,
                    page=key.page,
                    success=True,
                    total_allowed=outcome.debug.total_allowed,
                )
            except Exception as exc:
                LOGGER.warning(
                    "search preload_failed page=%s error=%s",
                    key.page,
                    summarize_exception_message(exc),
                    exc_info=True,
                )
                self._telemetry.emit(SEARCH_PRELOAD_FINISH, page=key.page, success=False)
            finally:
                with self._preload_lock:
                    self._preloads_in_flight.discard(key)

        self._background_runner(preload)
