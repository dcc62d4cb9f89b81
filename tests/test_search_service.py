from __future__ import annotations

import random
from collections.abc import Callable

import pytest

from backend.app.models.content import ProviderSearchResult, SearchLocale, VideoSummary
from backend.app.repositories.filter_repository import InMemoryFilterConfigRepository
from backend.app.services.continuation import (
    ContinuationPaginator,
    ContinuationProvider,
    SearchRequest,
)
from backend.app.services.errors import ValidationError
from backend.app.services.filter_store import FilterStore
from backend.app.services.provider_chain import ProviderChain, ProviderStep
from backend.app.services.query_diversifier import QueryDiversifier
from backend.app.services.result_cache import CacheEntry, CacheKey, ResultCache
from backend.app.services.search_orchestrator import SearchOrchestrator
from backend.app.services.search_service import SearchService, resolve_region
from backend.app.telemetry import TelemetryClient


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def _batch(prefix: str) -> tuple[VideoSummary, ...]:
    return tuple(
        VideoSummary(id=f"{prefix}{index:05d}", title="cooking soup") for index in range(30)
    )


class _CountingProvider:
    name = "primary"

    def __init__(self, *, with_continuation: bool = False) -> None:
        self.with_continuation = with_continuation
        self.search_calls: list[tuple[str, SearchLocale]] = []
        self.continuation_calls = 0

    def search(self, query: str, locale: SearchLocale) -> ProviderSearchResult:
        self.search_calls.append((query, locale))
        return ProviderSearchResult(
            videos=_batch("vid"),
            continuation="cursor-1" if self.with_continuation else None,
            supports_continuation=self.with_continuation,
        )

    def continue_search(self, token: str, locale: SearchLocale) -> ProviderSearchResult:
        self.continuation_calls += 1
        return ProviderSearchResult(
            videos=_batch("next"),
            supports_continuation=True,
        )


def _service(
    provider: _CountingProvider,
    *,
    clock: _FakeClock | None = None,
    preload_enabled: bool = False,
    background_runner: Callable[[Callable[[], None]], None] | None = None,
) -> tuple[SearchService, ResultCache]:
    chain: ProviderChain[SearchRequest, ProviderSearchResult] = ProviderChain(
        "search",
        [
            ProviderStep(
                provider.name, lambda request: provider.search(request.query, request.locale)
            )
        ],
    )
    continuation: dict[str, ContinuationProvider] = {provider.name: provider}
    orchestrator = SearchOrchestrator(
        ContinuationPaginator(chain, continuation),
        QueryDiversifier(rng=random.Random(1)),
    )
    cache = ResultCache(ttl_seconds=300, clock=clock or _FakeClock())
    service = SearchService(
        orchestrator=orchestrator,
        filter_store=FilterStore(InMemoryFilterConfigRepository(), pin_hash_iterations=1_000),
        cache=cache,
        telemetry=TelemetryClient.disabled(),
        default_limit=30,
        max_limit=100,
        preload_enabled=preload_enabled,
        background_runner=background_runner or (lambda task: task()),
    )
    return service, cache


def test_cache_hit_within_ttl_and_refetch_after_expiry() -> None:
    clock = _FakeClock()
    provider = _CountingProvider()
    service, _ = _service(provider, clock=clock)

    first = service.search("Soup", location="egypt", language="ar", page=1)
    assert len(provider.search_calls) == 1

    clock.now += 120
    second = service.search("  soup ", location="Egypt", language="AR", page=1)
    assert len(provider.search_calls) == 1
    assert second.cached is True
    assert [item.video.id for item in second.videos] == [item.video.id for item in first.videos]

    clock.now += 300
    third = service.search("soup", location="egypt", language="ar", page=1)
    assert len(provider.search_calls) == 2
    assert third.cached is False


def test_cache_key_separates_restricted_mode_and_page() -> None:
    provider = _CountingProvider()
    service, _ = _service(provider)

    service.search("soup", restricted=False)
    service.search("soup", restricted=True)
    service.search("soup", page=2)

    assert len(provider.search_calls) == 3


def test_region_is_resolved_for_providers() -> None:
    provider = _CountingProvider()
    service, _ = _service(provider)

    service.search("soup", location="السعودية", language="ar")

    assert provider.search_calls[0][1] == SearchLocale(region="SA", language="ar")


def test_limit_is_clamped() -> None:
    service, _ = _service(_CountingProvider())

    assert len(service.search("soup", limit=5).videos) == 5
    assert len(service.search("soup2", limit=500).videos) == 30


def test_empty_query_is_rejected() -> None:
    service, _ = _service(_CountingProvider())

    with pytest.raises(ValidationError) as exc_info:
        service.search("   ")

    assert exc_info.value.message_key == "search_query_required"


def test_next_page_is_preloaded_when_a_token_exists() -> None:
    provider = _CountingProvider(with_continuation=True)
    tasks: list[Callable[[], None]] = []
    service, cache = _service(provider, preload_enabled=True, background_runner=tasks.append)

    response = service.search("soup", limit=10, page=1)
    assert response.continuation_token is not None
    assert len(tasks) == 1

    # A second identical request is a cache hit and schedules nothing new.
    service.search("soup", limit=10, page=1)
    assert len(tasks) == 1

    tasks[0]()
    assert provider.continuation_calls == 1
    next_key = CacheKey.build(
        query="soup", location=None, language=None, restricted=False, page=2
    )
    entry = cache.get(next_key)
    assert entry is not None
    assert entry.videos[0].video.id == "next00000"

    page_two = service.search("soup", limit=10, page=2, token=response.continuation_token)
    assert page_two.cached is True
    assert provider.continuation_calls == 1


def test_result_cache_discards_stale_entries_lazily() -> None:
    clock = _FakeClock()
    cache = ResultCache(ttl_seconds=10, clock=clock)
    key = CacheKey.build(query="q", location=None, language=None, restricted=False, page=1)
    cache.set(
        key,
        CacheEntry(
            videos=(),
            token=None,
            has_more=False,
            total_pages_estimate=1,
            timestamp=clock(),
            debug={},
        ),
    )

    clock.now += 9
    assert cache.get(key) is not None
    assert len(cache) == 1

    clock.now += 1
    assert cache.get(key) is None
    assert len(cache) == 0


def test_zero_ttl_disables_caching() -> None:
    cache = ResultCache(ttl_seconds=0)
    key = CacheKey.build(query="q", location=None, language=None, restricted=False, page=1)
    cache.set(
        key,
        CacheEntry(
            videos=(), token=None, has_more=False, total_pages_estimate=1, timestamp=0.0, debug={}
        ),
    )

    assert len(cache) == 0


@pytest.mark.parametrize(
    ("location", "expected"),
    [
        ("egypt", "EG"),
        ("UK", "GB"),
        ("مصر", "EG"),
        ("de", "DE"),
        ("atlantis", None),
        (None, None),
        ("  ", None),
    ],
)
def test_resolve_region(location: str | None, expected: str | None) -> None:
    assert resolve_region(location) == expected
