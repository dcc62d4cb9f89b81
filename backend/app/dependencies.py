from __future__ import annotations

import random
from functools import lru_cache

from backend.app.config import AppSettings, load_settings
from backend.app.models.content import ProviderSearchResult, VideoDetail
from backend.app.repositories.database import Database
from backend.app.repositories.filter_repository import SqliteFilterConfigRepository
from backend.app.services.continuation import (
    ContinuationPaginator,
    ContinuationProvider,
    SearchProvider,
    SearchRequest,
)
from backend.app.services.download_resolver import DownloadResolver, LinkProvider
from backend.app.services.filter_admin_service import FilterAdminService
from backend.app.services.filter_store import FilterStore
from backend.app.services.provider_chain import ProviderChain, ProviderStep
from backend.app.services.providers import (
    CobaltProvider,
    DataApiProvider,
    InnerTubeProvider,
    InvidiousProvider,
    PipedProvider,
    PoTokenSource,
    YtDlpProvider,
)
from backend.app.services.query_diversifier import QueryDiversifier
from backend.app.services.result_cache import ResultCache
from backend.app.services.search_orchestrator import SearchOrchestrator
from backend.app.services.search_service import SearchService
from backend.app.services.video_service import VideoService
from backend.app.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_filter_store() -> FilterStore:
    settings = get_settings()
    database = Database(settings.db_path)
    database.initialize()
    return FilterStore(SqliteFilterConfigRepository(database))


@lru_cache(maxsize=1)
def get_innertube_provider() -> InnerTubeProvider:
    settings = get_settings()
    return InnerTubeProvider(
        base_url=settings.innertube_base_url,
        client_version=settings.innertube_client_version,
        timeout_seconds=settings.provider_http_timeout_seconds,
        suggest_url=settings.suggest_base_url,
    )


@lru_cache(maxsize=1)
def get_ytdlp_provider() -> YtDlpProvider | None:
    settings = get_settings()
    if not settings.ytdlp_enabled:
        return None
    return YtDlpProvider(socket_timeout_seconds=settings.provider_http_timeout_seconds)


def _data_api_provider(settings: AppSettings) -> DataApiProvider | None:
    if settings.youtube_data_api_key is None:
        return None
    return DataApiProvider(api_key=settings.youtube_data_api_key)


def _invidious_provider(settings: AppSettings) -> InvidiousProvider | None:
    if settings.invidious_base_url is None:
        return None
    return InvidiousProvider(
        base_url=settings.invidious_base_url,
        timeout_seconds=settings.provider_http_timeout_seconds,
    )


def build_search_chain(
    providers: list[SearchProvider],
    *,
    telemetry: TelemetryClient,
) -> ProviderChain[SearchRequest, ProviderSearchResult]:
    steps: list[ProviderStep[SearchRequest, ProviderSearchResult]] = []
    for provider in providers:

        def call(
            request: SearchRequest, provider: SearchProvider = provider
        ) -> ProviderSearchResult:
            return provider.search(request.query, request.locale)

        steps.append(ProviderStep(name=provider.name, call=call))
    return ProviderChain("search", steps, telemetry=telemetry)


@lru_cache(maxsize=1)
def get_search_service() -> SearchService:
    settings = get_settings()
    telemetry = get_telemetry()
    innertube = get_innertube_provider()

    search_providers: list[SearchProvider] = [innertube]
    data_api = _data_api_provider(settings)
    if data_api is not None:
        search_providers.append(data_api)
    invidious = _invidious_provider(settings)
    if invidious is not None:
        search_providers.append(invidious)
    ytdlp = get_ytdlp_provider()
    if ytdlp is not None:
        search_providers.append(ytdlp)

    continuation_providers: dict[str, ContinuationProvider] = {innertube.name: innertube}
    paginator = ContinuationPaginator(
        build_search_chain(search_providers, telemetry=telemetry),
        continuation_providers,
        fallback_min_results=settings.search_fallback_min_results,
    )
    orchestrator = SearchOrchestrator(
        paginator,
        QueryDiversifier(
            rng=random.Random(),
            max_variants=settings.search_max_query_variants,
        ),
        max_attempts=settings.search_max_attempts,
    )
    return SearchService(
        orchestrator=orchestrator,
        filter_store=get_filter_store(),
        cache=ResultCache(ttl_seconds=settings.search_cache_ttl_seconds),
        telemetry=telemetry,
        default_limit=settings.search_default_limit,
        max_limit=settings.search_max_limit,
        preload_enabled=settings.search_preload_enabled,
    )


@lru_cache(maxsize=1)
def get_video_service() -> VideoService:
    settings = get_settings()
    innertube = get_innertube_provider()

    steps: list[ProviderStep[str, VideoDetail]] = [
        ProviderStep(name=innertube.name, call=innertube.get_video)
    ]
    data_api = _data_api_provider(settings)
    if data_api is not None:
        steps.append(ProviderStep(name=data_api.name, call=data_api.get_video))
    invidious = _invidious_provider(settings)
    if invidious is not None:
        steps.append(ProviderStep(name=invidious.name, call=invidious.get_video))
    ytdlp = get_ytdlp_provider()
    if ytdlp is not None:
        steps.append(ProviderStep(name=ytdlp.name, call=ytdlp.get_video))

    return VideoService(
        detail_chain=ProviderChain("video_detail", steps, telemetry=get_telemetry()),
        filter_store=get_filter_store(),
        telemetry=get_telemetry(),
        suggestion_provider=innertube,
    )


@lru_cache(maxsize=1)
def get_download_resolver() -> DownloadResolver:
    settings = get_settings()
    fallback_providers: list[LinkProvider] = []
    if settings.cobalt_api_url is not None:
        fallback_providers.append(
            CobaltProvider(
                base_url=settings.cobalt_api_url,
                timeout_seconds=settings.provider_http_timeout_seconds,
                api_key=settings.cobalt_api_key,
            )
        )
    if settings.piped_api_url is not None:
        fallback_providers.append(
            PipedProvider(
                base_url=settings.piped_api_url,
                timeout_seconds=settings.provider_http_timeout_seconds,
            )
        )
    po_token_source = (
        PoTokenSource(
            url=settings.po_token_url,
            timeout_seconds=settings.provider_http_timeout_seconds,
        )
        if settings.po_token_url is not None
        else None
    )
    return DownloadResolver(
        media_provider=get_ytdlp_provider(),
        fallback_providers=fallback_providers,
        po_token_source=po_token_source,
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_filter_admin_service() -> FilterAdminService:
    return FilterAdminService(store=get_filter_store(), telemetry=get_telemetry())


def reset_cached_dependencies() -> None:
    get_filter_admin_service.cache_clear()
    get_download_resolver.cache_clear()
    get_video_service.cache_clear()
    get_search_service.cache_clear()
    get_ytdlp_provider.cache_clear()
    get_innertube_provider.cache_clear()
    get_filter_store.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
