from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from backend.app.models.content import SearchLocale, VideoSummary
from backend.app.models.filter_policy import FilterConfig
from backend.app.services.continuation import (
    ContinuationPaginator,
    ContinuationToken,
    SearchPage,
    search_scope,
)
from backend.app.services.errors import AggregateProviderError
from backend.app.services.filter_engine import FilterEngine
from backend.app.services.query_diversifier import QueryDiversifier

LOGGER = logging.getLogger("tube_guard.search")

DEFAULT_MAX_ATTEMPTS = 12


@dataclass(frozen=True)
class SearchDebug:
    attempts: int
    total_fetched: int
    total_allowed: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "totalFetched": self.total_fetched,
            "totalAllowed": self.total_allowed,
        }


@dataclass(frozen=True)
class FilteredVideo:
    video: VideoSummary
    filter_reason: str

    def to_payload(self) -> dict[str, Any]:
        return {**self.video.to_payload(), "filterReason": self.filter_reason}


@dataclass(frozen=True)
class SearchOutcome:
    videos: tuple[FilteredVideo, ...]
    next_token: str | None
    has_more: bool
    debug: SearchDebug


class _Accumulator:
    """Seen ids and allowed videos across iterations; the first sighting of an id wins."""

    def __init__(self, engine: FilterEngine, *, restricted: bool) -> None:
        self._engine = engine
        self._restricted = restricted
        self.seen: set[str] = set()
        self.allowed: list[FilteredVideo] = []

    def absorb(self, videos: Iterable[VideoSummary]) -> int:
        new_items = 0
        for video in videos:
            if video.id in self.seen:
                continue
            self.seen.add(video.id)
            new_items += 1
            decision = self._engine.decide_video(video, restricted=self._restricted)
            if decision.allowed:
                self.allowed.append(FilteredVideo(video=video, filter_reason=decision.reason))
        return new_items


class SearchOrchestrator:
    """
    Fetch-until-satisfied search loop.

    Pages are pulled until `limit` allowed videos are collected, the source
    runs dry, or `max_attempts` iterations have run. Under restricted
    default-deny, the first token-less iteration also searches category-biased
    variants of the query. Later token-less iterations search one randomly
    picked variant.
    """

    def __init__(
        self,
        paginator: ContinuationPaginator,
        diversifier: QueryDiversifier,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._paginator = paginator
        self._diversifier = diversifier
        self._max_attempts = max(1, max_attempts)

    def run(
        self,
        query: str,
        *,
        limit: int,
        restricted: bool,
        config: FilterConfig,
        locale: SearchLocale,
        token: str | None = None,
    ) -> SearchOutcome:
        scope = search_scope(query, restricted)
        current_token = ContinuationToken.decode(token) if token else None
        diversify = restricted and config.default_deny and current_token is None
        accumulator = _Accumulator(FilterEngine(config), restricted=restricted)

        attempts = 0
        has_more = True
        while len(accumulator.allowed) < limit and has_more and attempts < self._max_attempts:
            attempts += 1
            used_token = current_token is not None
            try:
                if current_token is not None:
                    page = self._paginator.fetch(
                        query, scope=scope, locale=locale, token=current_token
                    )
                elif attempts == 1 and diversify:
                    page = self._fetch_variants(
                        self._diversifier.expand(query, config.allowed_categories),
                        query=query,
                        scope=scope,
                        locale=locale,
                    )
                elif attempts == 1:
                    page = self._paginator.fetch(query, scope=scope, locale=locale)
                else:
                    page = self._paginator.fetch(
                        self._diversifier.pick(query, config.allowed_categories),
                        scope=scope,
                        locale=locale,
                    )
            except AggregateProviderError as exc:
                if attempts == 1 and not exc.all_not_found:
                    raise
                LOGGER.warning(
                    "search iteration_failed attempt=%s not_found=%s; returning partial results",
                    attempts,
                    exc.all_not_found,
                )
                has_more = False
                current_token = None
                break

            new_items = accumulator.absorb(page.videos)
            current_token = page.next_token
            has_more = page.has_more
            if new_items == 0 and not used_token:
                has_more = False

        allowed = accumulator.allowed
        LOGGER.info(
            "search run finished attempts=%s fetched=%s allowed=%s has_more=%s",
            attempts,
            len(accumulator.seen),
            len(allowed),
            has_more,
        )
        return SearchOutcome(
            videos=tuple(allowed[:limit]),
            next_token=current_token.encode() if current_token is not None else None,
            has_more=has_more or len(allowed) > limit,
            debug=SearchDebug(
                attempts=attempts,
                total_fetched=len(accumulator.seen),
                total_allowed=len(allowed),
            ),
        )

    def _fetch_variants(
        self,
        variants: list[str],
        *,
        query: str,
        scope: str,
        locale: SearchLocale,
    ) -> SearchPage:
        """Run every variant in order and merge them into one page."""
        videos: list[VideoSummary] = []
        failures: list[AggregateProviderError] = []
        next_token: ContinuationToken | None = None
        has_more = False
        provider = ""
        for variant in variants:
            try:
                page = self._paginator.fetch(variant, scope=scope, locale=locale)
            except AggregateProviderError as exc:
                failures.append(exc)
                continue
            videos.extend(page.videos)
            has_more = has_more or page.has_more
            provider = provider or page.provider
            # Only the unmodified query's cursor continues this search session.
            if variant == query:
                next_token = page.next_token

        if len(failures) == len(variants):
            raise failures[0]
        return SearchPage(
            videos=tuple(videos),
            next_token=next_token,
            has_more=has_more,
            provider=provider,
        )
