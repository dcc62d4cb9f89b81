from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from backend.app.models.content import ProviderSearchResult, SearchLocale, VideoSummary
from backend.app.services.errors import ContinuationTokenError
from backend.app.services.provider_chain import ProviderChain, summarize_exception_message

LOGGER = logging.getLogger("tube_guard.search")

DEFAULT_FALLBACK_MIN_RESULTS = 10


class SearchProvider(Protocol):
    name: str

    def search(self, query: str, locale: SearchLocale) -> ProviderSearchResult:
        ...


class ContinuationProvider(SearchProvider, Protocol):
    def continue_search(self, token: str, locale: SearchLocale) -> ProviderSearchResult:
        ...


@dataclass(frozen=True)
class SearchRequest:
    query: str
    locale: SearchLocale


def normalize_query(query: str) -> str:
    return " ".join(query.split()).casefold()


def search_scope(query: str, restricted: bool) -> str:
    """Fingerprint of the search session a continuation token belongs to."""
    material = f"{normalize_query(query)}\n{int(restricted)}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class ContinuationToken:
    """A provider's raw cursor, tagged with the provider and search session that issued it."""

    provider: str
    raw: str
    scope: str

    def encode(self) -> str:
        document = json.dumps(
            {"p": self.provider, "r": self.raw, "s": self.scope},
            separators=(",", ":"),
        )
        return base64.urlsafe_b64encode(document.encode("utf-8")).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, value: str) -> ContinuationToken:
        padded = value.strip() + "=" * (-len(value.strip()) % 4)
        try:
            document: Any = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        except (binascii.Error, UnicodeError, ValueError) as exc:
            raise ContinuationTokenError(
                "continuation token is not decodable", field="token"
            ) from exc

        if not isinstance(document, dict):
            raise ContinuationTokenError("continuation token has an invalid shape", field="token")
        provider = document.get("p")
        raw = document.get("r")
        scope = document.get("s")
        if not all(isinstance(part, str) and part for part in (provider, raw, scope)):
            raise ContinuationTokenError("continuation token is incomplete", field="token")
        return cls(provider=str(provider), raw=str(raw), scope=str(scope))


@dataclass(frozen=True)
class SearchPage:
    videos: tuple[VideoSummary, ...]
    next_token: ContinuationToken | None
    has_more: bool
    provider: str


class ContinuationPaginator:
    """
    One raw page of search results.

    With a token, the page comes from the provider that issued it; without one,
    from the search chain. Fallback providers do not paginate, so for their
    pages `has_more` is a size heuristic.
    """

    def __init__(
        self,
        search_chain: ProviderChain[SearchRequest, ProviderSearchResult],
        continuation_providers: Mapping[str, ContinuationProvider],
        *,
        fallback_min_results: int = DEFAULT_FALLBACK_MIN_RESULTS,
    ) -> None:
        self._search_chain = search_chain
        self._continuation_providers = dict(continuation_providers)
        self._fallback_min_results = max(1, fallback_min_results)

    def fetch(
        self,
        query: str,
        *,
        scope: str,
        locale: SearchLocale,
        token: ContinuationToken | None = None,
    ) -> SearchPage:
        if token is None:
            return self._fresh(query, scope=scope, locale=locale)

        if token.scope != scope:
            raise ContinuationTokenError(
                "continuation token belongs to a different search", field="token"
            )
        provider = self._continuation_providers.get(token.provider)
        if provider is None:
            raise ContinuationTokenError(
                f"continuation token issued by unknown provider {token.provider}", field="token"
            )

        try:
            result = provider.continue_search(token.raw, locale)
        except Exception as exc:
            LOGGER.warning(
                "search continuation_failed provider=%s error=%s; running a fresh search",
                token.provider,
                summarize_exception_message(exc),
                exc_info=True,
            )
            return self._fresh(query, scope=scope, locale=locale)

        next_token = (
            ContinuationToken(provider=token.provider, raw=result.continuation, scope=scope)
            if result.continuation
            else None
        )
        return SearchPage(
            videos=result.videos,
            next_token=next_token,
            has_more=next_token is not None,
            provider=token.provider,
        )

    def _fresh(self, query: str, *, scope: str, locale: SearchLocale) -> SearchPage:
        outcome = self._search_chain.run(SearchRequest(query=query, locale=locale))
        result = outcome.value
        if result.supports_continuation and outcome.provider in self._continuation_providers:
            next_token = (
                ContinuationToken(provider=outcome.provider, raw=result.continuation, scope=scope)
                if result.continuation
                else None
            )
            has_more = next_token is not None
        else:
            next_token = None
            has_more = len(result.videos) >= self._fallback_min_results
        return SearchPage(
            videos=result.videos,
            next_token=next_token,
            has_more=has_more,
            provider=outcome.provider,
        )
