from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from backend.app.models.content import SearchLocale, VideoDetail
from backend.app.services.errors import FilterRejection, ValidationError
from backend.app.services.filter_engine import FilterEngine
from backend.app.services.filter_store import FilterStore
from backend.app.services.provider_chain import ProviderChain, summarize_exception_message
from backend.app.telemetry import VIDEO_DETAIL_BLOCKED, TelemetryClient

LOGGER = logging.getLogger("tube_guard.videos")

MIN_VIDEO_ID_LENGTH = 5
MAX_SUGGESTIONS = 10


class SuggestionProvider(Protocol):
    def suggestions(self, query: str, locale: SearchLocale) -> list[str]:
        ...


@dataclass(frozen=True)
class VideoDetailResult:
    video: VideoDetail
    filter_reason: str
    provider: str

    def to_payload(self) -> dict[str, Any]:
        return {**self.video.to_payload(), "filterReason": self.filter_reason}


class VideoService:
    """Video detail behind the filter gate, plus search suggestions."""

    def __init__(
        self,
        *,
        detail_chain: ProviderChain[str, VideoDetail],
        filter_store: FilterStore,
        telemetry: TelemetryClient,
        suggestion_provider: SuggestionProvider | None = None,
    ) -> None:
        self._detail_chain = detail_chain
        self._filter_store = filter_store
        self._telemetry = telemetry
        self._suggestion_provider = suggestion_provider

    def get_video(self, video_id: str | None, *, restricted: bool = False) -> VideoDetailResult:
        normalized_id = (video_id or "").strip()
        if not normalized_id:
            raise ValidationError(
                "video id is required", field="id", message_key="video_id_required"
            )
        if len(normalized_id) < MIN_VIDEO_ID_LENGTH:
            raise ValidationError(
                "video id is too short", field="id", message_key="invalid_video_id"
            )

        outcome = self._detail_chain.run(normalized_id)
        video = outcome.value
        decision = FilterEngine(self._filter_store.load()).decide_video(
            video, restricted=restricted
        )
        if not decision.allowed:
            LOGGER.info(
                "video detail blocked video_id=%s reason=%s", normalized_id, decision.reason
            )
            self._telemetry.emit(VIDEO_DETAIL_BLOCKED, reason=decision.reason)
            raise FilterRejection(decision.reason)

        return VideoDetailResult(
            video=video,
            filter_reason=decision.reason,
            provider=outcome.provider,
        )

    def suggestions(self, query: str | None, *, language: str | None = None) -> list[str]:
        normalized_query = (query or "").strip()
        if not normalized_query or self._suggestion_provider is None:
            return []
        try:
            raw_suggestions = self._suggestion_provider.suggestions(
                normalized_query, SearchLocale(language=language)
            )
        except Exception as exc:
            LOGGER.warning(
                "video suggestions_failed error=%s", summarize_exception_message(exc)
            )
            return []

        suggestions: list[str] = []
        for suggestion in raw_suggestions:
            cleaned = suggestion.strip()
            if cleaned and cleaned not in suggestions:
                suggestions.append(cleaned)
        return suggestions[:MAX_SUGGESTIONS]
