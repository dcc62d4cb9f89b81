from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from backend.app.models.content import SearchLocale, VideoDetail
from backend.app.repositories.filter_repository import InMemoryFilterConfigRepository
from backend.app.services.errors import (
    AggregateProviderError,
    FilterRejection,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from backend.app.services.filter_store import FilterStore
from backend.app.services.provider_chain import ProviderChain, ProviderStep
from backend.app.services.video_service import VideoService
from backend.app.telemetry import VIDEO_DETAIL_BLOCKED, TelemetryClient


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


class _FakeSuggestions:
    def __init__(self, values: list[str] | None = None, *, fail: bool = False) -> None:
        self.values = values or []
        self.fail = fail
        self.locales: list[SearchLocale] = []

    def suggestions(self, query: str, locale: SearchLocale) -> list[str]:
        self.locales.append(locale)
        if self.fail:
            raise ProviderError("suggest endpoint down")
        return self.values


def _store() -> FilterStore:
    return FilterStore(InMemoryFilterConfigRepository(), pin_hash_iterations=1_000)


def _service(
    detail: VideoDetail | Exception,
    *,
    store: FilterStore | None = None,
    sink: _CaptureSink | None = None,
    suggestions: _FakeSuggestions | None = None,
    fallback: VideoDetail | None = None,
) -> VideoService:
    def primary(video_id: str) -> VideoDetail:
        if isinstance(detail, Exception):
            raise detail
        return detail

    steps: list[ProviderStep[str, VideoDetail]] = [ProviderStep(name="primary", call=primary)]
    if fallback is not None:
        steps.append(ProviderStep(name="secondary", call=lambda _video_id: fallback))
    telemetry = TelemetryClient.disabled()
    if sink is not None:
        telemetry = TelemetryClient(enabled=True, sink=sink)
    return VideoService(
        detail_chain=ProviderChain("video_detail", steps),
        filter_store=store or _store(),
        telemetry=telemetry,
        suggestion_provider=suggestions,
    )


def test_allowed_video_carries_filter_reason() -> None:
    service = _service(VideoDetail(id="abc123def45", title="Homemade soup recipe"))

    result = service.get_video("abc123def45")

    assert result.provider == "primary"
    payload = result.to_payload()
    assert payload["id"] == "abc123def45"
    assert payload["filterReason"] == "default allow"


def test_blocked_keyword_rejects_detail_and_emits_event() -> None:
    store = _store()
    store.add_blocked_keyword("casino")
    sink = _CaptureSink()
    service = _service(
        VideoDetail(id="abc123def45", title="Best CASINO tricks"), store=store, sink=sink
    )

    with pytest.raises(FilterRejection) as exc_info:
        service.get_video("abc123def45")

    assert exc_info.value.reason == "blocked keyword: casino"
    assert sink.events == [(VIDEO_DETAIL_BLOCKED, {"reason": "blocked keyword: casino"})]


def test_restricted_mode_uses_detail_keywords_for_category() -> None:
    service = _service(
        VideoDetail(id="abc123def45", title="Episode 4", keywords=("cooking", "recipe"))
    )

    result = service.get_video("abc123def45", restricted=True)

    assert result.filter_reason.startswith("category: ")


def test_restricted_mode_blocks_uncategorized_detail() -> None:
    service = _service(VideoDetail(id="abc123def45", title="Episode 4"))

    with pytest.raises(FilterRejection):
        service.get_video("abc123def45", restricted=True)


def test_whitelisted_channel_allows_detail() -> None:
    store = _store()
    store.set_default_deny(True)
    store.add_whitelist_item(
        youtube_id="UC-channel", content_type="channel", title="Trusted", reason="family"
    )
    service = _service(
        VideoDetail(id="abc123def45", title="Episode 4", channel_id="UC-channel"), store=store
    )

    assert service.get_video("abc123def45").filter_reason == "whitelisted"


def test_fallback_provider_answers_when_primary_fails() -> None:
    service = _service(
        ProviderError("primary down"),
        fallback=VideoDetail(id="abc123def45", title="Soup"),
    )

    assert service.get_video("abc123def45").provider == "secondary"


def test_not_found_everywhere_is_reported_as_such() -> None:
    service = _service(NotFoundError("video unavailable"))

    with pytest.raises(AggregateProviderError) as exc_info:
        service.get_video("abc123def45")

    assert exc_info.value.all_not_found is True


@pytest.mark.parametrize(
    ("video_id", "message_key"),
    [("", "video_id_required"), ("ab", "invalid_video_id")],
)
def test_invalid_ids_are_rejected_before_any_provider_call(
    video_id: str, message_key: str
) -> None:
    service = _service(AssertionError("provider must not be called"))

    with pytest.raises(ValidationError) as exc_info:
        service.get_video(video_id)

    assert exc_info.value.message_key == message_key


def test_suggestions_are_deduplicated_and_capped() -> None:
    provider = _FakeSuggestions(
        ["python", " python ", "python course", *[f"p{i}" for i in range(20)]]
    )
    service = _service(VideoDetail(id="abc123def45"), suggestions=provider)

    suggestions = service.suggestions("pyth", language="ar")

    assert suggestions[:2] == ["python", "python course"]
    assert len(suggestions) == 10
    assert provider.locales == [SearchLocale(language="ar")]


def test_suggestions_never_raise() -> None:
    service = _service(VideoDetail(id="abc123def45"), suggestions=_FakeSuggestions(fail=True))

    assert service.suggestions("pyth") == []
    assert service.suggestions("   ") == []
