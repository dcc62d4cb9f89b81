from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from backend.app.services.errors import AggregateProviderError, NotFoundError, ProviderError
from backend.app.services.provider_chain import ProviderChain, ProviderStep
from backend.app.telemetry import PROVIDER_CHAIN_EXHAUSTED, TelemetryClient


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def _failing(message: str) -> Any:
    def call(_: str) -> list[str]:
        raise ProviderError(message)

    return call


def test_first_usable_result_wins_and_later_steps_are_skipped() -> None:
    calls: list[str] = []

    def first(request: str) -> list[str]:
        calls.append("first")
        return [f"{request}-a"]

    def second(request: str) -> list[str]:
        calls.append("second")
        return [f"{request}-b"]

    chain: ProviderChain[str, list[str]] = ProviderChain(
        "search",
        [ProviderStep("first", first), ProviderStep("second", second)],
    )

    outcome = chain.run("q")

    assert outcome.value == ["q-a"]
    assert outcome.provider == "first"
    assert outcome.used_fallback is False
    assert calls == ["first"]


def test_failures_and_empty_results_fall_through() -> None:
    chain: ProviderChain[str, list[str]] = ProviderChain(
        "search",
        [
            ProviderStep("broken", _failing("boom")),
            ProviderStep("empty", lambda _: []),
            ProviderStep("none", lambda _: None),
            ProviderStep("good", lambda request: [request]),
        ],
    )

    outcome = chain.run("q")

    assert outcome.provider == "good"
    assert outcome.used_fallback is True
    assert [failure.provider for failure in outcome.failures] == ["broken", "empty", "none"]


def test_unexpected_exceptions_are_isolated() -> None:
    def explode(_: str) -> list[str]:
        raise RuntimeError("unexpected")

    chain: ProviderChain[str, list[str]] = ProviderChain(
        "detail",
        [ProviderStep("explode", explode), ProviderStep("good", lambda request: [request])],
    )

    assert chain.run("x").provider == "good"


def test_exhausted_chain_raises_aggregate_with_every_failure() -> None:
    sink = _CaptureSink()
    chain: ProviderChain[str, list[str]] = ProviderChain(
        "download",
        [ProviderStep("a", _failing("a failed")), ProviderStep("b", _failing("b failed"))],
        telemetry=TelemetryClient(enabled=True, sink=sink),
    )

    with pytest.raises(AggregateProviderError) as exc_info:
        chain.run("x")

    error = exc_info.value
    assert error.chain == "download"
    assert error.failure_messages() == ["a failed", "b failed"]
    assert error.all_not_found is False
    assert sink.events[0][0] == PROVIDER_CHAIN_EXHAUSTED
    assert sink.events[0][1]["providers"] == 2


def test_all_not_found_is_reported() -> None:
    def missing(_: str) -> list[str]:
        raise NotFoundError("Video unavailable")

    chain: ProviderChain[str, list[str]] = ProviderChain(
        "video_detail",
        [ProviderStep("a", missing), ProviderStep("b", lambda _: [])],
    )

    with pytest.raises(AggregateProviderError) as exc_info:
        chain.run("x")

    assert exc_info.value.all_not_found is True


def test_custom_usability_predicate() -> None:
    chain: ProviderChain[str, dict[str, str]] = ProviderChain(
        "download",
        [
            ProviderStep("no-url", lambda _: {"url": ""}),
            ProviderStep("url", lambda _: {"url": "https://media.example/v.mp4"}),
        ],
        is_usable=lambda value: bool(value.get("url")),
    )

    assert chain.run("x").provider == "url"
