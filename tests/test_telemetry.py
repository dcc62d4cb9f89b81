from __future__ import annotations

from backend.app.telemetry import (
    REDACTED,
    SEARCH_CACHE_HIT,
    SEARCH_RUN_FINISH,
    InMemoryTelemetrySink,
    TelemetryClient,
    build_telemetry_client,
    is_sensitive_key,
)


def test_telemetry_client_redacts_search_terms_pins_and_credentials() -> None:
    sink = InMemoryTelemetrySink()
    client = TelemetryClient(enabled=True, sink=sink)

    client.emit(
        SEARCH_RUN_FINISH,
        request_id="req_123",
        search_query="learn python",
        continuation_token="EgZ-abc",
        pin="1234",
        cobalt_api_key="secret",
        attempts=3,
    )

    [(event_name, attributes)] = sink.events()
    assert event_name == SEARCH_RUN_FINISH
    assert attributes["request_id"] == "req_123"
    assert attributes["attempts"] == 3
    for key in ("search_query", "continuation_token", "pin", "cobalt_api_key"):
        assert attributes[key] == REDACTED


def test_telemetry_client_compacts_values() -> None:
    sink = InMemoryTelemetrySink()
    client = TelemetryClient(enabled=True, sink=sink)

    client.emit(
        "provider.chain.exhausted",
        chain="  video\n detail ",
        providers=["innertube", "invidious"],
        reason="x" * 500,
        skipped=None,
    )

    [(_event_name, attributes)] = sink.events()
    assert attributes["chain"] == "video detail"
    assert attributes["providers"] == 2
    assert attributes["reason"] == f"{'x' * 160}..."
    assert attributes["skipped"] is None


def test_memory_sink_filters_by_event_and_drops_oldest() -> None:
    sink = InMemoryTelemetrySink(capacity=2)
    client = TelemetryClient(enabled=True, sink=sink)

    client.emit(SEARCH_RUN_FINISH, page=1)
    client.emit(SEARCH_CACHE_HIT, page=2)
    client.emit(SEARCH_RUN_FINISH, page=3)

    assert sink.events(SEARCH_RUN_FINISH) == [(SEARCH_RUN_FINISH, {"page": 3})]
    assert len(sink.events()) == 2

    sink.clear()
    assert sink.events() == []


def test_sensitive_key_matching_is_case_insensitive() -> None:
    assert is_sensitive_key(" X_Filter_PIN ")
    assert is_sensitive_key("Authorization")
    assert not is_sensitive_key("total_fetched")


def test_disabled_telemetry_client_does_not_emit() -> None:
    sink = InMemoryTelemetrySink()
    client = TelemetryClient(enabled=False, sink=sink)

    client.emit(SEARCH_RUN_FINISH, request_id="req_1")
    assert sink.events() == []


def test_build_telemetry_client_none_sink_is_disabled() -> None:
    client = build_telemetry_client(enabled=True, sink="none")
    assert client.enabled is False


def test_build_telemetry_client_log_and_memory_sinks() -> None:
    assert build_telemetry_client(enabled=True, sink="log").enabled is True
    assert build_telemetry_client(enabled=False, sink="log").enabled is False

    client = build_telemetry_client(enabled=True, sink="memory")
    assert isinstance(client.sink, InMemoryTelemetrySink)
