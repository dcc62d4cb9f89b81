from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping, Sized
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any, Literal, Protocol

import structlog

HTTP_REQUEST_START = "http.request.start"
HTTP_REQUEST_FINISH = "http.request.finish"
HTTP_REQUEST_ERROR = "http.request.error"
SEARCH_RUN_FINISH = "search.run.finish"
SEARCH_CACHE_HIT = "search.cache.hit"
SEARCH_PRELOAD_FINISH = "search.preload.finish"
PROVIDER_CHAIN_EXHAUSTED = "provider.chain.exhausted"
DOWNLOAD_RESOLVE_FINISH = "download.resolve.finish"
FILTER_ADMIN_CHANGE = "filter.admin.change"
VIDEO_DETAIL_BLOCKED = "video.detail.blocked"

TelemetrySinkName = Literal["none", "log", "memory"]
TelemetryValue = bool | int | float | str | None

REDACTED = "[redacted]"

# Search terms, PINs and provider credentials are never written out.
_SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = (
    "api_key",
    "authorization",
    "cookie",
    "pin",
    "query",
    "secret",
    "token",
)
_MAX_STRING_LENGTH = 160
_MEMORY_SINK_CAPACITY = 500


def is_sensitive_key(key: str) -> bool:
    normalized = key.strip().lower()
    return any(fragment in normalized for fragment in _SENSITIVE_KEY_FRAGMENTS)


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        _ = (event_name, attributes)


class StructuredLogTelemetrySink:
    """Writes each event as one structured line on the telemetry logger."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger("tube_guard.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


class InMemoryTelemetrySink:
    """Keeps the most recent events in process, oldest dropped first."""

    def __init__(self, capacity: int = _MEMORY_SINK_CAPACITY) -> None:
        self._events: deque[tuple[str, dict[str, Any]]] = deque(maxlen=capacity)
        self._lock = Lock()

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        with self._lock:
            self._events.append((event_name, dict(attributes)))

    def events(self, event_name: str | None = None) -> list[tuple[str, dict[str, Any]]]:
        with self._lock:
            snapshot = list(self._events)
        if event_name is None:
            return snapshot
        return [event for event in snapshot if event[0] == event_name]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        self.sink.emit(event_name=event_name, attributes=sanitize_attributes(attributes))


def build_telemetry_client(*, enabled: bool, sink: TelemetrySinkName) -> TelemetryClient:
    if not enabled or sink == "none":
        return TelemetryClient.disabled()
    if sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())
    if sink == "memory":
        return TelemetryClient(enabled=True, sink=InMemoryTelemetrySink())

    logging.getLogger("tube_guard.telemetry").warning(
        "telemetry sink unsupported sink=%s; events disabled",
        sink,
    )
    return TelemetryClient.disabled()


def sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    sanitized: dict[str, TelemetryValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        sanitized[key] = REDACTED if is_sensitive_key(key) else _compact_value(raw_value)
    return sanitized


def _compact_value(value: Any) -> TelemetryValue:
    if isinstance(value, Enum):
        value = value.value
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        compact = " ".join(value.split())
        if len(compact) <= _MAX_STRING_LENGTH:
            return compact
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    # Result lists and id sets are reported by size.
    if isinstance(value, Sized):
        return len(value)
    return type(value).__name__
