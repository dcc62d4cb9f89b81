from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from time import perf_counter
from typing import Generic, TypeVar

from backend.app.services.errors import (
    AggregateProviderError,
    NotFoundError,
    ProviderFailure,
)
from backend.app.telemetry import PROVIDER_CHAIN_EXHAUSTED, TelemetryClient

LOGGER = logging.getLogger("tube_guard.providers")

InputT = TypeVar("InputT")
ResultT = TypeVar("ResultT")


@dataclass(frozen=True)
class ProviderStep(Generic[InputT, ResultT]):
    name: str
    call: Callable[[InputT], ResultT | None]


@dataclass(frozen=True)
class ChainOutcome(Generic[ResultT]):
    value: ResultT
    provider: str
    failures: tuple[ProviderFailure, ...] = ()

    @property
    def used_fallback(self) -> bool:
        return bool(self.failures)


def _default_is_usable(value: object) -> bool:
    return bool(value)


class ProviderChain(Generic[InputT, ResultT]):
    """
    Try each provider in order; the first usable result wins.

    Provider exceptions are logged and treated as "no result". Only when every
    provider fails does the caller see an `AggregateProviderError`.
    """

    def __init__(
        self,
        name: str,
        steps: Sequence[ProviderStep[InputT, ResultT]],
        *,
        is_usable: Callable[[ResultT], bool] = _default_is_usable,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._name = name
        self._steps = tuple(steps)
        self._is_usable = is_usable
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    @property
    def name(self) -> str:
        return self._name

    @property
    def provider_names(self) -> tuple[str, ...]:
        return tuple(step.name for step in self._steps)

    def run(self, request: InputT) -> ChainOutcome[ResultT]:
        failures: list[ProviderFailure] = []
        for step in self._steps:
            started_at = perf_counter()
            try:
                value = step.call(request)
            except NotFoundError as exc:
                LOGGER.info(
                    "provider chain step_not_found chain=%s provider=%s error=%s",
                    self._name,
                    step.name,
                    summarize_exception_message(exc),
                )
                failures.append(
                    ProviderFailure(
                        provider=step.name,
                        message=summarize_exception_message(exc),
                        not_found=True,
                    )
                )
                continue
            except Exception as exc:
                LOGGER.warning(
                    "provider chain step_failed chain=%s provider=%s duration_ms=%s error=%s",
                    self._name,
                    step.name,
                    int((perf_counter() - started_at) * 1000),
                    summarize_exception_message(exc),
                    exc_info=True,
                )
                failures.append(
                    ProviderFailure(provider=step.name, message=summarize_exception_message(exc))
                )
                continue

            if value is None or not self._is_usable(value):
                LOGGER.info(
                    "provider chain step_empty chain=%s provider=%s",
                    self._name,
                    step.name,
                )
                failures.append(
                    ProviderFailure(provider=step.name, message="no result", not_found=True)
                )
                continue

            if failures:
                LOGGER.info(
                    "provider chain fallback_used chain=%s provider=%s skipped=%s",
                    self._name,
                    step.name,
                    ",".join(failure.provider for failure in failures),
                )
            return ChainOutcome(value=value, provider=step.name, failures=tuple(failures))

        self._telemetry.emit(
            PROVIDER_CHAIN_EXHAUSTED,
            chain=self._name,
            providers=len(self._steps),
            not_found=all(failure.not_found for failure in failures),
        )
        LOGGER.warning(
            "provider chain exhausted chain=%s providers=%s",
            self._name,
            ",".join(step.name for step in self._steps) or "-",
        )
        raise AggregateProviderError(self._name, failures)


def summarize_exception_message(exc: Exception, *, max_length: int = 400) -> str:
    raw = str(exc).strip()
    if not raw:
        raw = repr(exc)
    if len(raw) <= max_length:
        return raw
    return f"{raw[: max_length - 3]}..."
