from __future__ import annotations

from dataclasses import dataclass


class TubeGuardError(Exception):
    """Root of the service error taxonomy. `message_key` selects the localized message."""

    message_key = "generic_error"

    def __init__(self, message: str = "", *, message_key: str | None = None) -> None:
        super().__init__(message)
        if message_key is not None:
            self.message_key = message_key


class ConfigError(TubeGuardError):
    message_key = "pin_invalid"


class PinRequiredError(ConfigError):
    """Missing or incorrect PIN on a protected mutation."""


class PinAlreadySetError(ConfigError):
    message_key = "pin_exists"


class ValidationError(TubeGuardError):
    message_key = "missing_fields"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        message_key: str | None = None,
    ) -> None:
        super().__init__(message, message_key=message_key)
        self.field = field


class ContinuationTokenError(ValidationError):
    message_key = "invalid_token"


class ProviderError(TubeGuardError):
    """A single adapter's failure. Never crosses the provider chain boundary."""


class NotFoundError(ProviderError):
    """Content is genuinely absent upstream."""

    message_key = "video_not_found"


@dataclass(frozen=True)
class ProviderFailure:
    provider: str
    message: str
    not_found: bool = False


class AggregateProviderError(TubeGuardError):
    """Every provider of a chain failed or returned nothing usable."""

    def __init__(self, chain: str, failures: list[ProviderFailure]) -> None:
        summary = "; ".join(f"{failure.provider}: {failure.message}" for failure in failures)
        super().__init__(f"all providers failed chain={chain} {summary}".strip())
        self.chain = chain
        self.failures = tuple(failures)

    @property
    def all_not_found(self) -> bool:
        return bool(self.failures) and all(failure.not_found for failure in self.failures)

    def failure_messages(self) -> list[str]:
        return [failure.message for failure in self.failures]


class FilterRejection(TubeGuardError):
    """A deliberate policy decision, not a failure."""

    message_key = "content_blocked"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
