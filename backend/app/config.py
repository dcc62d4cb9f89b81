from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".tube-guard"
SUPPORTED_LOCALES: frozenset[str] = frozenset({"ar", "en"})
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("db_path", Path("state.db")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "telemetry_enabled",
    "search_preload_enabled",
    "ytdlp_enabled",
)
_BASE_URL_FIELDS: tuple[str, ...] = (
    "innertube_base_url",
    "invidious_base_url",
    "piped_api_url",
    "cobalt_api_url",
    "po_token_url",
)
# Hard ceilings on request fan-out; settings may lower them but never raise them.
_UPPER_BOUNDS: dict[str, int] = {
    "search_default_limit": 100,
    "search_max_limit": 100,
    "search_max_query_variants": 3,
}


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{TUBE_GUARD_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from a `TUBE_GUARD_*` environment variable (or `.env`).
    Optional provider URLs and keys switch the matching provider on; a provider
    without its configuration is left out of the chains.
    """

    model_config = SettingsConfigDict(
        env_prefix="TUBE_GUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for local state and logs.",
    )
    db_path: Path = Field(
        default=_default_in_data_dir(Path("state.db")),
        description=f"SQLite database path. {_data_dir_default_note(Path('state.db'))}",
    )
    default_locale: Literal["ar", "en"] = Field(
        default="ar",
        description="Locale used for user-facing error messages and unknown-field placeholders.",
    )

    # Search pipeline.
    search_default_limit: int = Field(
        default=30,
        description="Result count returned when the client does not pass `limit`.",
    )
    search_max_limit: int = Field(
        default=100,
        description="Upper bound applied to client-supplied `limit`.",
    )
    search_max_attempts: int = Field(
        default=12,
        description="Hard bound on fetch iterations per search request.",
    )
    search_fallback_min_results: int = Field(
        default=10,
        description=(
            "Fallback providers expose no pagination; a fresh page with at least this many "
            "results is reported as having more."
        ),
    )
    search_max_query_variants: int = Field(
        default=3,
        description="Maximum number of category-biased query variants added to a search.",
    )
    search_cache_ttl_seconds: int = Field(
        default=300,
        description="TTL for memoized search pages.",
    )
    search_preload_enabled: bool = Field(
        default=True,
        description="Preload page N+1 in the background after serving page N.",
    )

    # Providers.
    provider_http_timeout_seconds: float = Field(
        default=15.0,
        description="Transport timeout applied to every provider HTTP call.",
    )
    innertube_base_url: str = Field(
        default="https://www.youtube.com/youtubei/v1",
        description="Base URL of the YouTube internal web API.",
    )
    innertube_client_version: str = Field(
        default="2.20250101.00.00",
        description="WEB client version announced to the InnerTube API.",
    )
    suggest_base_url: str = Field(
        default="https://suggestqueries.google.com/complete/search",
        description="Search suggestion endpoint used by autocomplete.",
    )
    invidious_base_url: str | None = Field(
        default=None,
        description="Invidious instance base URL. Enables the Invidious search/detail provider.",
    )
    youtube_data_api_key: str | None = Field(
        default=None,
        description="YouTube Data API v3 key. Enables the Data API search/detail provider.",
    )
    ytdlp_enabled: bool = Field(
        default=True,
        description="Enable yt-dlp for search fallback, detail fallback and format extraction.",
    )
    cobalt_api_url: str | None = Field(
        default=None,
        description="Cobalt API base URL. Enables the Cobalt download fallback.",
    )
    cobalt_api_key: str | None = Field(
        default=None,
        description="Optional Cobalt API key sent as `Authorization: Api-Key ...`.",
    )
    piped_api_url: str | None = Field(
        default=None,
        description="Piped API base URL. Enables the Piped download fallback.",
    )
    po_token_url: str | None = Field(
        default=None,
        description="Proof-of-origin token provider URL, fetched best-effort before yt-dlp.",
    )

    # Logging and telemetry.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Log output directory. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level.",
    )
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable telemetry event emission.",
    )
    telemetry_sink: Literal["none", "log", "memory"] = Field(
        default="log",
        description="Telemetry sink backend.",
    )

    @field_validator("default_locale", mode="before")
    @classmethod
    def _normalize_locale(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("TUBE_GUARD_DEFAULT_LOCALE must be a string.")
        normalized = value.strip().lower()
        if normalized not in SUPPORTED_LOCALES:
            allowed = ", ".join(sorted(SUPPORTED_LOCALES))
            raise ValueError(f"TUBE_GUARD_DEFAULT_LOCALE must be one of: {allowed}.")
        return normalized

    @field_validator(
        "search_default_limit",
        "search_max_limit",
        "search_max_attempts",
        "search_fallback_min_results",
        mode="after",
    )
    @classmethod
    def _require_positive(cls, value: int, info: ValidationInfo) -> int:
        if value < 1:
            raise ValueError(f"TUBE_GUARD_{str(info.field_name).upper()} must be >= 1.")
        return value

    @field_validator("search_max_query_variants", "search_cache_ttl_seconds", mode="after")
    @classmethod
    def _require_non_negative(cls, value: int, info: ValidationInfo) -> int:
        if value < 0:
            raise ValueError(f"TUBE_GUARD_{str(info.field_name).upper()} must be >= 0.")
        return value

    @field_validator(*_UPPER_BOUNDS, mode="after")
    @classmethod
    def _require_within_ceiling(cls, value: int, info: ValidationInfo) -> int:
        ceiling = _UPPER_BOUNDS[str(info.field_name)]
        if value > ceiling:
            raise ValueError(f"TUBE_GUARD_{str(info.field_name).upper()} must be <= {ceiling}.")
        return value

    @field_validator(*_BASE_URL_FIELDS, mode="before")
    @classmethod
    def _normalize_base_urls(cls, value: Any) -> str | None:
        normalized = _normalize_optional_text(value)
        if normalized is None:
            return None
        return normalized.rstrip("/")

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator("youtube_data_api_key", "cobalt_api_key", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings() -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    return _resolve_path_fields(settings)
