from __future__ import annotations

import logging
from pathlib import Path

import pytest
import structlog

from backend.app.config import load_settings
from backend.app.logging_config import (
    LOG_FILE_NAME,
    PROVIDER_LOG_FILE_NAME,
    TELEMETRY_LOG_FILE_NAME,
    configure_application_logging,
)


def test_load_settings_parses_bools_paths_and_urls(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    data_dir = tmp_path / "data"
    monkeypatch.setenv("TUBE_GUARD_DATA_DIR", str(data_dir))
    monkeypatch.setenv("TUBE_GUARD_DEFAULT_LOCALE", " EN ")
    monkeypatch.setenv("TUBE_GUARD_SEARCH_MAX_ATTEMPTS", "6")
    monkeypatch.setenv("TUBE_GUARD_SEARCH_CACHE_TTL_SECONDS", "0")
    monkeypatch.setenv("TUBE_GUARD_SEARCH_PRELOAD_ENABLED", "off")
    monkeypatch.setenv("TUBE_GUARD_YTDLP_ENABLED", "yes")
    monkeypatch.setenv("TUBE_GUARD_TELEMETRY_ENABLED", "maybe")
    monkeypatch.setenv("TUBE_GUARD_INVIDIOUS_BASE_URL", " https://inv.example/ ")
    monkeypatch.setenv("TUBE_GUARD_PIPED_API_URL", "   ")
    monkeypatch.setenv("TUBE_GUARD_YOUTUBE_DATA_API_KEY", "  key-123  ")
    monkeypatch.setenv("TUBE_GUARD_LOG_LEVEL", "DEBUG")

    settings = load_settings()

    assert settings.data_dir == data_dir.resolve()
    assert settings.db_path == (data_dir / "state.db").resolve()
    assert settings.log_dir == (data_dir / "logs").resolve()
    assert settings.default_locale == "en"
    assert settings.search_max_attempts == 6
    assert settings.search_cache_ttl_seconds == 0
    assert settings.search_preload_enabled is False
    assert settings.ytdlp_enabled is True
    # Unparseable booleans keep the field default.
    assert settings.telemetry_enabled is True
    assert settings.invidious_base_url == "https://inv.example"
    assert settings.piped_api_url is None
    assert settings.youtube_data_api_key == "key-123"
    assert settings.log_level == "DEBUG"


def test_explicit_db_path_is_not_moved_under_data_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("TUBE_GUARD_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("TUBE_GUARD_DB_PATH", str(tmp_path / "elsewhere" / "filter.db"))

    settings = load_settings()

    assert settings.db_path == (tmp_path / "elsewhere" / "filter.db").resolve()
    assert settings.log_dir == (tmp_path / "data" / "logs").resolve()


def test_load_settings_rejects_unsupported_locale(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TUBE_GUARD_DEFAULT_LOCALE", "fr")

    with pytest.raises(ValueError, match="TUBE_GUARD_DEFAULT_LOCALE"):
        load_settings()


@pytest.mark.parametrize(
    "name", ["TUBE_GUARD_SEARCH_MAX_ATTEMPTS", "TUBE_GUARD_SEARCH_DEFAULT_LIMIT"]
)
def test_load_settings_rejects_non_positive_bounds(
    name: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(name, "0")

    with pytest.raises(ValueError, match=name):
        load_settings()


def test_load_settings_reads_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                f"TUBE_GUARD_DATA_DIR={tmp_path / 'runtime'}",
                "TUBE_GUARD_COBALT_API_URL=https://cobalt.example/",
                "TUBE_GUARD_COBALT_API_KEY=cobalt-key",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TUBE_GUARD_DATA_DIR", raising=False)

    settings = load_settings()

    assert settings.data_dir == (tmp_path / "runtime").resolve()
    assert settings.cobalt_api_url == "https://cobalt.example"
    assert settings.cobalt_api_key == "cobalt-key"


def test_configure_application_logging_writes_to_log_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("TUBE_GUARD_DATA_DIR", str(tmp_path / "data"))
    settings = load_settings()

    log_file = configure_application_logging(settings)
    logging.getLogger("tube_guard.search").info("search run finished attempts=%s", 1)
    for handler in logging.getLogger("tube_guard").handlers:
        handler.flush()

    assert log_file == settings.log_dir / LOG_FILE_NAME
    assert (settings.log_dir / TELEMETRY_LOG_FILE_NAME).exists()
    assert "search run finished attempts=1" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger("yt_dlp").level == logging.WARNING


def test_provider_logs_get_their_own_file_and_sensitive_fields_are_redacted(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("TUBE_GUARD_DATA_DIR", str(tmp_path / "data"))
    settings = load_settings()

    log_file = configure_application_logging(settings)
    logging.getLogger("tube_guard.providers.invidious").warning("invidious search failed")
    structlog.get_logger("tube_guard.filter").info("pin checked", pin="4321", valid=False)
    for name in ("tube_guard", "tube_guard.providers"):
        for handler in logging.getLogger(name).handlers:
            handler.flush()

    provider_log = (settings.log_dir / PROVIDER_LOG_FILE_NAME).read_text(encoding="utf-8")
    main_log = log_file.read_text(encoding="utf-8")
    assert "invidious search failed" in provider_log
    assert "invidious search failed" in main_log
    assert "4321" not in main_log
    assert '"pin": "[redacted]"' in main_log


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("TUBE_GUARD_SEARCH_MAX_QUERY_VARIANTS", "4"),
        ("TUBE_GUARD_SEARCH_MAX_LIMIT", "500"),
        ("TUBE_GUARD_SEARCH_DEFAULT_LIMIT", "101"),
    ],
)
def test_load_settings_rejects_fan_out_above_ceiling(
    name: str, value: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=name):
        load_settings()


def test_load_settings_accepts_values_at_ceiling(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TUBE_GUARD_SEARCH_MAX_QUERY_VARIANTS", "3")
    monkeypatch.setenv("TUBE_GUARD_SEARCH_MAX_LIMIT", "100")

    settings = load_settings()

    assert settings.search_max_query_variants == 3
    assert settings.search_max_limit == 100
