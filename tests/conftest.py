from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from backend.app.dependencies import reset_cached_dependencies
from backend.app.main import create_app


@pytest.fixture(autouse=True)
def _offline_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:  # pyright: ignore[reportUnusedFunction]
    monkeypatch.setenv("TUBE_GUARD_TELEMETRY_ENABLED", "0")
    monkeypatch.setenv("TUBE_GUARD_SEARCH_PRELOAD_ENABLED", "0")
    monkeypatch.setenv("TUBE_GUARD_YTDLP_ENABLED", "0")
    monkeypatch.setenv("TUBE_GUARD_INNERTUBE_BASE_URL", "http://127.0.0.1:9")
    monkeypatch.setenv("TUBE_GUARD_PROVIDER_HTTP_TIMEOUT_SECONDS", "1")
    for name in (
        "TUBE_GUARD_INVIDIOUS_BASE_URL",
        "TUBE_GUARD_YOUTUBE_DATA_API_KEY",
        "TUBE_GUARD_COBALT_API_URL",
        "TUBE_GUARD_PIPED_API_URL",
        "TUBE_GUARD_PO_TOKEN_URL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    runtime_dir = tmp_path / "runtime-data"
    runtime_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("TUBE_GUARD_DATA_DIR", str(runtime_dir))
    reset_cached_dependencies()
    yield runtime_dir
    reset_cached_dependencies()


@pytest.fixture
def client(data_dir: Path) -> Iterator[TestClient]:
    _ = data_dir
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
