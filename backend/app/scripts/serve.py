from __future__ import annotations

import argparse
from collections.abc import Callable, Sequence
from typing import Any

import uvicorn

from backend.app.config import load_settings

APP_IMPORT_PATH = "backend.app.main:app"


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Tube Guard API server.")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change.",
    )
    return parser.parse_args(argv)


def main(
    argv: Sequence[str] | None = None,
    *,
    runner: Callable[..., Any] = uvicorn.run,
) -> None:
    args = _parse_args(argv)
    settings = load_settings()
    runner(
        APP_IMPORT_PATH,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
