from __future__ import annotations

import argparse
import json
from collections.abc import Sequence
from pathlib import Path

from backend.app.main import app


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Write the Tube Guard OpenAPI schema to disk.")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("openapi") / "tube-guard.json",
        help="Destination file for the schema.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> Path:
    schema_path: Path = _parse_args(argv).output
    schema_path.parent.mkdir(parents=True, exist_ok=True)
    schema = app.openapi()
    schema_path.write_text(json.dumps(schema, indent=2, ensure_ascii=False), encoding="utf-8")
    print(f"Wrote {len(schema.get('paths', {}))} API paths to {schema_path}")
    return schema_path


if __name__ == "__main__":
    main()
