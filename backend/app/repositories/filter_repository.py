from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from threading import Lock
from typing import Any, Protocol, cast

from backend.app.repositories.database import Database

LOGGER = logging.getLogger("tube_guard.filter")


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


class FilterConfigRepository(Protocol):
    """Persistence port for the single global filter policy document."""

    def load_document(self) -> dict[str, Any] | None:
        ...

    def save_document(self, document: dict[str, Any]) -> None:
        ...


class SqliteFilterConfigRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def load_document(self) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute("SELECT config_json FROM filter_state WHERE id = 1").fetchone()

        if row is None:
            return None
        try:
            parsed = json.loads(str(row["config_json"]))
        except json.JSONDecodeError:
            LOGGER.warning("filter state unreadable; falling back to defaults", exc_info=True)
            return None
        if not isinstance(parsed, dict):
            return None
        return cast(dict[str, Any], parsed)

    def save_document(self, document: dict[str, Any]) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO filter_state (id, config_json, updated_at)
                VALUES (1, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    config_json = excluded.config_json,
                    updated_at = excluded.updated_at
                """,
                (json.dumps(document, ensure_ascii=False, sort_keys=True), utc_now_iso()),
            )


class InMemoryFilterConfigRepository:
    def __init__(self, document: dict[str, Any] | None = None) -> None:
        self._document = json.loads(json.dumps(document)) if document is not None else None
        self._lock = Lock()
        self.save_count = 0

    def load_document(self) -> dict[str, Any] | None:
        with self._lock:
            if self._document is None:
                return None
            return cast(dict[str, Any], json.loads(json.dumps(self._document)))

    def save_document(self, document: dict[str, Any]) -> None:
        with self._lock:
            self._document = json.loads(json.dumps(document))
            self.save_count += 1
