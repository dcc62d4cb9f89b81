from __future__ import annotations

from pathlib import Path

import pytest

from backend.app.repositories.database import SCHEMA_VERSION, Database
from backend.app.repositories.filter_repository import (
    InMemoryFilterConfigRepository,
    SqliteFilterConfigRepository,
)
from backend.app.services.categories import CATEGORY_IDS
from backend.app.services.errors import PinRequiredError, ValidationError
from backend.app.services.filter_store import FilterPatch, FilterStore, hash_pin, pin_matches

FAST_ITERATIONS = 1_000


def _store(repository: InMemoryFilterConfigRepository | None = None) -> FilterStore:
    return FilterStore(
        repository or InMemoryFilterConfigRepository(),
        pin_hash_iterations=FAST_ITERATIONS,
        now_iso=lambda: "2026-01-01T00:00:00+00:00",
    )


def test_load_defaults_allow_every_category() -> None:
    config = _store().load()

    assert config.enabled is True
    assert config.default_deny is False
    assert config.allowed_categories == frozenset(CATEGORY_IDS)
    assert config.has_pin is False


def test_set_pin_then_verify() -> None:
    store = _store()

    store.set_pin("1234")

    assert store.has_pin() is True
    assert store.verify_pin("1234") is True
    assert store.verify_pin("4321") is False
    assert store.verify_pin(None) is False


def test_remove_pin_requires_current_pin() -> None:
    store = _store()
    store.set_pin("1234")

    with pytest.raises(PinRequiredError):
        store.remove_pin("0000")
    assert store.has_pin() is True

    store.remove_pin("1234")
    assert store.has_pin() is False


def test_protected_mutation_with_wrong_pin_leaves_state_unchanged() -> None:
    repository = InMemoryFilterConfigRepository()
    store = _store(repository)
    store.set_pin("1234")
    saves_before = repository.save_count
    before = store.load()

    with pytest.raises(PinRequiredError):
        store.set_enabled(False, "9999")
    with pytest.raises(PinRequiredError):
        store.add_blocked_keyword("prank")
    with pytest.raises(PinRequiredError):
        store.set_category("education", False, "0000")

    assert store.load() == before
    assert repository.save_count == saves_before


def test_protected_mutation_with_correct_pin_applies() -> None:
    store = _store()
    store.set_pin("1234")

    config = store.save(FilterPatch(enabled=False, default_deny=True), "1234")

    assert config.enabled is False
    assert config.default_deny is True
    assert store.load().enabled is False


def test_client_view_never_exposes_pin_hash() -> None:
    store = _store()
    store.set_pin("123456")

    config, has_pin = store.client_view()

    assert has_pin is True
    assert config.pin_hash is None
    assert "pin" not in str(config.to_client_payload())


def test_pin_is_stored_hashed() -> None:
    repository = InMemoryFilterConfigRepository()
    store = _store(repository)

    store.set_pin("2468")

    document = repository.load_document()
    assert document is not None
    assert "2468" not in str(document["pin_hash"])
    assert pin_matches("2468", str(document["pin_hash"])) is True


@pytest.mark.parametrize("pin", ["12", "abcd", "1234567890123", ""])
def test_pin_format_is_validated(pin: str) -> None:
    with pytest.raises(ValidationError):
        _store().set_pin(pin)


def test_hash_pin_uses_random_salt() -> None:
    first = hash_pin("1234", iterations=FAST_ITERATIONS)
    second = hash_pin("1234", iterations=FAST_ITERATIONS)

    assert first != second
    assert pin_matches("1234", first) and pin_matches("1234", second)


def test_unknown_category_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc_info:
        _store().set_category("gambling", True)

    assert exc_info.value.message_key == "unknown_category"


def test_set_category_toggles_membership() -> None:
    store = _store()

    store.set_category("cooking", False)
    categories = {category.id: category.enabled for category in store.categories()}

    assert categories["cooking"] is False
    assert categories["education"] is True
    assert store.stats().allowed_categories == len(CATEGORY_IDS) - 1


def test_whitelist_add_replaces_same_key_and_remove() -> None:
    store = _store()

    store.add_whitelist_item(youtube_id="vid00001", content_type="video", title="First")
    item = store.add_whitelist_item(
        youtube_id="vid00001", content_type="video", title="Renamed", reason="approved"
    )

    whitelist = store.load().whitelist
    assert whitelist == (item,)
    assert item.added_at == "2026-01-01T00:00:00+00:00"

    store.remove_whitelist_item("vid00001", "video")
    assert store.load().whitelist == ()


def test_whitelist_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        _store().add_whitelist_item(youtube_id="x1234", content_type="short", title="t")


def test_blocked_keywords_are_deduplicated_case_insensitively() -> None:
    store = _store()

    store.add_blocked_keyword("Prank")
    store.add_blocked_keyword("prank")
    store.add_blocked_keyword("  gossip ")

    assert store.load().blocked_keywords == ("Prank", "gossip")

    store.remove_blocked_keyword("PRANK")
    assert store.load().blocked_keywords == ("gossip",)


def test_sqlite_repository_round_trips_policy(tmp_path: Path) -> None:
    database = Database(tmp_path / "state.db")
    database.initialize()
    store = FilterStore(
        SqliteFilterConfigRepository(database), pin_hash_iterations=FAST_ITERATIONS
    )

    store.set_default_deny(True)
    store.add_blocked_keyword("أغاني")
    store.set_pin("1357")

    reloaded = FilterStore(SqliteFilterConfigRepository(database)).load()
    assert reloaded.default_deny is True
    assert reloaded.blocked_keywords == ("أغاني",)
    assert reloaded.has_pin is True


def test_database_initialize_is_idempotent_and_versioned(tmp_path: Path) -> None:
    database = Database(tmp_path / "nested" / "state.db")

    database.initialize()
    database.initialize()

    assert database.path.exists()
    assert database.schema_version() == SCHEMA_VERSION


def test_unreadable_sqlite_document_falls_back_to_defaults(tmp_path: Path) -> None:
    database = Database(tmp_path / "state.db")
    database.initialize()
    with database.connection() as conn:
        conn.execute(
            "INSERT INTO filter_state (id, config_json, updated_at) VALUES (1, ?, ?)",
            ("{not json", "2026-01-01T00:00:00+00:00"),
        )

    repository = SqliteFilterConfigRepository(database)

    assert repository.load_document() is None
    assert FilterStore(repository).load().default_deny is False


def test_set_pin_without_value_keeps_existing_protection() -> None:
    store = _store()
    store.set_pin("1234")

    with pytest.raises(ValidationError):
        store.set_pin(None, "1234")

    assert store.has_pin() is True
    assert store.verify_pin("1234") is True
