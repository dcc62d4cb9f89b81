from __future__ import annotations

import hashlib
import logging
import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass, replace
from threading import RLock
from typing import Any, cast

from backend.app.models.filter_policy import (
    CONTENT_TYPES,
    CategoryDefinition,
    ContentType,
    FilterConfig,
    WhitelistItem,
)
from backend.app.repositories.filter_repository import FilterConfigRepository, utc_now_iso
from backend.app.services.categories import CATEGORIES, CATEGORY_IDS
from backend.app.services.errors import PinRequiredError, ValidationError

LOGGER = logging.getLogger("tube_guard.filter")

PIN_PATTERN = re.compile(r"^\d{4,12}$")
PIN_HASH_ALGORITHM = "pbkdf2_sha256"
DEFAULT_PIN_HASH_ITERATIONS = 200_000


@dataclass(frozen=True)
class FilterPatch:
    enabled: bool | None = None
    default_deny: bool | None = None
    allowed_categories: frozenset[str] | None = None


@dataclass(frozen=True)
class FilterStats:
    enabled: bool
    default_deny: bool
    total_categories: int
    allowed_categories: int
    whitelisted_items: int
    blocked_keywords: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "defaultDeny": self.default_deny,
            "totalCategories": self.total_categories,
            "allowedCategories": self.allowed_categories,
            "whitelistedItems": self.whitelisted_items,
            "blockedKeywords": self.blocked_keywords,
        }


def default_filter_config() -> FilterConfig:
    return FilterConfig(
        enabled=True,
        default_deny=False,
        allowed_categories=frozenset(CATEGORY_IDS),
    )


def hash_pin(pin: str, *, iterations: int = DEFAULT_PIN_HASH_ITERATIONS) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", pin.encode("utf-8"), salt, iterations)
    return f"{PIN_HASH_ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def pin_matches(candidate: str, stored_hash: str) -> bool:
    try:
        algorithm, raw_iterations, salt_hex, digest_hex = stored_hash.split("$")
        iterations = int(raw_iterations)
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        LOGGER.warning("filter pin_hash unreadable; rejecting candidate")
        return False
    if algorithm != PIN_HASH_ALGORITHM:
        return False
    candidate_digest = hashlib.pbkdf2_hmac("sha256", candidate.encode("utf-8"), salt, iterations)
    return secrets.compare_digest(candidate_digest.hex(), digest_hex)


def validate_pin_format(pin: str | None) -> str:
    if pin is None or PIN_PATTERN.match(pin.strip()) is None:
        raise ValidationError("PIN must be 4-12 digits", field="pin", message_key="pin_format")
    return pin.strip()


class FilterStore:
    """
    The single global filter policy, persisted through a repository port.

    While a PIN is set, every mutation verifies the supplied PIN first and
    leaves state untouched on failure.
    """

    def __init__(
        self,
        repository: FilterConfigRepository,
        *,
        pin_hash_iterations: int = DEFAULT_PIN_HASH_ITERATIONS,
        now_iso: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._repository = repository
        self._pin_hash_iterations = pin_hash_iterations
        self._now_iso = now_iso
        self._lock = RLock()

    def load(self) -> FilterConfig:
        document = self._repository.load_document()
        defaults = default_filter_config()
        if document is None:
            return defaults
        return FilterConfig.from_document(document, defaults=defaults)

    def client_view(self) -> tuple[FilterConfig, bool]:
        config = self.load()
        return config.without_pin(), config.has_pin

    def has_pin(self) -> bool:
        return self.load().has_pin

    def verify_pin(self, candidate: str | None) -> bool:
        config = self.load()
        if config.pin_hash is None:
            return True
        if not candidate:
            return False
        return pin_matches(candidate.strip(), config.pin_hash)

    def save(self, patch: FilterPatch, pin: str | None = None) -> FilterConfig:
        if patch.allowed_categories is not None:
            _require_known_categories(patch.allowed_categories)

        def apply(config: FilterConfig) -> FilterConfig:
            return replace(
                config,
                enabled=config.enabled if patch.enabled is None else patch.enabled,
                default_deny=(
                    config.default_deny if patch.default_deny is None else patch.default_deny
                ),
                allowed_categories=(
                    config.allowed_categories
                    if patch.allowed_categories is None
                    else patch.allowed_categories
                ),
            )

        return self._mutate(pin, apply)

    def set_enabled(self, enabled: bool, pin: str | None = None) -> FilterConfig:
        return self.save(FilterPatch(enabled=enabled), pin)

    def set_default_deny(self, default_deny: bool, pin: str | None = None) -> FilterConfig:
        return self.save(FilterPatch(default_deny=default_deny), pin)

    def set_pin(self, new_pin: str | None, pin: str | None = None) -> FilterConfig:
        """Set or replace the PIN. A missing or malformed PIN never clears protection."""
        pin_hash = hash_pin(validate_pin_format(new_pin), iterations=self._pin_hash_iterations)
        return self._mutate(pin, lambda config: replace(config, pin_hash=pin_hash))

    def remove_pin(self, pin: str | None = None) -> FilterConfig:
        return self._mutate(pin, lambda config: replace(config, pin_hash=None))

    def categories(self) -> list[CategoryDefinition]:
        allowed = self.load().allowed_categories
        return [
            CategoryDefinition(
                id=category.id,
                label=category.label,
                enabled=category.id in allowed,
            )
            for category in CATEGORIES
        ]

    def set_category(
        self,
        category_id: str,
        enabled: bool,
        pin: str | None = None,
    ) -> FilterConfig:
        _require_known_categories(frozenset({category_id}))

        def apply(config: FilterConfig) -> FilterConfig:
            if enabled:
                allowed = config.allowed_categories | {category_id}
            else:
                allowed = config.allowed_categories - {category_id}
            return replace(config, allowed_categories=frozenset(allowed))

        return self._mutate(pin, apply)

    def add_whitelist_item(
        self,
        *,
        youtube_id: str,
        content_type: str,
        title: str,
        reason: str = "",
        pin: str | None = None,
    ) -> WhitelistItem:
        normalized_id = youtube_id.strip()
        normalized_title = title.strip()
        if not normalized_id:
            raise ValidationError("youtube_id is required", field="youtubeId")
        if not normalized_title:
            raise ValidationError("title is required", field="title")
        if content_type not in CONTENT_TYPES:
            raise ValidationError(f"unsupported content type: {content_type}", field="type")

        item = WhitelistItem(
            youtube_id=normalized_id,
            type=cast(ContentType, content_type),
            title=normalized_title,
            reason=reason.strip(),
            added_at=self._now_iso(),
        )

        def apply(config: FilterConfig) -> FilterConfig:
            kept = tuple(existing for existing in config.whitelist if existing.key != item.key)
            return replace(config, whitelist=(*kept, item))

        self._mutate(pin, apply)
        return item

    def remove_whitelist_item(
        self,
        youtube_id: str,
        content_type: str,
        pin: str | None = None,
    ) -> FilterConfig:
        key = (youtube_id.strip(), content_type)
        return self._mutate(
            pin,
            lambda config: replace(
                config,
                whitelist=tuple(item for item in config.whitelist if item.key != key),
            ),
        )

    def add_blocked_keyword(self, keyword: str, pin: str | None = None) -> FilterConfig:
        normalized = keyword.strip()
        if not normalized:
            raise ValidationError("keyword is required", field="keyword")

        def apply(config: FilterConfig) -> FilterConfig:
            folded = normalized.casefold()
            if any(existing.casefold() == folded for existing in config.blocked_keywords):
                return config
            return replace(config, blocked_keywords=(*config.blocked_keywords, normalized))

        return self._mutate(pin, apply)

    def remove_blocked_keyword(self, keyword: str, pin: str | None = None) -> FilterConfig:
        folded = keyword.strip().casefold()
        return self._mutate(
            pin,
            lambda config: replace(
                config,
                blocked_keywords=tuple(
                    existing
                    for existing in config.blocked_keywords
                    if existing.casefold() != folded
                ),
            ),
        )

    def stats(self) -> FilterStats:
        config = self.load()
        return FilterStats(
            enabled=config.enabled,
            default_deny=config.default_deny,
            total_categories=len(CATEGORIES),
            allowed_categories=len(config.allowed_categories & frozenset(CATEGORY_IDS)),
            whitelisted_items=len(config.whitelist),
            blocked_keywords=len(config.blocked_keywords),
        )

    def _mutate(
        self,
        pin: str | None,
        apply: Callable[[FilterConfig], FilterConfig],
    ) -> FilterConfig:
        with self._lock:
            current = self.load()
            if current.pin_hash is not None and not (
                pin and pin_matches(pin.strip(), current.pin_hash)
            ):
                raise PinRequiredError("PIN missing or incorrect")
            updated = apply(current)
            if updated != current:
                self._repository.save_document(updated.to_document())
            return updated


def _require_known_categories(category_ids: frozenset[str]) -> None:
    unknown = sorted(category_id for category_id in category_ids if category_id not in CATEGORY_IDS)
    if unknown:
        raise ValidationError(
            f"unknown categories: {', '.join(unknown)}",
            field="category",
            message_key="unknown_category",
        )
