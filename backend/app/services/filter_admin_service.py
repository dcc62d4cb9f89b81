from __future__ import annotations

import logging
from typing import Any

from backend.app.models.filter_policy import FilterConfig
from backend.app.services.categories import CATEGORY_IDS
from backend.app.services.errors import PinAlreadySetError, PinRequiredError, ValidationError
from backend.app.services.filter_store import FilterPatch, FilterStore
from backend.app.telemetry import FILTER_ADMIN_CHANGE, TelemetryClient

LOGGER = logging.getLogger("tube_guard.filter")

PIN_ACTIONS: frozenset[str] = frozenset({"verify", "setup", "update", "remove"})


class FilterAdminService:
    """Admin operations over the filter policy, shaped for the HTTP layer."""

    def __init__(self, *, store: FilterStore, telemetry: TelemetryClient) -> None:
        self._store = store
        self._telemetry = telemetry

    def overview(self) -> dict[str, Any]:
        config, has_pin = self._store.client_view()
        return {
            "config": _config_payload(config),
            "stats": self._store.stats().to_payload(),
            "hasPin": has_pin,
        }

    def patch(
        self,
        *,
        enabled: bool | None,
        default_deny: bool | None,
        pin: str | None,
    ) -> dict[str, Any]:
        config = self._store.save(FilterPatch(enabled=enabled, default_deny=default_deny), pin)
        self._record("patch")
        return {
            "success": True,
            "config": _config_payload(config),
            "stats": self._store.stats().to_payload(),
        }

    def replace(
        self,
        *,
        enabled: bool | None,
        default_deny: bool | None,
        allowed_categories: list[str] | None,
        pin: str | None,
    ) -> dict[str, Any]:
        patch = FilterPatch(
            enabled=enabled,
            default_deny=default_deny,
            allowed_categories=(
                frozenset(allowed_categories) if allowed_categories is not None else None
            ),
        )
        config = self._store.save(patch, pin)
        self._record("replace")
        return {"success": True, "config": _config_payload(config)}

    def pin_action(
        self,
        action: str | None,
        *,
        pin: str | None,
        new_pin: str | None,
    ) -> dict[str, Any]:
        if action == "verify":
            return {"success": self._store.verify_pin(pin)}

        if action == "setup":
            if self._store.has_pin():
                raise PinAlreadySetError("a PIN is already set")
            self._store.set_pin(_require_new_pin(new_pin or pin))
            self._record("pin_setup")
            return {"success": True}

        if action == "update":
            if not self._store.verify_pin(pin):
                raise PinRequiredError(
                    "current PIN is incorrect", message_key="pin_current_invalid"
                )
            self._store.set_pin(_require_new_pin(new_pin), pin)
            self._record("pin_update")
            return {"success": True}

        if action == "remove":
            self._store.remove_pin(pin)
            self._record("pin_remove")
            return {"success": True}

        raise ValidationError(
            f"unsupported filter action {action}", field="action", message_key="invalid_action"
        )

    def categories(self) -> dict[str, Any]:
        return {"categories": [category.to_payload() for category in self._store.categories()]}

    def set_category(self, category: str, enabled: bool, *, pin: str | None) -> dict[str, Any]:
        self._store.set_category(category.strip(), enabled, pin)
        self._record("category", enabled=enabled)
        return self.categories()

    def whitelist(self) -> dict[str, Any]:
        return {"items": [item.to_payload() for item in self._store.load().whitelist]}

    def add_whitelist_item(
        self,
        *,
        youtube_id: str,
        content_type: str,
        title: str,
        reason: str,
        pin: str | None,
    ) -> dict[str, Any]:
        item = self._store.add_whitelist_item(
            youtube_id=youtube_id,
            content_type=content_type,
            title=title,
            reason=reason,
            pin=pin,
        )
        self._record("whitelist_add", content_type=item.type)
        return {"success": True, "item": item.to_payload()}

    def remove_whitelist_item(
        self,
        *,
        youtube_id: str,
        content_type: str,
        pin: str | None,
    ) -> dict[str, Any]:
        config = self._store.remove_whitelist_item(youtube_id, content_type, pin)
        self._record("whitelist_remove", content_type=content_type)
        return {"success": True, "items": [item.to_payload() for item in config.whitelist]}

    def keywords(self) -> dict[str, Any]:
        return {"keywords": list(self._store.load().blocked_keywords)}

    def add_keyword(self, keyword: str, *, pin: str | None) -> dict[str, Any]:
        config = self._store.add_blocked_keyword(keyword, pin)
        self._record("keyword_add")
        return {"success": True, "keywords": list(config.blocked_keywords)}

    def remove_keyword(self, keyword: str, *, pin: str | None) -> dict[str, Any]:
        config = self._store.remove_blocked_keyword(keyword, pin)
        self._record("keyword_remove")
        return {"success": True, "keywords": list(config.blocked_keywords)}

    def _record(self, action: str, **attributes: Any) -> None:
        LOGGER.info("filter admin change action=%s", action)
        self._telemetry.emit(FILTER_ADMIN_CHANGE, action=action, **attributes)


def _config_payload(config: FilterConfig) -> dict[str, Any]:
    return config.to_client_payload(category_order=CATEGORY_IDS)


def _require_new_pin(new_pin: str | None) -> str:
    if new_pin is None or not new_pin.strip():
        raise ValidationError("new PIN is required", field="newPin", message_key="pin_format")
    return new_pin
