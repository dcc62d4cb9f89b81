from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal, cast

ContentType = Literal["video", "channel", "playlist"]
CONTENT_TYPES: frozenset[str] = frozenset({"video", "channel", "playlist"})


@dataclass(frozen=True)
class FilterDecision:
    allowed: bool
    reason: str


@dataclass(frozen=True)
class CategoryDefinition:
    id: str
    label: str
    enabled: bool

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "enabled": self.enabled}


@dataclass(frozen=True)
class WhitelistItem:
    youtube_id: str
    type: ContentType
    title: str
    reason: str = ""
    added_at: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.youtube_id, self.type)

    def to_payload(self) -> dict[str, Any]:
        return {
            "youtubeId": self.youtube_id,
            "type": self.type,
            "title": self.title,
            "reason": self.reason,
            "addedAt": self.added_at,
        }


@dataclass(frozen=True)
class FilterConfig:
    enabled: bool = True
    default_deny: bool = False
    allowed_categories: frozenset[str] = frozenset()
    whitelist: tuple[WhitelistItem, ...] = ()
    blocked_keywords: tuple[str, ...] = ()
    pin_hash: str | None = field(default=None, repr=False)

    @property
    def has_pin(self) -> bool:
        return self.pin_hash is not None

    def is_whitelisted(self, content_id: str, content_type: str) -> bool:
        return any(item.key == (content_id, content_type) for item in self.whitelist)

    def without_pin(self) -> FilterConfig:
        return replace(self, pin_hash=None)

    def to_client_payload(self, *, category_order: tuple[str, ...] = ()) -> dict[str, Any]:
        """Client view of the policy. The PIN hash never leaves the process."""
        ordered = [category for category in category_order if category in self.allowed_categories]
        ordered.extend(
            sorted(category for category in self.allowed_categories if category not in ordered)
        )
        return {
            "enabled": self.enabled,
            "defaultDeny": self.default_deny,
            "allowedCategories": ordered,
            "whitelist": [item.to_payload() for item in self.whitelist],
            "blockedKeywords": list(self.blocked_keywords),
        }

    def to_document(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "default_deny": self.default_deny,
            "allowed_categories": sorted(self.allowed_categories),
            "whitelist": [
                {
                    "youtube_id": item.youtube_id,
                    "type": item.type,
                    "title": item.title,
                    "reason": item.reason,
                    "added_at": item.added_at,
                }
                for item in self.whitelist
            ],
            "blocked_keywords": list(self.blocked_keywords),
            "pin_hash": self.pin_hash,
        }

    @classmethod
    def from_document(cls, document: dict[str, Any], *, defaults: FilterConfig) -> FilterConfig:
        enabled = document.get("enabled")
        default_deny = document.get("default_deny")
        pin_hash = document.get("pin_hash")
        return cls(
            enabled=enabled if isinstance(enabled, bool) else defaults.enabled,
            default_deny=default_deny if isinstance(default_deny, bool) else defaults.default_deny,
            allowed_categories=_decode_categories(
                document.get("allowed_categories"), fallback=defaults.allowed_categories
            ),
            whitelist=_decode_whitelist(document.get("whitelist")),
            blocked_keywords=_decode_keywords(document.get("blocked_keywords")),
            pin_hash=pin_hash if isinstance(pin_hash, str) and pin_hash else None,
        )


def _decode_categories(raw_value: object, *, fallback: frozenset[str]) -> frozenset[str]:
    if not isinstance(raw_value, list):
        return fallback
    return frozenset(
        item.strip()
        for item in cast(list[object], raw_value)
        if isinstance(item, str) and item.strip()
    )


def _decode_whitelist(raw_value: object) -> tuple[WhitelistItem, ...]:
    if not isinstance(raw_value, list):
        return ()
    items: dict[tuple[str, str], WhitelistItem] = {}
    for raw_item in cast(list[object], raw_value):
        if not isinstance(raw_item, dict):
            continue
        entry = cast(dict[str, object], raw_item)
        youtube_id = entry.get("youtube_id")
        content_type = entry.get("type")
        if not isinstance(youtube_id, str) or not youtube_id.strip():
            continue
        if content_type not in CONTENT_TYPES:
            continue
        item = WhitelistItem(
            youtube_id=youtube_id.strip(),
            type=cast(ContentType, content_type),
            title=_as_text(entry.get("title")),
            reason=_as_text(entry.get("reason")),
            added_at=_as_text(entry.get("added_at")),
        )
        items[item.key] = item
    return tuple(items.values())


def _decode_keywords(raw_value: object) -> tuple[str, ...]:
    if not isinstance(raw_value, list):
        return ()
    keywords: list[str] = []
    seen: set[str] = set()
    for item in cast(list[object], raw_value):
        if not isinstance(item, str):
            continue
        keyword = item.strip()
        folded = keyword.casefold()
        if not keyword or folded in seen:
            continue
        seen.add(folded)
        keywords.append(keyword)
    return tuple(keywords)


def _as_text(value: object) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""
