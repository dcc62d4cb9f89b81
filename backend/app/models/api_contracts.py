from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _normalize_optional_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if not normalized:
        return None
    return normalized


class _ClientRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class FilterPatchRequest(_ClientRequest):
    enabled: bool | None = None
    default_deny: bool | None = Field(default=None, alias="defaultDeny")
    pin: str | None = Field(default=None, max_length=64)


class FilterReplaceRequest(FilterPatchRequest):
    allowed_categories: list[str] | None = Field(default=None, alias="allowedCategories")


class FilterActionRequest(_ClientRequest):
    action: str | None = None
    pin: str | None = Field(default=None, max_length=64)
    new_pin: str | None = Field(default=None, alias="newPin", max_length=64)

    @field_validator("pin", "new_pin", mode="before")
    @classmethod
    def _normalize_pins(cls, value: object) -> str | None:
        return _normalize_optional_text(value)


class CategoryToggleRequest(_ClientRequest):
    category: str = Field(min_length=1, max_length=64)
    enabled: bool
    pin: str | None = Field(default=None, max_length=64)


class WhitelistAddRequest(_ClientRequest):
    youtube_id: str = Field(alias="youtubeId", min_length=1, max_length=64)
    type: Literal["video", "channel", "playlist"]
    title: str = Field(min_length=1, max_length=500)
    reason: str = Field(default="", max_length=500)
    pin: str | None = Field(default=None, max_length=64)


class KeywordAddRequest(_ClientRequest):
    keyword: str = Field(min_length=1, max_length=200)
    pin: str | None = Field(default=None, max_length=64)


class DownloadRequestBody(_ClientRequest):
    video_id: str | None = Field(default=None, alias="videoId", max_length=64)
    quality: str | None = Field(default=None, max_length=32)
    type: str | None = Field(default="video", max_length=16)
