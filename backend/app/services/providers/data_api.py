from __future__ import annotations

import re
from collections.abc import Callable
from importlib import import_module
from typing import Any, cast

from backend.app.models.content import (
    UNKNOWN_TEXT,
    ProviderSearchResult,
    SearchLocale,
    VideoDetail,
    VideoSummary,
    default_thumbnail,
    embed_url,
)
from backend.app.services.errors import NotFoundError, ProviderError
from backend.app.services.providers.http import (
    as_dict,
    as_list,
    as_text,
    format_count,
    format_seconds,
)

ISO8601_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)
SEARCH_PAGE_SIZE = 25
_THUMBNAIL_PREFERENCE: tuple[str, ...] = ("high", "medium", "default")


def build_data_api_client(api_key: str) -> Any:
    try:
        discovery_module = import_module("googleapiclient.discovery")
    except ImportError as exc:  # pragma: no cover - dependency controlled at runtime
        raise ProviderError("Data API mode requires google-api-python-client") from exc

    build_fn: Any = discovery_module.build
    return build_fn("youtube", "v3", developerKey=api_key, cache_discovery=False)


class DataApiProvider:
    """YouTube Data API v3 in API-key mode. Fresh searches only; no continuation."""

    name = "data_api"

    def __init__(
        self,
        *,
        api_key: str,
        client_factory: Callable[[str], Any] = build_data_api_client,
    ) -> None:
        self._api_key = api_key
        self._client_factory = client_factory
        self._client: Any | None = None

    def search(self, query: str, locale: SearchLocale) -> ProviderSearchResult:
        client = self._get_client()
        query_kwargs: dict[str, object] = {
            "part": "snippet",
            "q": query,
            "type": "video",
            "maxResults": SEARCH_PAGE_SIZE,
        }
        if locale.region:
            query_kwargs["regionCode"] = locale.region
        if locale.language:
            query_kwargs["relevanceLanguage"] = locale.language

        response = cast(dict[str, Any], client.search().list(**query_kwargs).execute())
        video_ids: list[str] = []
        for item in as_list(response.get("items")):
            video_id = as_text(as_dict(as_dict(item).get("id")).get("videoId"))
            if video_id and video_id not in video_ids:
                video_ids.append(video_id)
        if not video_ids:
            return ProviderSearchResult(videos=())

        items_by_id = {
            as_text(as_dict(item).get("id")): as_dict(item)
            for item in self._list_videos(client, video_ids)
        }
        videos = [
            _item_to_summary(video_id, items_by_id[video_id])
            for video_id in video_ids
            if video_id in items_by_id
        ]
        return ProviderSearchResult(videos=tuple(videos))

    def get_video(self, video_id: str) -> VideoDetail:
        items = self._list_videos(self._get_client(), [video_id])
        if not items:
            raise NotFoundError(f"video unavailable video_id={video_id}")
        return _item_to_detail(video_id, as_dict(items[0]))

    def _list_videos(self, client: Any, video_ids: list[str]) -> list[Any]:
        response = cast(
            dict[str, Any],
            client.videos()
            .list(
                part="snippet,contentDetails,statistics",
                id=",".join(video_ids),
                maxResults=len(video_ids),
            )
            .execute(),
        )
        return as_list(response.get("items"))

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory(self._api_key)
        return self._client


def _item_to_summary(video_id: str, item: dict[str, Any]) -> VideoSummary:
    snippet = as_dict(item.get("snippet"))
    content_details = as_dict(item.get("contentDetails"))
    statistics = as_dict(item.get("statistics"))
    return VideoSummary(
        id=video_id,
        title=as_text(snippet.get("title")),
        description=as_text(snippet.get("description")),
        thumbnail=_best_thumbnail(snippet) or default_thumbnail(video_id),
        duration=format_seconds(parse_iso8601_duration_seconds(content_details.get("duration"))),
        views=format_count(statistics.get("viewCount")),
        uploaded_at=as_text(snippet.get("publishedAt"), UNKNOWN_TEXT),
        channel_name=as_text(snippet.get("channelTitle"), UNKNOWN_TEXT),
        channel_id=as_text(snippet.get("channelId")),
    )


def _item_to_detail(video_id: str, item: dict[str, Any]) -> VideoDetail:
    summary = _item_to_summary(video_id, item)
    snippet = as_dict(item.get("snippet"))
    statistics = as_dict(item.get("statistics"))
    tags = tuple(tag for tag in as_list(snippet.get("tags")) if isinstance(tag, str))
    return VideoDetail(
        id=summary.id,
        title=summary.title,
        description=summary.description,
        thumbnail=summary.thumbnail,
        duration=summary.duration,
        views=summary.views,
        likes=format_count(statistics.get("likeCount")),
        uploaded_at=summary.uploaded_at,
        channel_name=summary.channel_name,
        channel_id=summary.channel_id,
        keywords=tags,
        embed_url=embed_url(summary.id),
    )


def _best_thumbnail(snippet: dict[str, Any]) -> str:
    thumbnails = as_dict(snippet.get("thumbnails"))
    for quality in _THUMBNAIL_PREFERENCE:
        url = as_text(as_dict(thumbnails.get(quality)).get("url"))
        if url:
            return url
    return ""


def parse_iso8601_duration_seconds(raw_value: object) -> int | None:
    if not isinstance(raw_value, str):
        return None
    matched = ISO8601_DURATION_PATTERN.match(raw_value.strip())
    if matched is None:
        return None

    days = int(matched.group("days") or 0)
    hours = int(matched.group("hours") or 0)
    minutes = int(matched.group("minutes") or 0)
    seconds = int(matched.group("seconds") or 0)
    return days * 86_400 + hours * 3_600 + minutes * 60 + seconds
