from __future__ import annotations

import logging
from typing import Any

from backend.app.models.content import (
    UNKNOWN_TEXT,
    ProviderSearchResult,
    RelatedVideo,
    SearchLocale,
    VideoComment,
    VideoDetail,
    VideoSummary,
    default_thumbnail,
    embed_url,
)
from backend.app.services.errors import ProviderError
from backend.app.services.providers.http import (
    as_dict,
    as_int,
    as_list,
    as_text,
    fetch_json_ok,
    format_count,
    format_seconds,
)

LOGGER = logging.getLogger("tube_guard.providers.invidious")

MAX_COMMENTS = 20
_THUMBNAIL_PREFERENCE: tuple[str, ...] = ("high", "medium", "maxres", "default")


class InvidiousProvider:
    name = "invidious"

    def __init__(self, *, base_url: str, timeout_seconds: float) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = max(1.0, timeout_seconds)

    def search(self, query: str, locale: SearchLocale) -> ProviderSearchResult:
        params = {"q": query, "type": "video"}
        if locale.region:
            params["region"] = locale.region
        payload = fetch_json_ok(
            f"{self._base_url}/api/v1/search",
            timeout_seconds=self._timeout_seconds,
            params=params,
        )
        if not isinstance(payload, list):
            raise ProviderError("invidious search returned a non-list payload")

        videos: list[VideoSummary] = []
        for item in as_list(payload):
            item_dict = as_dict(item)
            if as_text(item_dict.get("type"), "video") != "video":
                continue
            video = _item_to_summary(item_dict)
            if video is not None:
                videos.append(video)
        return ProviderSearchResult(videos=tuple(videos))

    def get_video(self, video_id: str) -> VideoDetail:
        payload = as_dict(
            fetch_json_ok(
                f"{self._base_url}/api/v1/videos/{video_id}",
                timeout_seconds=self._timeout_seconds,
            )
        )
        if not payload:
            raise ProviderError(f"invidious returned an empty payload video_id={video_id}")
        error = as_text(payload.get("error"))
        if error:
            raise ProviderError(f"{error} video_id={video_id}")

        comments: tuple[VideoComment, ...] = ()
        try:
            comments = self._top_comments(video_id)
        except ProviderError:
            LOGGER.info("invidious comments_unavailable video_id=%s", video_id, exc_info=True)
        return _payload_to_detail(video_id, payload, comments)

    def _top_comments(self, video_id: str) -> tuple[VideoComment, ...]:
        payload = as_dict(
            fetch_json_ok(
                f"{self._base_url}/api/v1/comments/{video_id}",
                timeout_seconds=self._timeout_seconds,
            )
        )
        comments: list[VideoComment] = []
        for raw_comment in as_list(payload.get("comments"))[:MAX_COMMENTS]:
            comment = as_dict(raw_comment)
            thumbnails = as_list(comment.get("authorThumbnails"))
            comments.append(
                VideoComment(
                    author_name=as_text(comment.get("author"), UNKNOWN_TEXT),
                    author_avatar=as_text(as_dict(thumbnails[-1]).get("url")) if thumbnails else "",
                    text=as_text(comment.get("content")),
                    published=as_text(comment.get("publishedText")),
                    likes=format_count(comment.get("likeCount")),
                )
            )
        return tuple(comments)


def _item_to_summary(item: dict[str, Any]) -> VideoSummary | None:
    video_id = as_text(item.get("videoId"))
    if not video_id:
        return None
    return VideoSummary(
        id=video_id,
        title=as_text(item.get("title")),
        description=as_text(item.get("description")),
        thumbnail=_best_thumbnail(item.get("videoThumbnails")) or default_thumbnail(video_id),
        duration=format_seconds(as_int(item.get("lengthSeconds"))),
        views=format_count(item.get("viewCount")),
        uploaded_at=as_text(item.get("publishedText"), UNKNOWN_TEXT),
        channel_name=as_text(item.get("author"), UNKNOWN_TEXT),
        channel_id=as_text(item.get("authorId")),
        is_verified=item.get("authorVerified") is True,
    )


def _payload_to_detail(
    video_id: str,
    payload: dict[str, Any],
    comments: tuple[VideoComment, ...],
) -> VideoDetail:
    resolved_id = as_text(payload.get("videoId"), video_id)
    author_thumbnails = as_list(payload.get("authorThumbnails"))
    related: list[RelatedVideo] = []
    for raw_related in as_list(payload.get("recommendedVideos")):
        item = as_dict(raw_related)
        related_id = as_text(item.get("videoId"))
        if not related_id:
            continue
        related.append(
            RelatedVideo(
                id=related_id,
                title=as_text(item.get("title")),
                thumbnail=_best_thumbnail(item.get("videoThumbnails"))
                or default_thumbnail(related_id),
                duration=format_seconds(as_int(item.get("lengthSeconds"))),
                views=as_text(item.get("viewCountText")) or format_count(item.get("viewCount")),
                channel_name=as_text(item.get("author"), UNKNOWN_TEXT),
            )
        )

    return VideoDetail(
        id=resolved_id,
        title=as_text(payload.get("title")),
        description=as_text(payload.get("description")),
        thumbnail=_best_thumbnail(payload.get("videoThumbnails")) or default_thumbnail(resolved_id),
        duration=format_seconds(as_int(payload.get("lengthSeconds"))),
        views=format_count(payload.get("viewCount")),
        likes=format_count(payload.get("likeCount")),
        uploaded_at=as_text(payload.get("publishedText"), UNKNOWN_TEXT),
        channel_name=as_text(payload.get("author"), UNKNOWN_TEXT),
        channel_avatar=as_text(as_dict(author_thumbnails[-1]).get("url"))
        if author_thumbnails
        else "",
        channel_id=as_text(payload.get("authorId")),
        channel_subscribers=as_text(payload.get("subCountText"), UNKNOWN_TEXT),
        is_verified=payload.get("authorVerified") is True,
        keywords=tuple(
            keyword for keyword in as_list(payload.get("keywords")) if isinstance(keyword, str)
        ),
        related_videos=tuple(related),
        comments=comments,
        embed_url=embed_url(resolved_id),
    )


def _best_thumbnail(raw_thumbnails: Any) -> str:
    by_quality = {
        as_text(as_dict(thumbnail).get("quality")): as_text(as_dict(thumbnail).get("url"))
        for thumbnail in as_list(raw_thumbnails)
    }
    for quality in _THUMBNAIL_PREFERENCE:
        url = by_quality.get(quality)
        if url:
            return url
    return ""
