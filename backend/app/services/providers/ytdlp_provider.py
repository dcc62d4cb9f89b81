from __future__ import annotations

from collections.abc import Callable
from typing import Any

import yt_dlp

from backend.app.models.content import (
    UNKNOWN_TEXT,
    MediaFormat,
    MediaInfo,
    ProviderSearchResult,
    SearchLocale,
    VideoDetail,
    VideoSummary,
    default_thumbnail,
    embed_url,
    watch_url,
)
from backend.app.services.errors import NotFoundError, ProviderError
from backend.app.services.providers.http import (
    as_dict,
    as_int,
    as_list,
    as_text,
    format_count,
    format_seconds,
)

SEARCH_RESULT_COUNT = 20
_NOT_FOUND_MARKERS: tuple[str, ...] = (
    "video unavailable",
    "this video has been removed",
    "does not exist",
)

YoutubeDLFactory = Callable[[dict[str, Any]], Any]


class YtDlpProvider:
    """
    yt-dlp as a provider: flat search, full detail extraction, and the format
    list used by the download resolver.
    """

    name = "ytdlp"

    def __init__(
        self,
        *,
        socket_timeout_seconds: float,
        ydl_factory: YoutubeDLFactory = yt_dlp.YoutubeDL,
    ) -> None:
        self._socket_timeout_seconds = max(1.0, socket_timeout_seconds)
        self._ydl_factory = ydl_factory

    def search(self, query: str, locale: SearchLocale) -> ProviderSearchResult:
        info = self._extract(
            f"ytsearch{SEARCH_RESULT_COUNT}:{query}",
            extract_flat=True,
        )
        videos: list[VideoSummary] = []
        for entry in as_list(info.get("entries")):
            video = _entry_to_summary(as_dict(entry))
            if video is not None:
                videos.append(video)
        return ProviderSearchResult(videos=tuple(videos))

    def get_video(self, video_id: str) -> VideoDetail:
        info = self._extract(watch_url(video_id))
        return _info_to_detail(video_id, info)

    def media_info(self, video_id: str, *, po_token: str | None = None) -> MediaInfo:
        info = self._extract(watch_url(video_id), po_token=po_token)
        formats: list[MediaFormat] = []
        for raw_format in as_list(info.get("formats")):
            media_format = _to_media_format(as_dict(raw_format))
            if media_format is not None:
                formats.append(media_format)
        return MediaInfo(
            video_id=video_id,
            title=as_text(info.get("title")),
            formats=tuple(formats),
            duration_seconds=as_int(info.get("duration")),
            thumbnail=as_text(info.get("thumbnail")) or None,
        )

    def _extract(
        self,
        url: str,
        *,
        extract_flat: bool = False,
        po_token: str | None = None,
    ) -> dict[str, Any]:
        ydl_opts: dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "noplaylist": True,
            "socket_timeout": self._socket_timeout_seconds,
        }
        if extract_flat:
            ydl_opts["extract_flat"] = True
        if po_token:
            ydl_opts["http_headers"] = {"X-Po-Token": po_token}
            ydl_opts["extractor_args"] = {"youtube": {"po_token": [f"web+{po_token}"]}}

        try:
            with self._ydl_factory(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except yt_dlp.utils.DownloadError as exc:
            normalized = str(exc).lower()
            if any(marker in normalized for marker in _NOT_FOUND_MARKERS):
                raise NotFoundError(str(exc)) from exc
            raise ProviderError(str(exc)) from exc

        info_dict = as_dict(info)
        if not info_dict:
            raise ProviderError(f"yt-dlp returned no info url={url}")
        return info_dict


def _entry_to_summary(entry: dict[str, Any]) -> VideoSummary | None:
    video_id = as_text(entry.get("id"))
    if not video_id:
        return None
    thumbnails = as_list(entry.get("thumbnails"))
    thumbnail = as_text(as_dict(thumbnails[-1]).get("url")) if thumbnails else ""
    return VideoSummary(
        id=video_id,
        title=as_text(entry.get("title")),
        description=as_text(entry.get("description")),
        thumbnail=thumbnail or default_thumbnail(video_id),
        duration=format_seconds(as_int(entry.get("duration"))),
        views=format_count(entry.get("view_count")),
        channel_name=as_text(entry.get("channel") or entry.get("uploader"), UNKNOWN_TEXT),
        channel_id=as_text(entry.get("channel_id")),
        is_verified=entry.get("channel_is_verified") is True,
    )


def _info_to_detail(video_id: str, info: dict[str, Any]) -> VideoDetail:
    resolved_id = as_text(info.get("id"), video_id)
    tags = [tag for tag in as_list(info.get("tags")) if isinstance(tag, str)]
    categories = [item for item in as_list(info.get("categories")) if isinstance(item, str)]
    return VideoDetail(
        id=resolved_id,
        title=as_text(info.get("title")),
        description=as_text(info.get("description")),
        thumbnail=as_text(info.get("thumbnail")) or default_thumbnail(resolved_id),
        duration=format_seconds(as_int(info.get("duration"))),
        views=format_count(info.get("view_count")),
        likes=format_count(info.get("like_count")),
        uploaded_at=_format_upload_date(as_text(info.get("upload_date"))),
        channel_name=as_text(info.get("channel") or info.get("uploader"), UNKNOWN_TEXT),
        channel_id=as_text(info.get("channel_id")),
        channel_subscribers=format_count(info.get("channel_follower_count"), UNKNOWN_TEXT),
        is_verified=info.get("channel_is_verified") is True,
        keywords=tuple(tags + [item for item in categories if item not in tags]),
        embed_url=embed_url(resolved_id),
    )


def _format_upload_date(raw_date: str) -> str:
    # yt-dlp reports YYYYMMDD.
    if len(raw_date) == 8 and raw_date.isdigit():
        return f"{raw_date[:4]}-{raw_date[4:6]}-{raw_date[6:]}"
    return raw_date or UNKNOWN_TEXT


def _to_media_format(raw_format: dict[str, Any]) -> MediaFormat | None:
    format_id = as_text(raw_format.get("format_id"))
    if not format_id:
        return None
    vcodec = as_text(raw_format.get("vcodec"), "none")
    acodec = as_text(raw_format.get("acodec"), "none")
    abr = raw_format.get("abr")
    audio_bitrate: float | None = None
    if isinstance(abr, int | float) and not isinstance(abr, bool):
        audio_bitrate = float(abr)
    return MediaFormat(
        format_id=format_id,
        url=as_text(raw_format.get("url")) or None,
        container=as_text(raw_format.get("ext"), "mp4"),
        height=as_int(raw_format.get("height")),
        audio_bitrate=audio_bitrate,
        has_video=vcodec != "none",
        has_audio=acodec != "none",
        file_size=as_int(raw_format.get("filesize") or raw_format.get("filesize_approx")),
    )
