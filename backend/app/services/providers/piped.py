from __future__ import annotations

from typing import Any

from backend.app.models.content import MediaType, ResolvedMedia
from backend.app.services.errors import ProviderError
from backend.app.services.providers.http import (
    as_dict,
    as_int,
    as_list,
    as_text,
    fetch_json_ok,
)


class PipedProvider:
    name = "piped"

    def __init__(self, *, base_url: str, timeout_seconds: float) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = max(1.0, timeout_seconds)

    def resolve(self, video_id: str, media_type: MediaType, quality: str) -> ResolvedMedia:
        payload = as_dict(
            fetch_json_ok(
                f"{self._base_url}/streams/{video_id}",
                timeout_seconds=self._timeout_seconds,
            )
        )
        error = as_text(payload.get("error"))
        if error:
            raise ProviderError(f"{error} video_id={video_id}")

        if media_type == "audio":
            stream = _best_audio_stream(as_list(payload.get("audioStreams")))
        else:
            stream = _closest_muxed_stream(as_list(payload.get("videoStreams")), quality)
        url = as_text(as_dict(stream).get("url"))
        if not url:
            raise ProviderError(f"piped returned no {media_type} stream video_id={video_id}")
        return ResolvedMedia(url=url, title=as_text(payload.get("title")))


def _best_audio_stream(streams: list[Any]) -> dict[str, Any] | None:
    candidates = [as_dict(stream) for stream in streams if as_text(as_dict(stream).get("url"))]
    if not candidates:
        return None
    return max(candidates, key=lambda stream: as_int(stream.get("bitrate")) or 0)


def _closest_muxed_stream(streams: list[Any], quality: str) -> dict[str, Any] | None:
    target_height = as_int(quality.rstrip("p")) or 720
    muxed = [
        as_dict(stream)
        for stream in streams
        if as_dict(stream).get("videoOnly") is False and as_text(as_dict(stream).get("url"))
    ]
    if not muxed:
        return None
    return min(
        muxed,
        key=lambda stream: abs((_stream_height(stream) or 0) - target_height),
    )


def _stream_height(stream: dict[str, Any]) -> int | None:
    height = as_int(stream.get("height"))
    if height:
        return height
    return as_int(as_text(stream.get("quality")).rstrip("p"))
