from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from backend.app.models.content import (
    UNKNOWN_TEXT,
    DownloadLink,
    MediaFormat,
    MediaInfo,
    MediaType,
    ResolvedMedia,
)
from backend.app.services.errors import ProviderError, ValidationError
from backend.app.services.messages import DEFAULT_LOCALE, message
from backend.app.services.provider_chain import (
    ChainOutcome,
    ProviderChain,
    ProviderStep,
    summarize_exception_message,
)
from backend.app.telemetry import DOWNLOAD_RESOLVE_FINISH, TelemetryClient

LOGGER = logging.getLogger("tube_guard.download")

DEFAULT_AUDIO_BITRATE = 128
DEFAULT_VIDEO_HEIGHT = 720
MAX_AUDIO_FORMATS = 5
MEDIA_TYPES: tuple[MediaType, ...] = ("audio", "video")


class MediaInfoProvider(Protocol):
    name: str

    def media_info(self, video_id: str, *, po_token: str | None = None) -> MediaInfo:
        ...


class LinkProvider(Protocol):
    name: str

    def resolve(self, video_id: str, media_type: MediaType, quality: str) -> ResolvedMedia:
        ...


class TokenSource(Protocol):
    def fetch(self) -> str | None:
        ...


@dataclass(frozen=True)
class DownloadRequest:
    video_id: str
    media_type: MediaType
    quality: str
    po_token: str | None = None
    locale: str = DEFAULT_LOCALE


@dataclass(frozen=True)
class FormatOption:
    quality: str
    container: str
    size: str
    format_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "quality": self.quality,
            "container": self.container,
            "size": self.size,
        }
        if self.format_id is not None:
            payload["itag"] = self.format_id
        return payload


@dataclass(frozen=True)
class FormatListing:
    title: str
    video_formats: tuple[FormatOption, ...]
    audio_formats: tuple[FormatOption, ...]
    duration_seconds: int | None = None
    thumbnail: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": self.title,
            "videoFormats": [option.to_payload() for option in self.video_formats],
            "audioFormats": [option.to_payload() for option in self.audio_formats],
        }
        if self.duration_seconds is not None:
            payload["duration"] = self.duration_seconds
        if self.thumbnail is not None:
            payload["thumbnail"] = self.thumbnail
        return payload


DEFAULT_FORMAT_LISTING = FormatListing(
    title="YouTube Video",
    video_formats=(
        FormatOption(quality="720p", container="mp4", size=UNKNOWN_TEXT),
        FormatOption(quality="360p", container="mp4", size=UNKNOWN_TEXT),
    ),
    audio_formats=(FormatOption(quality="128kbps", container="m4a", size=UNKNOWN_TEXT),),
)


def parse_target(quality: str | None, default: int) -> int:
    """Leading digits of a quality label such as `720p` or `128kbps`."""
    digits = ""
    for char in (quality or "").strip():
        if not char.isdigit():
            break
        digits += char
    return int(digits) if digits else default


def format_file_size(size_bytes: int | None) -> str:
    if not size_bytes:
        return UNKNOWN_TEXT
    return f"{round(size_bytes / 1024 / 1024)} MB"


def select_audio_format(formats: Sequence[MediaFormat], target_bitrate: int) -> MediaFormat | None:
    audio_only = sorted(
        (item for item in formats if item.has_audio and not item.has_video),
        key=lambda item: item.audio_bitrate or 0,
        reverse=True,
    )
    for item in audio_only:
        if (item.audio_bitrate or 0) <= target_bitrate:
            return item
    return audio_only[0] if audio_only else None


def select_video_format(formats: Sequence[MediaFormat], target_height: int) -> MediaFormat | None:
    muxed = sorted(
        (item for item in formats if item.has_video and item.has_audio),
        key=lambda item: abs((item.height or 0) - target_height),
    )
    if muxed:
        return muxed[0]
    return next((item for item in formats if item.has_video), None)


class DownloadResolver:
    """
    Resolves a playable media URL for a video.

    yt-dlp format selection runs first; Cobalt and Piped are fallbacks that only
    hand back a single URL, so their links carry default quality labels.
    """

    def __init__(
        self,
        *,
        media_provider: MediaInfoProvider | None,
        fallback_providers: Sequence[LinkProvider] = (),
        po_token_source: TokenSource | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._media_provider = media_provider
        self._po_token_source = po_token_source
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

        steps: list[ProviderStep[DownloadRequest, DownloadLink]] = []
        if media_provider is not None:
            steps.append(ProviderStep(name=media_provider.name, call=self._select_from_formats))
        for provider in fallback_providers:
            steps.append(ProviderStep(name=provider.name, call=self._fallback_call(provider)))
        self._chain: ProviderChain[DownloadRequest, DownloadLink] = ProviderChain(
            "download",
            steps,
            telemetry=self._telemetry,
        )

    def resolve(
        self,
        video_id: str | None,
        media_type: str | None,
        quality: str | None = None,
        *,
        locale: str = DEFAULT_LOCALE,
    ) -> DownloadLink:
        normalized_id = (video_id or "").strip()
        if not normalized_id:
            raise ValidationError(
                "video id is required", field="videoId", message_key="video_id_required"
            )
        normalized_type = (media_type or "video").strip().lower()
        if normalized_type not in MEDIA_TYPES:
            raise ValidationError(f"unsupported media type {normalized_type}", field="type")

        request = DownloadRequest(
            video_id=normalized_id,
            media_type="audio" if normalized_type == "audio" else "video",
            quality=(quality or "").strip(),
            po_token=self._fetch_po_token(),
            locale=locale,
        )
        try:
            outcome: ChainOutcome[DownloadLink] = self._chain.run(request)
        except Exception:
            self._telemetry.emit(
                DOWNLOAD_RESOLVE_FINISH, media_type=request.media_type, success=False
            )
            raise

        link = outcome.value
        LOGGER.info(
            "download resolved video_id=%s type=%s provider=%s quality=%s",
            normalized_id,
            link.type,
            link.provider,
            link.quality,
        )
        self._telemetry.emit(
            DOWNLOAD_RESOLVE_FINISH,
            media_type=link.type,
            provider=link.provider,
            success=True,
            used_fallback=outcome.used_fallback,
        )
        return link

    def list_formats(self, video_id: str | None) -> FormatListing:
        normalized_id = (video_id or "").strip()
        if not normalized_id:
            raise ValidationError(
                "video id is required", field="videoId", message_key="video_id_required"
            )
        if self._media_provider is None:
            return DEFAULT_FORMAT_LISTING
        try:
            info = self._media_provider.media_info(normalized_id)
        except Exception as exc:
            LOGGER.warning(
                "download formats_failed video_id=%s error=%s",
                normalized_id,
                summarize_exception_message(exc),
            )
            return DEFAULT_FORMAT_LISTING
        return _listing_from_info(info)

    def _fetch_po_token(self) -> str | None:
        if self._po_token_source is None:
            return None
        try:
            return self._po_token_source.fetch()
        except Exception as exc:
            LOGGER.warning("download po_token_failed error=%s", summarize_exception_message(exc))
            return None

    def _select_from_formats(self, request: DownloadRequest) -> DownloadLink:
        media_provider = self._media_provider
        if media_provider is None:
            raise ProviderError("no media provider configured")
        info = media_provider.media_info(request.video_id, po_token=request.po_token)
        if request.media_type == "audio":
            selected = select_audio_format(
                info.formats, parse_target(request.quality, DEFAULT_AUDIO_BITRATE)
            )
        else:
            selected = select_video_format(
                info.formats, parse_target(request.quality, DEFAULT_VIDEO_HEIGHT)
            )
        if selected is None or not selected.url:
            raise ProviderError(
                f"no playable {request.media_type} format video_id={request.video_id}"
            )

        if request.media_type == "audio":
            quality_label = f"{_bitrate_label(selected.audio_bitrate)}kbps"
        else:
            height = selected.height or parse_target(request.quality, DEFAULT_VIDEO_HEIGHT)
            quality_label = f"{height}p"
        return DownloadLink(
            url=selected.url,
            video_id=request.video_id,
            quality=quality_label,
            type=request.media_type,
            container=selected.container or "mp4",
            file_size=format_file_size(selected.file_size),
            title=info.title,
            provider=media_provider.name,
            message=f"{message('download_success', request.locale)} ({media_provider.name})",
        )

    def _fallback_call(
        self, provider: LinkProvider
    ) -> Callable[[DownloadRequest], DownloadLink]:
        def call(request: DownloadRequest) -> DownloadLink:
            if request.media_type == "audio":
                quality = str(parse_target(request.quality, DEFAULT_AUDIO_BITRATE))
            else:
                quality = str(parse_target(request.quality, DEFAULT_VIDEO_HEIGHT))
            resolved = provider.resolve(request.video_id, request.media_type, quality)
            is_audio = request.media_type == "audio"
            return DownloadLink(
                url=resolved.url,
                video_id=request.video_id,
                quality=f"{DEFAULT_AUDIO_BITRATE}kbps" if is_audio else f"{DEFAULT_VIDEO_HEIGHT}p",
                type=request.media_type,
                container="mp3" if is_audio else "mp4",
                title=resolved.title or request.video_id,
                provider=provider.name,
                message=f"{message('download_fallback', request.locale)} ({provider.name})",
            )

        return call


def _bitrate_label(bitrate: float | None) -> int:
    if not bitrate:
        return DEFAULT_AUDIO_BITRATE
    return round(bitrate)


def _listing_from_info(info: MediaInfo) -> FormatListing:
    video_options: dict[str, FormatOption] = {}
    for item in info.formats:
        if not (item.has_video and item.has_audio) or not item.height:
            continue
        quality = f"{item.height}p"
        if quality not in video_options:
            video_options[quality] = FormatOption(
                quality=quality,
                container=item.container,
                size=format_file_size(item.file_size),
                format_id=item.format_id,
            )

    audio_options: dict[str, FormatOption] = {}
    for item in info.formats:
        if not item.has_audio or item.has_video:
            continue
        quality = f"{_bitrate_label(item.audio_bitrate)}kbps"
        if quality not in audio_options:
            audio_options[quality] = FormatOption(
                quality=quality,
                container=item.container,
                size=format_file_size(item.file_size),
                format_id=item.format_id,
            )

    return FormatListing(
        title=info.title or DEFAULT_FORMAT_LISTING.title,
        video_formats=tuple(
            sorted(video_options.values(), key=lambda option: -parse_target(option.quality, 0))
        ),
        audio_formats=tuple(
            sorted(audio_options.values(), key=lambda option: -parse_target(option.quality, 0))
        )[:MAX_AUDIO_FORMATS],
        duration_seconds=info.duration_seconds,
        thumbnail=info.thumbnail,
    )
