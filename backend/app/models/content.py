from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

MediaType = Literal["audio", "video"]

UNKNOWN_TEXT = "غير معروف"
DEFAULT_DURATION = "0:00"
DEFAULT_VIEWS = "0"


def default_thumbnail(video_id: str) -> str:
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


def embed_url(video_id: str) -> str:
    return f"https://www.youtube-nocookie.com/embed/{video_id}"


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


@dataclass(frozen=True)
class VideoSummary:
    id: str
    title: str = ""
    description: str = ""
    thumbnail: str = ""
    duration: str = DEFAULT_DURATION
    views: str = DEFAULT_VIEWS
    uploaded_at: str = UNKNOWN_TEXT
    channel_name: str = UNKNOWN_TEXT
    channel_avatar: str = ""
    channel_id: str = ""
    is_verified: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "thumbnail": self.thumbnail,
            "duration": self.duration,
            "views": self.views,
            "uploadedAt": self.uploaded_at,
            "channelName": self.channel_name,
            "channelAvatar": self.channel_avatar,
            "channelId": self.channel_id,
            "isVerified": self.is_verified,
            "url": watch_url(self.id),
        }


@dataclass(frozen=True)
class RelatedVideo:
    id: str
    title: str = ""
    thumbnail: str = ""
    duration: str = DEFAULT_DURATION
    views: str = DEFAULT_VIEWS
    channel_name: str = UNKNOWN_TEXT

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "thumbnail": self.thumbnail,
            "duration": self.duration,
            "views": self.views,
            "channelName": self.channel_name,
        }


@dataclass(frozen=True)
class VideoComment:
    author_name: str = UNKNOWN_TEXT
    author_avatar: str = ""
    text: str = ""
    published: str = ""
    likes: str = "0"

    def to_payload(self) -> dict[str, Any]:
        return {
            "authorName": self.author_name,
            "authorAvatar": self.author_avatar,
            "text": self.text,
            "published": self.published,
            "likes": self.likes,
        }


@dataclass(frozen=True)
class VideoDetail:
    id: str
    title: str = ""
    description: str = ""
    thumbnail: str = ""
    duration: str = DEFAULT_DURATION
    views: str = DEFAULT_VIEWS
    likes: str = "0"
    uploaded_at: str = UNKNOWN_TEXT
    channel_name: str = UNKNOWN_TEXT
    channel_avatar: str = ""
    channel_id: str = ""
    channel_subscribers: str = UNKNOWN_TEXT
    is_verified: bool = False
    keywords: tuple[str, ...] = ()
    related_videos: tuple[RelatedVideo, ...] = ()
    comments: tuple[VideoComment, ...] = ()
    embed_url: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "thumbnail": self.thumbnail,
            "duration": self.duration,
            "views": self.views,
            "likes": self.likes,
            "uploadDate": self.uploaded_at,
            "channelName": self.channel_name,
            "channelAvatar": self.channel_avatar,
            "channelId": self.channel_id,
            "channelSubscribers": self.channel_subscribers,
            "isVerified": self.is_verified,
            "keywords": list(self.keywords),
            "embedUrl": self.embed_url,
            "relatedVideos": [video.to_payload() for video in self.related_videos],
            "comments": [comment.to_payload() for comment in self.comments],
        }


@dataclass(frozen=True)
class MediaFormat:
    format_id: str
    url: str | None
    container: str
    height: int | None = None
    audio_bitrate: float | None = None
    has_video: bool = False
    has_audio: bool = False
    file_size: int | None = None


@dataclass(frozen=True)
class MediaInfo:
    video_id: str
    title: str
    formats: tuple[MediaFormat, ...] = ()
    duration_seconds: int | None = None
    thumbnail: str | None = None


@dataclass(frozen=True)
class DownloadLink:
    url: str
    video_id: str
    quality: str
    type: MediaType
    container: str
    title: str
    provider: str
    message: str
    file_size: str = UNKNOWN_TEXT

    def to_payload(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "videoId": self.video_id,
            "quality": self.quality,
            "type": self.type,
            "container": self.container,
            "fileSize": self.file_size,
            "title": self.title,
            "message": self.message,
        }


@dataclass(frozen=True)
class SearchLocale:
    region: str | None = None
    language: str | None = None


@dataclass(frozen=True)
class ProviderSearchResult:
    """One provider's answer to a search or continuation call."""

    videos: tuple[VideoSummary, ...]
    continuation: str | None = None
    supports_continuation: bool = False

    def __bool__(self) -> bool:
        return bool(self.videos)


@dataclass(frozen=True)
class ResolvedMedia:
    """A direct media URL from a fallback download provider."""

    url: str
    title: str = ""
