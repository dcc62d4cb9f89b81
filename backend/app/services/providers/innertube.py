from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from backend.app.models.content import (
    DEFAULT_DURATION,
    DEFAULT_VIEWS,
    UNKNOWN_TEXT,
    ProviderSearchResult,
    RelatedVideo,
    SearchLocale,
    VideoDetail,
    VideoSummary,
    default_thumbnail,
    embed_url,
)
from backend.app.services.errors import NotFoundError, ProviderError
from backend.app.services.providers.http import (
    as_dict,
    as_int,
    as_list,
    as_text,
    fetch_json_ok,
    format_count,
    format_seconds,
)

LOGGER = logging.getLogger("tube_guard.providers.innertube")

# Search filter "type: video".
VIDEO_ONLY_SEARCH_PARAMS = "EgIQAQ=="
NOT_FOUND_PLAYABILITY_STATUSES: frozenset[str] = frozenset({"ERROR"})


class InnerTubeProvider:
    """YouTube's internal web API. The only search provider that issues continuation tokens."""

    name = "innertube"

    def __init__(
        self,
        *,
        base_url: str,
        client_version: str,
        timeout_seconds: float,
        suggest_url: str | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client_version = client_version
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._suggest_url = suggest_url

    def search(self, query: str, locale: SearchLocale) -> ProviderSearchResult:
        payload = self._post(
            "search",
            {"query": query, "params": VIDEO_ONLY_SEARCH_PARAMS},
            locale,
        )
        return parse_search_payload(payload)

    def continue_search(self, token: str, locale: SearchLocale) -> ProviderSearchResult:
        payload = self._post("search", {"continuation": token}, locale)
        return parse_search_payload(payload)

    def get_video(self, video_id: str) -> VideoDetail:
        locale = SearchLocale()
        player = self._post("player", {"videoId": video_id}, locale)
        _raise_for_playability(video_id, player)

        watch_next: dict[str, Any] = {}
        try:
            watch_next = self._post("next", {"videoId": video_id}, locale)
        except ProviderError:
            LOGGER.warning("innertube next_failed video_id=%s", video_id, exc_info=True)
        return parse_video_detail(video_id, player, watch_next)

    def suggestions(self, query: str, locale: SearchLocale) -> list[str]:
        if self._suggest_url is None:
            return []
        params = {"client": "firefox", "ds": "yt", "q": query}
        if locale.language:
            params["hl"] = locale.language
        if locale.region:
            params["gl"] = locale.region
        body = as_list(
            fetch_json_ok(self._suggest_url, timeout_seconds=self._timeout_seconds, params=params)
        )
        raw_suggestions = body[1] if len(body) > 1 else []
        return [item for item in as_list(raw_suggestions) if isinstance(item, str) and item.strip()]

    def _post(self, endpoint: str, body: dict[str, Any], locale: SearchLocale) -> dict[str, Any]:
        request_body = {"context": self._context(locale), **body}
        payload = fetch_json_ok(
            f"{self._base_url}/{endpoint}",
            timeout_seconds=self._timeout_seconds,
            params={"prettyPrint": "false"},
            json_body=request_body,
            headers={
                "x-youtube-client-name": "1",
                "x-youtube-client-version": self._client_version,
            },
        )
        parsed = as_dict(payload)
        if not parsed:
            raise ProviderError(f"innertube returned an empty payload endpoint={endpoint}")
        return parsed

    def _context(self, locale: SearchLocale) -> dict[str, Any]:
        return {
            "client": {
                "clientName": "WEB",
                "clientVersion": self._client_version,
                "hl": locale.language or "en",
                "gl": locale.region or "US",
            }
        }


def parse_search_payload(payload: dict[str, Any]) -> ProviderSearchResult:
    videos: list[VideoSummary] = []
    continuation: str | None = None
    for key, renderer in _walk_renderers(payload, ("videoRenderer", "continuationItemRenderer")):
        if key == "videoRenderer":
            video = _video_renderer_to_summary(renderer)
            if video is not None:
                videos.append(video)
            continue
        token = as_text(
            as_dict(
                as_dict(renderer.get("continuationEndpoint")).get("continuationCommand")
            ).get("token")
        )
        if token:
            continuation = token
    return ProviderSearchResult(
        videos=tuple(videos),
        continuation=continuation,
        supports_continuation=True,
    )


def parse_video_detail(
    video_id: str,
    player: dict[str, Any],
    watch_next: dict[str, Any],
) -> VideoDetail:
    details = as_dict(player.get("videoDetails"))
    microformat = as_dict(as_dict(player.get("microformat")).get("playerMicroformatRenderer"))
    resolved_id = as_text(details.get("videoId"), video_id)

    owner: dict[str, Any] = {}
    primary: dict[str, Any] = {}
    likes = ""
    related: list[RelatedVideo] = []
    for key, renderer in _walk_renderers(
        watch_next,
        (
            "videoOwnerRenderer",
            "videoPrimaryInfoRenderer",
            "compactVideoRenderer",
            "buttonViewModel",
        ),
    ):
        if key == "videoOwnerRenderer" and not owner:
            owner = renderer
        elif key == "videoPrimaryInfoRenderer" and not primary:
            primary = renderer
        elif key == "compactVideoRenderer":
            related_video = _compact_renderer_to_related(renderer)
            if related_video is not None:
                related.append(related_video)
        elif key == "buttonViewModel" and not likes:
            if as_text(renderer.get("iconName")) == "LIKE":
                likes = as_text(renderer.get("title"))

    keywords = tuple(
        keyword for keyword in as_list(details.get("keywords")) if isinstance(keyword, str)
    )
    return VideoDetail(
        id=resolved_id,
        title=as_text(details.get("title")),
        description=as_text(details.get("shortDescription")),
        thumbnail=_last_thumbnail(details.get("thumbnail")) or default_thumbnail(resolved_id),
        duration=format_seconds(as_int(details.get("lengthSeconds"))),
        views=format_count(details.get("viewCount")),
        likes=likes or "0",
        uploaded_at=as_text(microformat.get("publishDate"))
        or _runs_text(primary.get("dateText"))
        or UNKNOWN_TEXT,
        channel_name=as_text(details.get("author"), UNKNOWN_TEXT),
        channel_avatar=_first_thumbnail(owner.get("thumbnail")),
        channel_id=as_text(details.get("channelId")),
        channel_subscribers=_runs_text(owner.get("subscriberCountText")) or UNKNOWN_TEXT,
        is_verified=_has_verified_badge(owner.get("badges")),
        keywords=keywords,
        related_videos=tuple(related),
        embed_url=embed_url(resolved_id),
    )


def _raise_for_playability(video_id: str, player: dict[str, Any]) -> None:
    playability = as_dict(player.get("playabilityStatus"))
    status = as_text(playability.get("status"), "OK").upper()
    if status == "OK":
        return
    reason = as_text(playability.get("reason"), status)
    if status in NOT_FOUND_PLAYABILITY_STATUSES:
        raise NotFoundError(f"{reason} video_id={video_id}")
    raise ProviderError(f"{reason} video_id={video_id}")


def _walk_renderers(
    node: Any,
    keys: tuple[str, ...],
) -> Iterator[tuple[str, dict[str, Any]]]:
    """Yield `(key, renderer)` pairs in document order, depth first."""
    stack: list[Any] = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            current_dict = as_dict(current)
            children: list[Any] = []
            for key, value in current_dict.items():
                if key in keys and isinstance(value, dict):
                    children.append((key, as_dict(value)))
                if isinstance(value, dict | list):
                    children.append(value)
            stack.extend(reversed(children))
        elif isinstance(current, tuple):
            yield current
        elif isinstance(current, list):
            stack.extend(reversed(as_list(current)))


def _video_renderer_to_summary(renderer: dict[str, Any]) -> VideoSummary | None:
    video_id = as_text(renderer.get("videoId"))
    if not video_id:
        return None

    owner_runs = as_list(as_dict(renderer.get("ownerText")).get("runs"))
    owner_run = as_dict(owner_runs[0]) if owner_runs else {}
    channel_id = as_text(
        as_dict(as_dict(owner_run.get("navigationEndpoint")).get("browseEndpoint")).get(
            "browseId"
        )
    )
    snippets = as_list(renderer.get("detailedMetadataSnippets"))
    description = (
        _runs_text(as_dict(snippets[0]).get("snippetText"))
        if snippets
        else _runs_text(renderer.get("descriptionSnippet"))
    )
    avatar_renderer = as_dict(
        as_dict(renderer.get("channelThumbnailSupportedRenderers")).get(
            "channelThumbnailWithLinkRenderer"
        )
    )
    return VideoSummary(
        id=video_id,
        title=_runs_text(renderer.get("title")),
        description=description,
        thumbnail=_first_thumbnail(renderer.get("thumbnail")) or default_thumbnail(video_id),
        duration=_runs_text(renderer.get("lengthText")) or DEFAULT_DURATION,
        views=_runs_text(renderer.get("viewCountText")) or DEFAULT_VIEWS,
        uploaded_at=_runs_text(renderer.get("publishedTimeText")) or UNKNOWN_TEXT,
        channel_name=as_text(owner_run.get("text"), UNKNOWN_TEXT),
        channel_avatar=_first_thumbnail(avatar_renderer.get("thumbnail")),
        channel_id=channel_id,
        is_verified=_has_verified_badge(renderer.get("ownerBadges")),
    )


def _compact_renderer_to_related(renderer: dict[str, Any]) -> RelatedVideo | None:
    video_id = as_text(renderer.get("videoId"))
    if not video_id:
        return None
    return RelatedVideo(
        id=video_id,
        title=_runs_text(renderer.get("title")),
        thumbnail=_first_thumbnail(renderer.get("thumbnail")) or default_thumbnail(video_id),
        duration=_runs_text(renderer.get("lengthText")) or DEFAULT_DURATION,
        views=_runs_text(renderer.get("viewCountText")) or DEFAULT_VIEWS,
        channel_name=_runs_text(renderer.get("longBylineText")) or UNKNOWN_TEXT,
    )


def _runs_text(raw_value: Any) -> str:
    text_node = as_dict(raw_value)
    simple = as_text(text_node.get("simpleText"))
    if simple:
        return simple
    parts = [as_text(as_dict(run).get("text")) for run in as_list(text_node.get("runs"))]
    return "".join(parts).strip()


def _first_thumbnail(raw_value: Any) -> str:
    thumbnails = as_list(as_dict(raw_value).get("thumbnails"))
    if not thumbnails:
        return ""
    return as_text(as_dict(thumbnails[0]).get("url"))


def _last_thumbnail(raw_value: Any) -> str:
    thumbnails = as_list(as_dict(raw_value).get("thumbnails"))
    if not thumbnails:
        return ""
    return as_text(as_dict(thumbnails[-1]).get("url"))


def _has_verified_badge(raw_badges: Any) -> bool:
    for badge in as_list(raw_badges):
        style = as_text(as_dict(as_dict(badge).get("metadataBadgeRenderer")).get("style"))
        if style in {"BADGE_STYLE_TYPE_VERIFIED", "BADGE_STYLE_TYPE_VERIFIED_ARTIST"}:
            return True
    return False
