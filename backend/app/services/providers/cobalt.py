from __future__ import annotations

from backend.app.models.content import MediaType, ResolvedMedia, watch_url
from backend.app.services.errors import ProviderError
from backend.app.services.providers.http import as_dict, as_list, as_text, fetch_json_ok

_LINK_STATUSES: frozenset[str] = frozenset({"tunnel", "redirect", "stream"})


class CobaltProvider:
    name = "cobalt"

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float,
        api_key: str | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._api_key = api_key

    def resolve(self, video_id: str, media_type: MediaType, quality: str) -> ResolvedMedia:
        body: dict[str, str] = {"url": watch_url(video_id)}
        if media_type == "audio":
            body["downloadMode"] = "audio"
            body["audioFormat"] = "mp3"
            body["audioBitrate"] = quality or "128"
        else:
            body["downloadMode"] = "auto"
            body["videoQuality"] = quality or "720"

        headers: dict[str, str] = {}
        if self._api_key:
            headers["authorization"] = f"Api-Key {self._api_key}"

        payload = as_dict(
            fetch_json_ok(
                f"{self._base_url}/",
                timeout_seconds=self._timeout_seconds,
                json_body=body,
                headers=headers,
            )
        )
        status = as_text(payload.get("status"))
        if status in _LINK_STATUSES:
            url = as_text(payload.get("url"))
            if url:
                return ResolvedMedia(url=url, title=as_text(payload.get("filename")))
        if status == "picker":
            for item in as_list(payload.get("picker")):
                url = as_text(as_dict(item).get("url"))
                if url:
                    return ResolvedMedia(url=url)
        if status == "error":
            code = as_text(as_dict(payload.get("error")).get("code"), "unknown")
            raise ProviderError(f"cobalt error code={code} video_id={video_id}")
        raise ProviderError(f"cobalt returned no link status={status or '-'} video_id={video_id}")
