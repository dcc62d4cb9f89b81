from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, cast
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from backend.app.services.errors import NotFoundError, ProviderError

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0 Safari/537.36"
)


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    body: Any

    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def fetch_json(
    url: str,
    *,
    timeout_seconds: float,
    params: dict[str, str] | None = None,
    json_body: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    method: str | None = None,
) -> HttpResponse:
    query = urlencode(params or {})
    request_url = f"{url}?{query}" if query else url
    request_headers = {
        "accept": "application/json",
        "user-agent": USER_AGENT,
        **(headers or {}),
    }
    data: bytes | None = None
    if json_body is not None:
        data = json.dumps(json_body).encode("utf-8")
        request_headers["content-type"] = "application/json"

    request = Request(
        request_url,
        data=data,
        headers=request_headers,
        method=method or ("POST" if data is not None else "GET"),
    )

    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            status_code = int(response.getcode() or 0)
            raw_body = response.read().decode("utf-8", errors="replace")
    except HTTPError as exc:
        status_code = int(exc.code)
        raw_body = exc.read().decode("utf-8", errors="replace")
    except (URLError, TimeoutError, OSError) as exc:
        raise ProviderError(f"request failed url={url}: {exc}") from exc

    return HttpResponse(status_code=status_code, body=_parse_json(raw_body))


def fetch_json_ok(url: str, **kwargs: Any) -> Any:
    """`fetch_json` that raises on non-2xx; 404 maps to `NotFoundError`."""
    response = fetch_json(url, **kwargs)
    if response.status_code == 404:
        raise NotFoundError(f"not found url={url}")
    if not response.ok():
        detail = _error_detail(response.body)
        raise ProviderError(f"http status={response.status_code} url={url} {detail}".strip())
    return response.body


def _parse_json(raw_body: str) -> Any:
    if not raw_body.strip():
        return None
    try:
        return json.loads(raw_body)
    except json.JSONDecodeError:
        return None


def _error_detail(body: Any) -> str:
    payload = as_dict(body)
    for key in ("error", "message", "detail"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        nested = as_dict(value)
        nested_message = nested.get("message") or nested.get("code")
        if isinstance(nested_message, str) and nested_message.strip():
            return nested_message.strip()
    return ""


def as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        converted: dict[str, Any] = {}
        for key, item in raw_dict.items():
            if isinstance(key, str):
                converted[key] = item
        return converted
    return {}


def as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return list(cast(list[Any], value))
    return []


def as_text(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else default
    if isinstance(value, bool):
        return default
    if isinstance(value, int | float):
        return str(value)
    return default


def as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip().replace(",", ""))
        except ValueError:
            return None
    return None


def format_seconds(total_seconds: int | None) -> str:
    if total_seconds is None or total_seconds <= 0:
        return "0:00"
    hours, remainder = divmod(int(total_seconds), 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def format_count(value: Any, default: str = "0") -> str:
    count = as_int(value)
    if count is None:
        return as_text(value, default)
    return f"{count:,}"
