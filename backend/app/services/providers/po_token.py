from __future__ import annotations

import logging

from backend.app.services.errors import ProviderError
from backend.app.services.providers.http import as_dict, as_text, fetch_json_ok

LOGGER = logging.getLogger("tube_guard.providers.po_token")


class PoTokenSource:
    """Fetches a proof-of-origin token from an external token service."""

    def __init__(self, *, url: str, timeout_seconds: float) -> None:
        self._url = url
        self._timeout_seconds = max(1.0, timeout_seconds)

    def fetch(self) -> str | None:
        try:
            payload = as_dict(fetch_json_ok(self._url, timeout_seconds=self._timeout_seconds))
        except ProviderError:
            LOGGER.warning("po token fetch_failed url=%s", self._url, exc_info=True)
            return None
        token = as_text(payload.get("poToken") or payload.get("po_token"))
        if not token:
            LOGGER.warning("po token missing_in_response url=%s", self._url)
            return None
        return token
