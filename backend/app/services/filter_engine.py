from __future__ import annotations

from collections.abc import Sequence

from backend.app.models.content import VideoDetail, VideoSummary
from backend.app.models.filter_policy import FilterConfig, FilterDecision
from backend.app.services.categories import infer_category

REASON_FILTER_DISABLED = "filter disabled"
REASON_WHITELISTED = "whitelisted"
REASON_DEFAULT_ALLOW = "default allow"
REASON_NO_CATEGORY = "no allowed category matched"


class FilterEngine:
    """
    Allow/deny decisions over one immutable policy snapshot.

    Rules, first match wins:
    1. filtering disabled -> allow
    2. the item, or its channel, is whitelisted -> allow
    3. a blocked keyword appears in title or description -> deny
    4. default-deny or restricted mode -> allow only when the inferred category is allowed
    5. otherwise -> allow
    """

    def __init__(self, config: FilterConfig) -> None:
        self._config = config
        self._folded_keywords = tuple(
            (keyword, keyword.casefold()) for keyword in config.blocked_keywords
        )

    @property
    def config(self) -> FilterConfig:
        return self._config

    def decide(
        self,
        content_id: str,
        content_type: str,
        *,
        title: str = "",
        description: str = "",
        keywords: Sequence[str] = (),
        channel_id: str = "",
        restricted: bool = False,
    ) -> FilterDecision:
        config = self._config
        if not config.enabled:
            return FilterDecision(allowed=True, reason=REASON_FILTER_DISABLED)

        if config.is_whitelisted(content_id, content_type) or (
            channel_id and config.is_whitelisted(channel_id, "channel")
        ):
            return FilterDecision(allowed=True, reason=REASON_WHITELISTED)

        folded_title = title.casefold()
        folded_description = description.casefold()
        for keyword, folded_keyword in self._folded_keywords:
            if folded_keyword in folded_title or folded_keyword in folded_description:
                return FilterDecision(allowed=False, reason=f"blocked keyword: {keyword}")

        if config.default_deny or restricted:
            category = infer_category(title, description, *keywords)
            if category is not None and category in config.allowed_categories:
                return FilterDecision(allowed=True, reason=f"category: {category}")
            return FilterDecision(allowed=False, reason=REASON_NO_CATEGORY)

        return FilterDecision(allowed=True, reason=REASON_DEFAULT_ALLOW)

    def decide_video(
        self,
        video: VideoSummary | VideoDetail,
        *,
        restricted: bool = False,
    ) -> FilterDecision:
        keywords = video.keywords if isinstance(video, VideoDetail) else ()
        return self.decide(
            video.id,
            "video",
            title=video.title,
            description=video.description,
            keywords=keywords,
            channel_id=video.channel_id,
            restricted=restricted,
        )
