from __future__ import annotations

from backend.app.models.content import VideoDetail, VideoSummary
from backend.app.models.filter_policy import FilterConfig, WhitelistItem
from backend.app.services.categories import CATEGORY_IDS, infer_category, term_matches
from backend.app.services.filter_engine import FilterEngine


def _config(**overrides: object) -> FilterConfig:
    values: dict[str, object] = {
        "enabled": True,
        "default_deny": False,
        "allowed_categories": frozenset(CATEGORY_IDS),
    }
    values.update(overrides)
    return FilterConfig(**values)  # type: ignore[arg-type]


def test_disabled_filter_allows_everything() -> None:
    engine = FilterEngine(
        _config(enabled=False, default_deny=True, blocked_keywords=("music",))
    )

    decision = engine.decide("vid00001", "video", title="Music video")

    assert decision.allowed is True
    assert decision.reason == "filter disabled"


def test_default_allow_without_keyword_match() -> None:
    engine = FilterEngine(_config(blocked_keywords=("gaming",)))

    decision = engine.decide("vid00001", "video", title="Cooking at home", description="soup")

    assert decision.allowed is True
    assert decision.reason == "default allow"


def test_whitelist_wins_over_keywords_and_default_deny() -> None:
    engine = FilterEngine(
        _config(
            default_deny=True,
            allowed_categories=frozenset(),
            blocked_keywords=("blocked",),
            whitelist=(WhitelistItem(youtube_id="vid00001", type="video", title="Kept"),),
        )
    )

    decision = engine.decide("vid00001", "video", title="blocked words everywhere")

    assert decision.allowed is True
    assert decision.reason == "whitelisted"


def test_whitelist_is_scoped_by_content_type() -> None:
    engine = FilterEngine(
        _config(
            default_deny=True,
            allowed_categories=frozenset(),
            whitelist=(WhitelistItem(youtube_id="abc12345", type="playlist", title="List"),),
        )
    )

    assert engine.decide("abc12345", "video", title="anything").allowed is False
    assert engine.decide("abc12345", "playlist", title="anything").allowed is True


def test_whitelisted_channel_allows_its_videos() -> None:
    engine = FilterEngine(
        _config(
            default_deny=True,
            allowed_categories=frozenset(),
            whitelist=(WhitelistItem(youtube_id="UCchannel1", type="channel", title="Chan"),),
        )
    )

    decision = engine.decide(
        "vid00001", "video", title="random vlog", channel_id="UCchannel1"
    )

    assert decision.allowed is True
    assert decision.reason == "whitelisted"


def test_blocked_keyword_is_case_insensitive_substring() -> None:
    engine = FilterEngine(_config(blocked_keywords=("Prank",)))

    in_title = engine.decide("vid00001", "video", title="Best PRANKS of the year")
    in_description = engine.decide(
        "vid00002", "video", title="Vlog", description="a harmless prank on friends"
    )

    assert in_title.allowed is False
    assert in_title.reason == "blocked keyword: Prank"
    assert in_description.allowed is False


def test_blocked_keyword_does_not_scan_tags() -> None:
    engine = FilterEngine(_config(blocked_keywords=("prank",)))

    decision = engine.decide("vid00001", "video", title="Vlog", keywords=("prank",))

    assert decision.allowed is True


def test_default_deny_programming_title_is_not_education() -> None:
    title = "دورة برمجة كاملة"

    education_only = FilterEngine(
        _config(default_deny=True, allowed_categories=frozenset({"education"}))
    )
    programming_only = FilterEngine(
        _config(default_deny=True, allowed_categories=frozenset({"programming"}))
    )

    denied = education_only.decide("vid00001", "video", title=title)
    allowed = programming_only.decide("vid00001", "video", title=title)

    assert denied.allowed is False
    assert denied.reason == "no allowed category matched"
    assert allowed.allowed is True
    assert allowed.reason == "category: programming"


def test_default_deny_denies_text_without_any_term() -> None:
    engine = FilterEngine(_config(default_deny=True))

    assert engine.decide("vid00001", "video", title="", description="").allowed is False
    assert engine.decide("vid00002", "video", title="zzzz qqqq").allowed is False


def test_restricted_mode_applies_category_gate_without_default_deny() -> None:
    engine = FilterEngine(_config(allowed_categories=frozenset({"science"})))

    relaxed = engine.decide("vid00001", "video", title="Python crash course")
    restricted = engine.decide(
        "vid00001", "video", title="Python crash course", restricted=True
    )

    assert relaxed.allowed is True
    assert restricted.allowed is False


def test_keywords_take_part_in_category_inference() -> None:
    engine = FilterEngine(
        _config(default_deny=True, allowed_categories=frozenset({"science"}))
    )
    video = VideoDetail(id="vid00001", title="Episode 4", keywords=("physics", "lab"))

    decision = engine.decide_video(video)

    assert decision.allowed is True
    assert decision.reason == "category: science"


def test_decide_video_uses_summary_fields() -> None:
    engine = FilterEngine(_config(blocked_keywords=("spoiler",)))
    video = VideoSummary(id="vid00001", title="Finale", description="Full spoiler review")

    assert engine.decide_video(video).allowed is False


def test_decisions_are_deterministic() -> None:
    config = _config(default_deny=True, allowed_categories=frozenset({"quran", "education"}))
    arguments = {
        "title": "تلاوة خاشعة لسورة الكهف",
        "description": "شرح مبسط",
        "keywords": ("quran",),
    }

    first = FilterEngine(config).decide("vid00001", "video", **arguments)  # type: ignore[arg-type]
    second = FilterEngine(config).decide("vid00001", "video", **arguments)  # type: ignore[arg-type]

    assert first == second


def test_infer_category_uses_declared_order_for_ties() -> None:
    # Matches both education ("tutorial") and programming ("python").
    assert infer_category("Python tutorial for beginners") == "education"


def test_ascii_terms_match_whole_words_only() -> None:
    assert term_matches("ai", "new ai tools") is True
    assert term_matches("ai", "training plan") is False


def test_short_arabic_terms_match_whole_words_only() -> None:
    assert term_matches("طب", "دروس طب بشري") is True
    assert term_matches("طب", "مطبخ عربي") is False
