from __future__ import annotations

from collections.abc import Iterable

DEFAULT_LOCALE = "ar"

# Substring of a provider's raw error text -> message key. Checked in order.
PROVIDER_ERROR_KEYS: tuple[tuple[str, str], ...] = (
    ("sign in to confirm your age", "age_restricted"),
    ("sign in to confirm", "sign_in_required"),
    ("private video", "private_video"),
    ("video is unavailable", "region_unavailable"),
    ("video unavailable", "video_unavailable"),
    ("this video is not available", "not_available"),
)

MESSAGES: dict[str, dict[str, str]] = {
    "ar": {
        "video_unavailable": "الفيديو غير متاح أو تم حذفه",
        "private_video": "هذا الفيديو خاص",
        "sign_in_required": "هذا الفيديو يتطلب تسجيل الدخول",
        "age_restricted": "هذا الفيديو يتطلب تسجيل الدخول للتحقق من العمر",
        "region_unavailable": "الفيديو غير متاح في منطقتك",
        "not_available": "هذا الفيديو غير متاح",
        "detail_default": "حدث خطأ أثناء جلب معلومات الفيديو. يرجى المحاولة لاحقاً.",
        "video_not_found": "الفيديو غير موجود. قد يكون محذوفاً أو خاصاً.",
        "invalid_video_id": "معرف الفيديو غير صالح",
        "video_id_required": "معرف الفيديو مطلوب",
        "content_blocked": "المحتوى غير مسموح به",
        "search_query_required": "يرجى إدخال كلمة للبحث",
        "search_failed": "حدث خطأ أثناء البحث. يرجى المحاولة لاحقاً.",
        "invalid_token": "رمز الصفحة التالية غير صالح",
        "download_failed": "فشلت جميع طرق التحميل. يرجى المحاولة لاحقاً.",
        "download_success": "تم إنشاء رابط التحميل بنجاح",
        "download_fallback": "تم التحميل عبر مزود بديل",
        "pin_invalid": "الرمز السري غير صحيح",
        "pin_current_invalid": "الرمز السري الحالي غير صحيح",
        "pin_exists": "الرمز السري موجود بالفعل",
        "pin_format": "يجب أن يتكون الرمز السري من 4 إلى 12 رقماً",
        "invalid_action": "إجراء غير صالح",
        "missing_fields": "يرجى ملء جميع الحقول المطلوبة",
        "unknown_category": "فئة غير معروفة",
        "generic_error": "حدث خطأ ما",
    },
    "en": {
        "video_unavailable": "The video is unavailable or was removed.",
        "private_video": "This video is private.",
        "sign_in_required": "This video requires signing in.",
        "age_restricted": "This video requires signing in to confirm your age.",
        "region_unavailable": "The video is not available in your region.",
        "not_available": "This video is not available.",
        "detail_default": "Something went wrong while loading the video. Please try again later.",
        "video_not_found": "Video not found. It may have been removed or made private.",
        "invalid_video_id": "Invalid video id.",
        "video_id_required": "A video id is required.",
        "content_blocked": "This content is not allowed.",
        "search_query_required": "Please enter a search term.",
        "search_failed": "Something went wrong while searching. Please try again later.",
        "invalid_token": "The next-page token is invalid.",
        "download_failed": "Every download method failed. Please try again later.",
        "download_success": "Download link created successfully.",
        "download_fallback": "Download link created through a fallback provider.",
        "pin_invalid": "Incorrect PIN.",
        "pin_current_invalid": "The current PIN is incorrect.",
        "pin_exists": "A PIN is already set.",
        "pin_format": "The PIN must be 4 to 12 digits.",
        "invalid_action": "Invalid action.",
        "missing_fields": "Please fill in all required fields.",
        "unknown_category": "Unknown category.",
        "generic_error": "Something went wrong.",
    },
}


def resolve_locale(raw_locale: str | None, *, default: str = DEFAULT_LOCALE) -> str:
    """Pick a supported locale from an `Accept-Language`-style value."""
    if raw_locale:
        for part in raw_locale.split(","):
            tag = part.split(";")[0].strip().lower()
            primary = tag.split("-")[0]
            if primary in MESSAGES:
                return primary
    return default if default in MESSAGES else DEFAULT_LOCALE


def message(key: str, locale: str = DEFAULT_LOCALE) -> str:
    catalog = MESSAGES.get(locale) or MESSAGES[DEFAULT_LOCALE]
    return catalog.get(key) or MESSAGES[DEFAULT_LOCALE].get(key) or catalog["generic_error"]


def message_for_provider_errors(
    raw_errors: Iterable[str],
    *,
    locale: str = DEFAULT_LOCALE,
    default_key: str = "detail_default",
) -> str:
    """Map raw provider error text to a localized message, never echoing the raw text."""
    for raw_error in raw_errors:
        normalized = raw_error.lower()
        for marker, key in PROVIDER_ERROR_KEYS:
            if marker in normalized:
                return message(key, locale)
    return message(default_key, locale)
