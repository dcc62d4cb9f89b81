from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Category:
    id: str
    label: str
    # Terms appended to queries when diversifying a search.
    search_terms: tuple[str, ...]
    # Additional terms that only take part in category inference.
    extra_match_terms: tuple[str, ...] = ()

    @property
    def match_terms(self) -> tuple[str, ...]:
        return self.search_terms + self.extra_match_terms


# Declared order breaks ties during category inference.
CATEGORIES: tuple[Category, ...] = (
    Category(
        id="education",
        label="تعليم",
        search_terms=("تعليم", "شرح", "درس", "كورس", "تعلم", "دورة تدريبية", "محاضرات"),
        extra_match_terms=("tutorial", "lesson", "lecture", "course", "explained"),
    ),
    Category(
        id="quran",
        label="القرآن الكريم",
        search_terms=(
            "قرآن",
            "تلاوة خاشعة",
            "تجويد",
            "سورة كاملة",
            "المصحف المرتل",
            "القرآن الكريم",
        ),
        extra_match_terms=("quran", "recitation", "tajweed"),
    ),
    Category(
        id="programming",
        label="برمجة",
        search_terms=(
            "برمجة",
            "تعلم البرمجة",
            "كورس برمجة",
            "تطوير الويب",
            "جافا سكريبت",
            "بايثون",
        ),
        extra_match_terms=("programming", "coding", "python", "javascript", "web development"),
    ),
    Category(
        id="science",
        label="علوم",
        search_terms=("علوم", "وثائقي علمي", "ناشيونال جيوغرافيك", "حقائق علمية", "تجربة علمية"),
        extra_match_terms=("science", "physics", "chemistry", "biology", "experiment"),
    ),
    Category(
        id="documentary",
        label="وثائقيات",
        search_terms=("وثائقي", "فيلم وثائقي", "قصة حقيقية", "تاريخي وثائقي", "أسرار العالم"),
        extra_match_terms=("documentary",),
    ),
    Category(
        id="kids",
        label="أطفال",
        search_terms=("أطفال", "تعليم أطفال", "أناشيد أطفال", "قصص للأطفال", "كرتون تعليمي"),
        extra_match_terms=("kids", "children", "nursery rhymes"),
    ),
    Category(
        id="language",
        label="لغات",
        search_terms=(
            "تعلم اللغة",
            "تعلم الإنجليزية",
            "محادثة إنجليزية",
            "قواعد اللغة",
            "نطق صحيح",
        ),
        extra_match_terms=("grammar", "pronunciation", "vocabulary"),
    ),
    Category(
        id="history",
        label="تاريخ",
        search_terms=("تاريخ", "وثائقي تاريخي", "حضارات قديمة", "ملوك وأباطرة", "قصص من التاريخ"),
        extra_match_terms=("history", "ancient civilizations"),
    ),
    Category(
        id="health",
        label="صحة",
        search_terms=("صحة", "طب", "تمارين رياضية", "نظام غذائي", "فوائد صحية", "علاج طبيعي"),
        extra_match_terms=("health", "workout", "nutrition", "medicine"),
    ),
    Category(
        id="mathematics",
        label="رياضيات",
        search_terms=("رياضيات", "حساب", "جبر", "هندسة", "شرح رياضيات", "مسائل رياضية"),
        extra_match_terms=("math", "mathematics", "algebra", "geometry", "calculus"),
    ),
    Category(
        id="business",
        label="أعمال",
        search_terms=("أعمال", "تسويق", "ريادة أعمال", "إدارة مشاريع", "نصائح تجارية", "اقتصاد"),
        extra_match_terms=("business", "marketing", "entrepreneurship", "economics"),
    ),
    Category(
        id="cooking",
        label="طبخ",
        search_terms=("طبخ", "وصفات طعام", "مطبخ عربي", "حلويات", "أكلات سريعة", "طريقة عمل"),
        extra_match_terms=("cooking", "recipe", "recipes"),
    ),
    Category(
        id="crafts",
        label="حرف يدوية",
        search_terms=("حرف يدوية", "diy", "فنون", "رسم", "تصميم", "أفكار إبداعية"),
        extra_match_terms=("crafts", "drawing", "handmade"),
    ),
    Category(
        id="nature",
        label="طبيعة",
        search_terms=("طبيعة", "حيوانات", "وثائقي طبيعة", "جمال الطبيعة", "عالم الحيوان"),
        extra_match_terms=("nature", "wildlife", "animals"),
    ),
    Category(
        id="tech",
        label="تقنية",
        search_terms=(
            "تقنية",
            "مراجعة هواتف",
            "كمبيوتر",
            "تكنولوجيا",
            "أحدث الاختراعات",
            "برامج",
        ),
        extra_match_terms=("technology", "tech review", "smartphone", "computer"),
    ),
    Category(
        id="ai",
        label="ذكاء اصطناعي",
        search_terms=("ذكاء اصطناعي", "ai", "مستقبل التقنية", "روبوتات", "شات جي بي تي"),
        extra_match_terms=("artificial intelligence", "machine learning", "chatgpt", "robots"),
    ),
)

MIN_SUBSTRING_TERM_LENGTH = 3

CATEGORY_IDS: tuple[str, ...] = tuple(category.id for category in CATEGORIES)
CATEGORIES_BY_ID: dict[str, Category] = {category.id: category for category in CATEGORIES}


def get_category(category_id: str) -> Category | None:
    return CATEGORIES_BY_ID.get(category_id)


def term_matches(term: str, folded_text: str) -> bool:
    """ASCII and very short terms match whole words; other terms match as substrings."""
    if term.isascii() or len(term) < MIN_SUBSTRING_TERM_LENGTH:
        return _whole_word_pattern(term).search(folded_text) is not None
    return term.casefold() in folded_text


def infer_category(*texts: str) -> str | None:
    """First category, in declared order, with at least one term in `texts`."""
    folded_text = "\n".join(text for text in texts if text).casefold()
    if not folded_text.strip():
        return None
    for category in CATEGORIES:
        if any(term_matches(term, folded_text) for term in category.match_terms):
            return category.id
    return None


@lru_cache(maxsize=256)
def _whole_word_pattern(term: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(term.casefold())}(?!\w)")
