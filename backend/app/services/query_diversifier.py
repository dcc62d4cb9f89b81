from __future__ import annotations

import random
from collections.abc import Iterable

from backend.app.services.categories import CATEGORY_IDS, get_category

DEFAULT_MAX_VARIANTS = 3
MAX_VARIANTS_CEILING = 3


class QueryDiversifier:
    """
    Biases a search toward allowed topics by appending category terms.

    `expand` returns the raw query first, followed by at most `max_variants`
    variants, each built from a different allowed category.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        max_variants: int = DEFAULT_MAX_VARIANTS,
    ) -> None:
        self._rng = rng if rng is not None else random.Random()
        self._max_variants = min(max(0, max_variants), MAX_VARIANTS_CEILING)

    def expand(self, query: str, allowed_categories: Iterable[str]) -> list[str]:
        queries = [query]
        # Stable candidate order for seeded generators.
        candidates = sorted(
            category_id for category_id in set(allowed_categories) if category_id in CATEGORY_IDS
        )
        selected = self._rng.sample(candidates, k=min(self._max_variants, len(candidates)))
        for category_id in selected:
            category = get_category(category_id)
            if category is None or not category.search_terms:
                continue
            variant = f"{query} {self._rng.choice(category.search_terms)}"
            if variant not in queries:
                queries.append(variant)
        return queries

    def pick(self, query: str, allowed_categories: Iterable[str]) -> str:
        return self._rng.choice(self.expand(query, allowed_categories))
