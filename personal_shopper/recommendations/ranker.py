from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable

from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .hybrid import order_key
from .models import ScoredCandidate


def diversity_cap(count: int, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> int:
    return max(1, math.ceil(count / config.diversity_divisor))


def rank(
    candidates: Iterable[ScoredCandidate],
    count: int,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> list[ScoredCandidate]:
    """Pick the top *count* candidates under the category/brand diversity cap.

    The greedy pass walks candidates best-first and skips any whose category
    or brand already holds ``cap`` picks. Skipped candidates backfill the
    list, in rank order, only when the capped list comes up short. The
    result is sorted by combined score with ties on ascending product id.
    """
    if count <= 0:
        return []

    unique: dict[str, ScoredCandidate] = {}
    for candidate in sorted(candidates, key=lambda c: order_key(c.product_id, c.combined_score)):
        unique.setdefault(candidate.product_id, candidate)
    ordered = list(unique.values())

    cap = diversity_cap(count, config)
    per_category: Counter[str] = Counter()
    per_brand: Counter[str] = Counter()
    picked: list[ScoredCandidate] = []
    skipped: list[ScoredCandidate] = []

    for candidate in ordered:
        if len(picked) >= count:
            break
        category = candidate.category.strip().lower()
        brand = candidate.brand.strip().lower()
        if per_category[category] >= cap or per_brand[brand] >= cap:
            skipped.append(candidate)
            continue
        per_category[category] += 1
        per_brand[brand] += 1
        picked.append(candidate)

    if len(picked) < count:
        picked.extend(skipped[: count - len(picked)])

    return sorted(picked, key=lambda c: order_key(c.product_id, c.combined_score))
