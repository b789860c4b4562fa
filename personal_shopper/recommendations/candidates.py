from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .models import Product
from .profile import PreferenceProfile, price_bucket

logger = logging.getLogger(__name__)

# Constraints are dropped in this order when the candidate pool is too thin.
WIDENING_ORDER = ("price", "brand", "category")


@dataclass(frozen=True)
class CandidateSet:
    products: tuple[Product, ...]
    stage: int
    min_size: int

    @property
    def widened(self) -> bool:
        return self.stage > 0

    @property
    def sparse(self) -> bool:
        return self.widened or len(self.products) < self.min_size


def _matches(
    product: Product,
    constraints: dict[str, set[str]],
    edges: tuple[float, ...],
) -> bool:
    if "category" in constraints and f"category:{product.category.strip().lower()}" not in constraints["category"]:
        return False
    if "brand" in constraints and f"brand:{product.brand.strip().lower()}" not in constraints["brand"]:
        return False
    if "price" in constraints and f"price:{price_bucket(product.price, edges)}" not in constraints["price"]:
        return False
    return True


def generate_candidates(
    profile: PreferenceProfile,
    catalog: Sequence[Product],
    min_size: int,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> CandidateSet:
    """Filter the catalog to products overlapping the profile, widening as needed.

    Only groups where the profile has a positive weight constrain the first
    pass. If fewer than *min_size* products survive, the price, brand and
    category constraints are dropped in turn; the last stage is the whole
    available catalog.
    """
    available = sorted((p for p in catalog if p.available), key=lambda p: p.id)

    constraints: dict[str, set[str]] = {}
    for group in ("category", "brand", "price"):
        keys = profile.positive(group)
        if keys:
            constraints[group] = keys

    stage = 0
    while True:
        selected = tuple(p for p in available if _matches(p, constraints, config.price_bucket_edges))
        if len(selected) >= min_size or not constraints:
            break
        # Drop the next constraint that is actually in force; each drop is one stage.
        for group in WIDENING_ORDER[stage:]:
            stage += 1
            if constraints.pop(group, None) is not None:
                break
        else:
            constraints.clear()

    if stage:
        logger.info(
            "Widened candidate filter to stage %d for user %s (%d candidates, wanted %d)",
            stage, profile.user_id, len(selected), min_size,
        )
    return CandidateSet(products=selected, stage=stage, min_size=min_size)
