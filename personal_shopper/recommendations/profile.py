"""
Preference profile construction.

A profile is a weighted vector over four dimension groups, keyed as
``category:<name>``, ``brand:<name>``, ``style:<tag>`` and
``price:<bucket>``. Explicit preferences seed it with a fixed base weight;
every interaction up to ``as_of`` adds ``type_weight * 2 ** (-age / half_life)``
to each dimension of the product it touched. Dismissals carry a negative
type weight and pull those dimensions down.

Price is kept as a distribution over buckets so that users with several
price modes (budget and luxury, say) keep all of them.
"""
from __future__ import annotations

import bisect
import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .models import Interaction, Product, User, as_utc

logger = logging.getLogger(__name__)

DIMENSION_GROUPS = ("category", "brand", "style", "price")
_GROUP_RANK = {g: i for i, g in enumerate(DIMENSION_GROUPS)}

_LN2 = math.log(2.0)


@dataclass(frozen=True)
class PreferenceProfile:
    user_id: str
    as_of: datetime
    weights: tuple[tuple[str, float], ...] = ()
    interaction_count: int = 0
    explicit_only: bool = True
    _lookup: dict[str, float] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_lookup", dict(self.weights))

    def weight(self, dimension: str) -> float:
        return self._lookup.get(dimension, 0.0)

    def positive(self, group: str) -> set[str]:
        """Dimension keys of *group* carrying a positive weight."""
        prefix = f"{group}:"
        return {k for k, w in self.weights if k.startswith(prefix) and w > 0}

    @property
    def is_empty(self) -> bool:
        return not any(w != 0 for _, w in self.weights)


def dimension_sort_key(dimension: str) -> tuple[int, str]:
    group, _, name = dimension.partition(":")
    return (_GROUP_RANK.get(group, len(DIMENSION_GROUPS)), name)


def _norm(value: str) -> str:
    return value.strip().lower()


def price_bucket(price: float, edges: tuple[float, ...]) -> int:
    """Index of the bucket holding *price*; bucket ``i`` is ``[edges[i-1], edges[i])``."""
    return bisect.bisect_right(edges, price)


def product_features(product: Product, edges: tuple[float, ...]) -> dict[str, float]:
    """One-hot feature map of a product over the profile dimension groups."""
    features = {
        f"category:{_norm(product.category)}": 1.0,
        f"brand:{_norm(product.brand)}": 1.0,
        f"price:{price_bucket(product.price, edges)}": 1.0,
    }
    for tag in product.style_tags:
        if tag.strip():
            features[f"style:{_norm(tag)}"] = 1.0
    return features


def _explicit_weights(user: User, config: EngineConfig) -> dict[str, float]:
    prefs = user.preferences
    base = config.explicit_weight
    weights: dict[str, float] = {}

    for category in sorted({_norm(c) for c in prefs.categories if c.strip()}):
        weights[f"category:{category}"] = base
    for brand in sorted({_norm(b) for b in prefs.brands if b.strip()}):
        weights[f"brand:{brand}"] = base
    for tag in sorted({_norm(t) for t in prefs.style_tags if t.strip()}):
        weights[f"style:{tag}"] = base

    if prefs.price_range is not None:
        edges = config.price_bucket_edges
        low = price_bucket(prefs.price_range.min, edges)
        high = price_bucket(prefs.price_range.max, edges)
        share = base / (high - low + 1)
        for bucket in range(low, high + 1):
            weights[f"price:{bucket}"] = share

    return weights


def decay(age_seconds: float, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> float:
    return math.exp(-_LN2 * age_seconds / config.half_life_seconds)


def interaction_weight(
    interaction: Interaction, as_of: datetime, config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> float:
    age = (as_of - interaction.timestamp).total_seconds()
    return config.type_weights.get(interaction.type.value, 0.0) * decay(age, config)


def ordered_history(
    interactions: Iterable[Interaction], as_of: datetime,
) -> list[Interaction]:
    """Interactions at or before *as_of*, in a total order independent of input order."""
    return sorted(
        (i for i in interactions if i.timestamp <= as_of),
        key=lambda i: (i.timestamp, i.product_id, i.type.value, i.idempotency_key),
    )


def build_profile(
    user: User,
    interactions: Iterable[Interaction],
    as_of: datetime,
    products: Mapping[str, Product],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> PreferenceProfile:
    as_of = as_utc(as_of)
    weights = _explicit_weights(user, config)

    history = ordered_history((i for i in interactions if i.user_id == user.id), as_of)
    used = 0
    for interaction in history:
        product = products.get(interaction.product_id)
        if product is None:
            logger.debug("Skipping interaction on unknown product %s", interaction.product_id)
            continue
        contribution = interaction_weight(interaction, as_of, config)
        for dimension in sorted(product_features(product, config.price_bucket_edges)):
            weights[dimension] = weights.get(dimension, 0.0) + contribution
        used += 1

    ordered = tuple(sorted(weights.items(), key=lambda kv: dimension_sort_key(kv[0])))
    return PreferenceProfile(
        user_id=user.id,
        as_of=as_of,
        weights=ordered,
        interaction_count=used,
        explicit_only=used == 0,
    )
