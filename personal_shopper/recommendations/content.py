from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .models import Product
from .profile import PreferenceProfile, dimension_sort_key, product_features


def dimension_space(profile: PreferenceProfile, products: Sequence[Product], edges: tuple[float, ...]) -> list[str]:
    """Shared, fixed ordering of every dimension seen in the profile or products."""
    dims = {k for k, _ in profile.weights}
    for product in products:
        dims.update(product_features(product, edges))
    return sorted(dims, key=dimension_sort_key)


def _vectors(
    profile: PreferenceProfile, products: Sequence[Product], config: EngineConfig,
) -> tuple[np.ndarray, np.ndarray]:
    dims = dimension_space(profile, products, config.price_bucket_edges)
    index = {d: i for i, d in enumerate(dims)}

    user_vec = np.zeros((1, len(dims)), dtype=np.float64)
    for key, weight in profile.weights:
        user_vec[0, index[key]] = weight

    item_vecs = np.zeros((len(products), len(dims)), dtype=np.float64)
    for row, product in enumerate(products):
        for key, value in product_features(product, config.price_bucket_edges).items():
            item_vecs[row, index[key]] = value
    return user_vec, item_vecs


def score_candidates(
    profile: PreferenceProfile,
    products: Sequence[Product],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> dict[str, float]:
    """Cosine similarity of the profile against every product, clipped to [0, 1]."""
    if not products:
        return {}
    user_vec, item_vecs = _vectors(profile, products, config)

    # Zero-magnitude vectors score 0 rather than NaN
    if not np.any(user_vec):
        return {p.id: 0.0 for p in products}

    sims = cosine_similarity(user_vec, item_vecs).flatten()
    sims = np.clip(np.nan_to_num(sims, nan=0.0), 0.0, 1.0)
    return {p.id: float(s) for p, s in zip(products, sims)}


def score_content(
    profile: PreferenceProfile, product: Product, config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> float:
    return score_candidates(profile, [product], config)[product.id]
