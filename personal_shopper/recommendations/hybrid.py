from __future__ import annotations

import math

from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .models import Signal


def alpha(interaction_count: int, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> float:
    """Weight of the collaborative signal; grows with history, stays in [alpha_min, alpha_max]."""
    n = max(0, interaction_count)
    grown = config.alpha_min + (config.alpha_max - config.alpha_min) * (1.0 - math.exp(-n / config.alpha_scale))
    return min(config.alpha_max, max(config.alpha_min, grown))


def combine(
    content_score: float,
    collaborative_score: float | Signal,
    interaction_count: int,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> float:
    if isinstance(collaborative_score, Signal):
        combined = content_score
    else:
        a = alpha(interaction_count, config)
        combined = a * collaborative_score + (1.0 - a) * content_score
    return min(1.0, max(0.0, combined))


def confidence_label(score: float) -> str:
    if score >= 0.8:
        return "high"
    if score >= 0.5:
        return "medium"
    return "low"


def order_key(product_id: str, combined_score: float) -> tuple[float, str]:
    """Sort key: higher combined score first, then ascending product id."""
    return (-combined_score, product_id)
