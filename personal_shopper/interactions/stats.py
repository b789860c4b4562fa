from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any

from ..recommendations.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from ..recommendations.models import Interaction, InteractionType


def compute_interaction_stats(interactions: Iterable[Interaction]) -> dict[str, Any]:
    """Per-user activity summary: counts per type, unique products, conversion."""
    records = list(interactions)
    by_type = Counter(i.type.value for i in records)
    views = by_type.get(InteractionType.view.value, 0)
    purchases = by_type.get(InteractionType.purchase.value, 0)

    return {
        "total": len(records),
        "views": views,
        "likes": by_type.get(InteractionType.like.value, 0),
        "purchases": purchases,
        "dismissals": by_type.get(InteractionType.dismiss.value, 0),
        "unique_products": len({i.product_id for i in records}),
        "active_days": len({i.timestamp.date() for i in records}),
        "conversion_rate": round(purchases / views * 100, 1) if views else 0.0,
    }


def popular_products(
    interactions: Iterable[Interaction],
    available_ids: set[str],
    limit: int = 10,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> list[dict[str, Any]]:
    """Available products ranked by type-weighted interaction volume (no decay)."""
    scores: Counter[str] = Counter()
    counts: Counter[str] = Counter()
    for i in interactions:
        if i.product_id not in available_ids:
            continue
        scores[i.product_id] += config.type_weights.get(i.type.value, 0.0)
        counts[i.product_id] += 1

    ranked = sorted(scores, key=lambda pid: (-scores[pid], pid))
    return [
        {"product_id": pid, "score": round(scores[pid], 4), "interactions": counts[pid]}
        for pid in ranked[:limit]
    ]


def compute_product_analytics(
    interactions: Iterable[Interaction],
    as_of: datetime,
    times_recommended: int = 0,
    recent_hours: float = 24.0,
) -> dict[str, Any]:
    """Per-product engagement summary from every user's interactions with it."""
    records = [i for i in interactions if i.timestamp <= as_of]
    by_type = Counter(i.type.value for i in records)
    views = by_type.get(InteractionType.view.value, 0)
    purchases = by_type.get(InteractionType.purchase.value, 0)
    cutoff = as_of - timedelta(hours=recent_hours)

    return {
        "total_interactions": len(records),
        "views": views,
        "likes": by_type.get(InteractionType.like.value, 0),
        "purchases": purchases,
        "dismissals": by_type.get(InteractionType.dismiss.value, 0),
        "unique_users": len({i.user_id for i in records}),
        "conversion_rate": round(purchases / views * 100, 1) if views else 0.0,
        "recent_interactions": sum(1 for i in records if i.timestamp >= cutoff),
        "times_recommended": times_recommended,
    }
