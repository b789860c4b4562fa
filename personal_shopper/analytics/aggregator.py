from __future__ import annotations

from collections import Counter
from typing import Any


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    requests = [e for e in events if e["type"] == "recommendation"]
    total = len(requests)

    # Average response time
    times = [r["response_time_ms"] for r in requests if "response_time_ms" in r]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    # Degraded responses and why
    degraded = sum(1 for r in requests if r.get("degraded"))
    fallback_counter: Counter[str] = Counter()
    for r in requests:
        for reason in r.get("fallbacks", []) or []:
            fallback_counter[reason] += 1

    # Most recommended products
    product_counter: Counter[str] = Counter()
    for r in requests:
        for pid in r.get("product_ids", []) or []:
            product_counter[pid] += 1
    top_products = [
        {"product_id": pid, "count": c}
        for pid, c in sorted(product_counter.items(), key=lambda kv: (-kv[1], kv[0]))[:10]
    ]

    # Cache stats
    cache_hits = sum(1 for r in requests if r.get("cache_hit"))
    cache_misses = total - cache_hits

    # Ingestion summary
    ingests = [e for e in events if e["type"] == "interaction"]
    accepted = sum(1 for e in ingests if e.get("accepted"))
    by_type: Counter[str] = Counter(e.get("interaction_type", "unknown") for e in ingests if e.get("accepted"))

    return {
        "total_requests": total,
        "avg_response_time_ms": avg_time,
        "degraded": {
            "count": degraded,
            "rate": round(degraded / total * 100, 1) if total else 0.0,
            "fallbacks": dict(sorted(fallback_counter.items())),
        },
        "top_products": top_products,
        "cache_stats": {
            "hits": cache_hits,
            "misses": cache_misses,
            "hit_rate": round(cache_hits / total * 100, 1) if total else 0.0,
        },
        "ingestion": {
            "total": len(ingests),
            "accepted": accepted,
            "duplicates": len(ingests) - accepted,
            "by_type": dict(sorted(by_type.items())),
        },
    }


def compute_user_recommendation_stats(events: list[dict[str, Any]], user_id: str) -> dict[str, Any]:
    """Recommendations served to one user: volume, mean score, signal mix."""
    requests = [e for e in events if e["type"] == "recommendation" and e.get("user_id") == user_id]
    scores = [s for r in requests for s in r.get("scores", []) or []]
    algorithms: Counter[str] = Counter(a for r in requests for a in r.get("algorithms", []) or [])
    fallbacks: Counter[str] = Counter(f for r in requests for f in r.get("fallbacks", []) or [])

    return {
        "total_requests": len(requests),
        "total_recommendations": sum(r.get("results_returned", 0) for r in requests),
        "average_score": round(sum(scores) / len(scores), 4) if scores else 0.0,
        "algorithms": dict(sorted(algorithms.items())),
        "degraded": sum(1 for r in requests if r.get("degraded")),
        "fallbacks": dict(sorted(fallbacks.items())),
    }


def count_recommended(events: list[dict[str, Any]], product_id: str) -> int:
    return sum(
        1 for e in events
        if e["type"] == "recommendation" and product_id in (e.get("product_ids") or [])
    )
