from __future__ import annotations

import os
from datetime import datetime, timedelta

from fastapi import Depends, FastAPI, HTTPException, Query

from .analytics.aggregator import compute_analytics, compute_user_recommendation_stats, count_recommended
from .analytics.store import get_events, record_event
from .interactions.ingestor import FeedbackIngestor
from .interactions.stats import compute_interaction_stats, compute_product_analytics, popular_products
from .logging_setup import configure_logging
from .recommendations.engine import Deadline, RecommendationEngine
from .recommendations.errors import CatalogEmptyError, UnknownEntityError
from .recommendations.models import (
    IngestResponse,
    InteractionEvent,
    InteractionHistoryResponse,
    PreferenceSet,
    PreferencesResponse,
    RecommendationResponse,
    ScoredCandidate,
    User,
    as_utc,
)
from .recommendations.service import get_engine, get_ingestor
from .recommendations.validation import validate_preferences

configure_logging()

app = FastAPI(title="Personal Shopper Recommendation API", version="1.0.0")


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metadata")
def metadata(engine: RecommendationEngine = Depends(get_engine)) -> dict:
    catalog = engine.repository.get_catalog(available_only=True)
    return {
        "categories": sorted({p.category for p in catalog}),
        "brands": sorted({p.brand for p in catalog}),
        "products": len(catalog),
    }


@app.get("/products/popular")
def products_popular(
    limit: int = Query(default=10, ge=1, le=50),
    engine: RecommendationEngine = Depends(get_engine),
) -> dict:
    available_ids = {p.id for p in engine.repository.get_catalog(available_only=True)}
    return {"data": popular_products(engine.repository.get_interactions(), available_ids, limit, engine.config)}


# ── Recommendations ──────────────────────────────────────────────────────


@app.post(
    "/recommendations/{user_id}",
    response_model=RecommendationResponse,
    response_model_exclude_none=True,
)
def recommendations(
    user_id: str,
    count: int | None = Query(default=None, ge=1, le=100),
    as_of: datetime | None = Query(default=None, alias="asOf"),
    deadline_ms: float | None = Query(default=None, alias="deadlineMs", ge=0),
    engine: RecommendationEngine = Depends(get_engine),
) -> RecommendationResponse:
    deadline = Deadline.after_ms(deadline_ms) if deadline_ms is not None else None
    try:
        return engine.recommend(user_id, count=count, as_of=as_of, deadline=deadline)
    except UnknownEntityError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CatalogEmptyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.get(
    "/recommendations/{user_id}/score/{product_id}",
    response_model=ScoredCandidate,
    response_model_exclude_none=True,
)
def recommendation_score(
    user_id: str,
    product_id: str,
    as_of: datetime | None = Query(default=None, alias="asOf"),
    engine: RecommendationEngine = Depends(get_engine),
) -> ScoredCandidate:
    try:
        return engine.score_product(user_id, product_id, as_of=as_of)
    except UnknownEntityError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/recommendations/{user_id}/stats")
def recommendation_stats(
    user_id: str,
    engine: RecommendationEngine = Depends(get_engine),
) -> dict:
    if engine.repository.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail=f"user {user_id!r} not found")
    return compute_user_recommendation_stats(get_events("recommendation"), user_id)


# ── Interactions ─────────────────────────────────────────────────────────


@app.post("/interactions", response_model=IngestResponse, response_model_exclude_none=True)
def interactions(
    body: InteractionEvent,
    ingestor: FeedbackIngestor = Depends(get_ingestor),
) -> IngestResponse:
    try:
        result = ingestor.ingest(body.to_interaction())
    except UnknownEntityError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return IngestResponse(accepted=result.accepted, reason=result.reason)


@app.get("/interactions/{user_id}/stats")
def interaction_stats(
    user_id: str,
    engine: RecommendationEngine = Depends(get_engine),
) -> dict:
    if engine.repository.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail=f"user {user_id!r} not found")
    return compute_interaction_stats(engine.repository.get_interactions(user_id))


@app.get("/interactions/{user_id}/recent", response_model=InteractionHistoryResponse)
def recent_interactions(
    user_id: str,
    hours: float = Query(default=24, gt=0, le=24 * 365),
    as_of: datetime | None = Query(default=None, alias="asOf"),
    engine: RecommendationEngine = Depends(get_engine),
) -> InteractionHistoryResponse:
    if engine.repository.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail=f"user {user_id!r} not found")
    as_of = as_utc(as_of) if as_of is not None else engine.now()
    records = engine.repository.get_interactions(user_id, since=as_of - timedelta(hours=hours))
    records = [i for i in records if i.timestamp <= as_of]
    return InteractionHistoryResponse(data=sorted(records, key=lambda i: i.timestamp, reverse=True))


@app.get("/interactions/{user_id}/history/{product_id}", response_model=InteractionHistoryResponse)
def interaction_history(
    user_id: str,
    product_id: str,
    engine: RecommendationEngine = Depends(get_engine),
) -> InteractionHistoryResponse:
    if engine.repository.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail=f"user {user_id!r} not found")
    if engine.repository.get_product(product_id) is None:
        raise HTTPException(status_code=404, detail=f"product {product_id!r} not found")
    records = [i for i in engine.repository.get_interactions(user_id) if i.product_id == product_id]
    return InteractionHistoryResponse(data=sorted(records, key=lambda i: i.timestamp, reverse=True))


# ── Products ─────────────────────────────────────────────────────────────


@app.get("/products/{product_id}/analytics")
def product_analytics(
    product_id: str,
    as_of: datetime | None = Query(default=None, alias="asOf"),
    engine: RecommendationEngine = Depends(get_engine),
) -> dict:
    if engine.repository.get_product(product_id) is None:
        raise HTTPException(status_code=404, detail=f"product {product_id!r} not found")
    as_of = as_utc(as_of) if as_of is not None else engine.now()
    records = [i for i in engine.repository.get_interactions() if i.product_id == product_id]
    return {
        "product_id": product_id,
        **compute_product_analytics(
            records, as_of, times_recommended=count_recommended(get_events("recommendation"), product_id),
        ),
    }


# ── Preferences ──────────────────────────────────────────────────────────


@app.put("/preferences/{user_id}", response_model=PreferencesResponse)
def update_preferences(
    user_id: str,
    body: PreferenceSet,
    engine: RecommendationEngine = Depends(get_engine),
) -> PreferencesResponse:
    validation = validate_preferences(body)
    if not validation.ok:
        raise HTTPException(status_code=422, detail=validation.error.errors)

    engine.repository.save_user(User(id=user_id, preferences=validation.preferences))
    engine.cache.invalidate_user(user_id)
    record_event("preferences", {"user_id": user_id})
    return PreferencesResponse(accepted=True)


@app.get("/preferences/{user_id}", response_model=PreferenceSet)
def get_preferences(
    user_id: str,
    engine: RecommendationEngine = Depends(get_engine),
) -> PreferenceSet:
    user = engine.repository.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail=f"user {user_id!r} not found")
    return user.preferences


# ── Operations ───────────────────────────────────────────────────────────


@app.get("/analytics")
def analytics() -> dict:
    return compute_analytics(get_events())


@app.get("/cache/stats")
def cache_stats(engine: RecommendationEngine = Depends(get_engine)) -> dict:
    return engine.cache.stats()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")), log_config=None)
