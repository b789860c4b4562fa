"""
Recommendation request orchestration.

Per request: load the user, catalog and log snapshots from the repository,
build the profile, generate candidates, score them on the content and
collaborative signals, blend, and rank. Every data-sparsity condition is
absorbed here and reported through ``degraded`` and ``fallbacks``:

- ``cold_start``: no interaction history as of the request time
- ``sparse_catalog``: the candidate filter had to widen or stayed short
- ``no_neighbors``: history exists but no similar users were found
- ``timeout``: collaborative scoring missed the deadline and was cancelled
- ``collaborative_error``: collaborative scoring raised; content only

Only an empty catalog (``CatalogEmptyError``) or an unknown user
(``UnknownEntityError``) propagates to the caller.
"""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timezone

from ..analytics.store import record_event
from .cache import ResponseCache
from .candidates import generate_candidates
from .collaborative import score_collaborative_batch
from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .content import score_candidates, score_content
from .errors import CatalogEmptyError, TimeoutDegradation, UnknownEntityError
from .hybrid import combine, confidence_label
from .models import (
    NO_CONFIDENCE,
    Interaction,
    Product,
    RecommendationResponse,
    ScoredCandidate,
    Signal,
    as_utc,
)
from .profile import PreferenceProfile, build_profile, price_bucket
from .ranker import rank
from .repository import Repository

logger = logging.getLogger(__name__)

_UNCACHED_FALLBACKS = frozenset({"timeout", "collaborative_error"})


@dataclass(frozen=True)
class Deadline:
    """Point on the monotonic clock by which collaborative scoring must finish."""

    expires_at: float

    @classmethod
    def after_ms(cls, milliseconds: float) -> Deadline:
        return cls(expires_at=time.monotonic() + max(0.0, milliseconds) / 1000.0)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0


def _reasons(
    product: Product,
    profile: PreferenceProfile,
    collaborative: float | Signal,
    combined: float,
    edges: tuple[float, ...],
) -> list[str]:
    reasons: list[str] = []
    if profile.weight(f"category:{product.category.strip().lower()}") > 0:
        reasons.append(f"Matches your interest in {product.category}")
    if profile.weight(f"brand:{product.brand.strip().lower()}") > 0:
        reasons.append(f"From {product.brand}, a brand you like")
    styles = [t for t in product.style_tags if profile.weight(f"style:{t.strip().lower()}") > 0]
    if styles:
        reasons.append(f"Fits your {', '.join(styles)} style")
    if profile.weight(f"price:{price_bucket(product.price, edges)}") > 0:
        reasons.append("In a price range you shop in")
    if not isinstance(collaborative, Signal) and collaborative >= 0.5:
        reasons.append("Popular with shoppers who share your taste")
    if not reasons:
        reasons.append(f"{round(combined * 100)}% match with your profile")
    return reasons


class RecommendationEngine:
    def __init__(
        self,
        repository: Repository,
        config: EngineConfig = DEFAULT_ENGINE_CONFIG,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.config = config
        self.cache = ResponseCache(config.cache_ttl_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._scoring_pool = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="recs-collab",
        )
        self._request_pool = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="recs-request",
        )

    # ── public API ──────────────────────────────────────────────────────

    def recommend(
        self,
        user_id: str,
        count: int | None = None,
        as_of: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> RecommendationResponse:
        start_time = time.time()
        if count is None:
            count = self.config.default_count
        if not 1 <= count <= self.config.max_count:
            raise ValueError(f"count must be between 1 and {self.config.max_count}, got {count}")
        deadline = deadline or Deadline.after_ms(self.config.collaborative_timeout_ms)

        revision = self.repository.revision
        user = self.repository.get_user(user_id)
        if user is None:
            raise UnknownEntityError("user", user_id)

        # Only pinned requests are cacheable; "now" moves on every call
        cacheable = as_of is not None
        request_dict = {"user_id": user_id, "count": count, "as_of": as_utc(as_of) if cacheable else None}
        if cacheable:
            cached = self.cache.get(request_dict, revision)
            if cached is not None:
                self._record(user_id, count, cached, start_time, cache_hit=True)
                return cached

        as_of = as_utc(as_of) if as_of is not None else self._clock()

        catalog = self.repository.get_catalog(available_only=False)
        available = [p for p in catalog if p.available]
        if not available:
            raise CatalogEmptyError("catalog has no available products")
        products = {p.id: p for p in catalog}

        history = self.repository.get_interactions(user_id)
        profile = build_profile(user, history, as_of, products, self.config)

        fallbacks: list[str] = []
        if profile.interaction_count == 0:
            fallbacks.append("cold_start")

        candidates = generate_candidates(
            profile, available, count * self.config.candidate_pool_factor, self.config,
        )
        if candidates.sparse:
            fallbacks.append("sparse_catalog")

        candidate_ids = [p.id for p in candidates.products]
        content = score_candidates(profile, candidates.products, self.config)

        has_history = any(i.timestamp <= as_of for i in history)
        if has_history:
            collaborative, reason = self._collaborative(user_id, candidate_ids, as_of, deadline)
        else:
            collaborative, reason = {cid: NO_CONFIDENCE for cid in candidate_ids}, "no_history"
        if reason == "no_history":
            if "cold_start" not in fallbacks:
                fallbacks.append("cold_start")
        elif reason is not None:
            fallbacks.append(reason)

        scored = [
            self._scored(product, profile, content[product.id], collaborative.get(product.id, NO_CONFIDENCE))
            for product in candidates.products
        ]

        response = RecommendationResponse(
            data=rank(scored, count, self.config),
            degraded=bool(fallbacks),
            fallbacks=fallbacks,
            as_of=as_of,
        )

        # Responses without a completed collaborative pass are never cached
        if cacheable and not _UNCACHED_FALLBACKS.intersection(fallbacks):
            self.cache.set(request_dict, response, revision)

        self._record(user_id, count, response, start_time, cache_hit=False)
        return response

    def submit(
        self,
        user_id: str,
        count: int | None = None,
        as_of: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> Future:
        """Run ``recommend`` on the request pool and return its future."""
        return self._request_pool.submit(self.recommend, user_id, count, as_of, deadline)

    def score_product(
        self,
        user_id: str,
        product_id: str,
        as_of: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> ScoredCandidate:
        """Score one product for one user without candidate filtering or ranking."""
        deadline = deadline or Deadline.after_ms(self.config.collaborative_timeout_ms)
        user = self.repository.get_user(user_id)
        if user is None:
            raise UnknownEntityError("user", user_id)
        product = self.repository.get_product(product_id)
        if product is None:
            raise UnknownEntityError("product", product_id)

        as_of = as_utc(as_of) if as_of is not None else self._clock()
        products = {p.id: p for p in self.repository.get_catalog(available_only=False)}
        history = self.repository.get_interactions(user_id)
        profile = build_profile(user, history, as_of, products, self.config)

        collab: float | Signal = NO_CONFIDENCE
        if any(i.timestamp <= as_of for i in history):
            scores, _ = self._collaborative(user_id, [product_id], as_of, deadline)
            collab = scores.get(product_id, NO_CONFIDENCE)
        return self._scored(product, profile, score_content(profile, product, self.config), collab)

    def now(self) -> datetime:
        return self._clock()

    def close(self) -> None:
        self._request_pool.shutdown(wait=False, cancel_futures=True)
        self._scoring_pool.shutdown(wait=False, cancel_futures=True)

    # ── internals ───────────────────────────────────────────────────────

    def _scored(
        self,
        product: Product,
        profile: PreferenceProfile,
        content: float,
        collab: float | Signal,
    ) -> ScoredCandidate:
        combined = combine(content, collab, profile.interaction_count, self.config)
        return ScoredCandidate(
            product_id=product.id,
            category=product.category,
            brand=product.brand,
            price=product.price,
            content_score=content,
            collaborative_score=collab,
            combined_score=combined,
            confidence=confidence_label(combined),
            reasons=_reasons(product, profile, collab, combined, self.config.price_bucket_edges),
        )

    def _collaborative(
        self,
        user_id: str,
        candidate_ids: Sequence[str],
        as_of: datetime,
        deadline: Deadline,
    ) -> tuple[dict[str, float | Signal], str | None]:
        interactions: list[Interaction] = self.repository.get_interactions()
        cancel = threading.Event()
        future = self._scoring_pool.submit(
            score_collaborative_batch, user_id, candidate_ids, interactions, as_of, self.config, cancel,
        )
        try:
            return future.result(timeout=deadline.remaining())
        except (FutureTimeoutError, TimeoutDegradation):
            cancel.set()
            future.cancel()
            logger.info("Collaborative scoring for user %s missed its deadline, using content only", user_id)
            return {cid: NO_CONFIDENCE for cid in candidate_ids}, "timeout"
        except Exception:
            logger.warning("Collaborative scoring failed for user %s, using content only", user_id, exc_info=True)
            return {cid: NO_CONFIDENCE for cid in candidate_ids}, "collaborative_error"

    def _record(
        self,
        user_id: str,
        count: int,
        response: RecommendationResponse,
        start_time: float,
        cache_hit: bool,
    ) -> None:
        elapsed_ms = round((time.time() - start_time) * 1000, 1)
        record_event("recommendation", {
            "user_id": user_id,
            "count": count,
            "results_returned": len(response.data),
            "product_ids": [c.product_id for c in response.data],
            "scores": [c.combined_score for c in response.data],
            "algorithms": [
                "content" if isinstance(c.collaborative_score, Signal) else "hybrid" for c in response.data
            ],
            "degraded": response.degraded,
            "fallbacks": list(response.fallbacks),
            "response_time_ms": elapsed_ms,
            "cache_hit": cache_hit,
        })
