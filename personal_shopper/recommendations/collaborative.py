"""
User-user collaborative scoring.

Each user is represented by an affinity vector over products: the sum of
decayed type weights of their interactions. Neighbors of the target are the
other users with a positive cosine similarity to it. A candidate's score is
the similarity-weighted average of the neighbors' normalised affinity for
that candidate.

Without history or without neighbors there is nothing to average; the
scorer then reports ``NO_CONFIDENCE`` instead of a number.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from datetime import datetime

import numpy as np
import pandas as pd
from sklearn.metrics.pairwise import cosine_similarity

from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .errors import InsufficientDataError, TimeoutDegradation
from .models import NO_CONFIDENCE, Interaction, Signal, as_utc
from .profile import interaction_weight, ordered_history

logger = logging.getLogger(__name__)


class CollaborativeScorer:
    def __init__(
        self,
        user_id: str,
        neighbor_ids: list[str],
        similarities: np.ndarray,
        affinities: pd.DataFrame,
    ) -> None:
        self.user_id = user_id
        self.neighbor_ids = neighbor_ids
        self.similarities = similarities
        self.affinities = affinities

    @classmethod
    def fit(
        cls,
        user_id: str,
        interactions: Iterable[Interaction],
        as_of: datetime,
        config: EngineConfig = DEFAULT_ENGINE_CONFIG,
        cancel: threading.Event | None = None,
    ) -> CollaborativeScorer:
        """Build the neighborhood of *user_id*.

        Raises ``InsufficientDataError`` when the user has no history or no
        neighbors, and ``TimeoutDegradation`` as soon as *cancel* is set.
        """
        as_of = as_utc(as_of)
        history = ordered_history(interactions, as_of)
        _checkpoint(cancel)

        if not any(i.user_id == user_id for i in history):
            raise InsufficientDataError("no_history")

        frame = pd.DataFrame(
            {
                "user_id": [i.user_id for i in history],
                "product_id": [i.product_id for i in history],
                "weight": [interaction_weight(i, as_of, config) for i in history],
            }
        )
        _checkpoint(cancel)

        # pivot_table sorts both axes, so row/column order is deterministic
        matrix = frame.pivot_table(
            index="user_id", columns="product_id", values="weight", aggfunc="sum", fill_value=0.0,
        )
        _checkpoint(cancel)

        target = matrix.loc[[user_id]].to_numpy()
        others = matrix.drop(index=user_id)
        if others.empty or not np.any(target):
            raise InsufficientDataError("no_neighbors")

        sims = cosine_similarity(target, others.to_numpy()).flatten()
        _checkpoint(cancel)

        ranked = sorted(
            (
                (float(s), uid)
                for uid, s in zip(others.index, sims)
                if s > 0
            ),
            key=lambda pair: (-pair[0], pair[1]),
        )[: config.max_neighbors]
        if not ranked:
            raise InsufficientDataError("no_neighbors")

        neighbor_ids = [uid for _, uid in ranked]
        neighbors = others.loc[neighbor_ids]

        # Normalise each neighbor's row by its largest absolute weight, keep [0, 1]
        scale = neighbors.abs().max(axis=1).replace(0.0, 1.0)
        affinities = neighbors.div(scale, axis=0).clip(lower=0.0, upper=1.0)

        logger.debug("User %s has %d neighbors", user_id, len(neighbor_ids))
        return cls(
            user_id=user_id,
            neighbor_ids=neighbor_ids,
            similarities=np.array([s for s, _ in ranked], dtype=np.float64),
            affinities=affinities,
        )

    def score(self, candidate_id: str) -> float:
        if candidate_id not in self.affinities.columns:
            return 0.0
        column = self.affinities[candidate_id].to_numpy(dtype=np.float64)
        total = float(self.similarities.sum())
        value = float(np.dot(self.similarities, column) / total) if total > 0 else 0.0
        return min(1.0, max(0.0, value))

    def score_many(self, candidate_ids: Sequence[str]) -> dict[str, float]:
        return {cid: self.score(cid) for cid in candidate_ids}


def _checkpoint(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise TimeoutDegradation("collaborative scoring cancelled")


def score_collaborative(
    user_id: str,
    candidate_id: str,
    interactions: Iterable[Interaction],
    as_of: datetime,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> float | Signal:
    """Score a single candidate, or ``NO_CONFIDENCE`` when no neighborhood exists."""
    try:
        scorer = CollaborativeScorer.fit(user_id, interactions, as_of, config)
    except InsufficientDataError:
        return NO_CONFIDENCE
    return scorer.score(candidate_id)


def score_collaborative_batch(
    user_id: str,
    candidate_ids: Sequence[str],
    interactions: Iterable[Interaction],
    as_of: datetime,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    cancel: threading.Event | None = None,
) -> tuple[dict[str, float | Signal], str | None]:
    """Score all candidates at once.

    Returns the scores and, when the neighborhood could not be built, the
    reason (``no_history`` or ``no_neighbors``). Cancellation propagates as
    ``TimeoutDegradation``.
    """
    try:
        scorer = CollaborativeScorer.fit(user_id, interactions, as_of, config, cancel)
    except InsufficientDataError as exc:
        return {cid: NO_CONFIDENCE for cid in candidate_ids}, exc.reason
    _checkpoint(cancel)
    return scorer.score_many(candidate_ids), None
