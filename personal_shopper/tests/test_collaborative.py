from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from personal_shopper.recommendations.collaborative import (
    CollaborativeScorer,
    score_collaborative,
    score_collaborative_batch,
)
from personal_shopper.recommendations.errors import InsufficientDataError, TimeoutDegradation
from personal_shopper.recommendations.models import (
    NO_CONFIDENCE,
    Interaction,
    InteractionType,
    make_idempotency_key,
)

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)
AS_OF = BASE + timedelta(days=1)


def _event(user_id: str, product_id: str, kind: str = "purchase", when: datetime = BASE) -> Interaction:
    return Interaction(
        user_id=user_id,
        product_id=product_id,
        type=InteractionType(kind),
        timestamp=when,
        idempotency_key=make_idempotency_key(user_id, product_id, kind, when),
    )


LOG = [
    _event("alice", "p1"),
    _event("alice", "p2"),
    _event("bob", "p1"),
    _event("bob", "p2"),
    _event("bob", "p3"),
    _event("carol", "p9"),
]


def test_no_history_is_no_confidence():
    assert score_collaborative("dave", "p3", LOG, AS_OF) is NO_CONFIDENCE


def test_no_neighbors_is_no_confidence():
    # carol shares nothing with anyone
    assert score_collaborative("carol", "p1", LOG, AS_OF) is NO_CONFIDENCE


def test_batch_reports_reason():
    scores, reason = score_collaborative_batch("carol", ["p1", "p2"], LOG, AS_OF)
    assert reason == "no_neighbors"
    assert scores == {"p1": NO_CONFIDENCE, "p2": NO_CONFIDENCE}

    _, reason = score_collaborative_batch("dave", ["p1"], LOG, AS_OF)
    assert reason == "no_history"


def test_neighbor_affinity_scores_candidate():
    scores, reason = score_collaborative_batch("alice", ["p3", "p9", "p404"], LOG, AS_OF)
    assert reason is None
    assert scores["p3"] == pytest.approx(1.0)
    assert scores["p9"] == 0.0
    assert scores["p404"] == 0.0


def test_neighbors_exclude_dissimilar_users():
    scorer = CollaborativeScorer.fit("alice", LOG, AS_OF)
    assert scorer.neighbor_ids == ["bob"]
    assert all(s > 0 for s in scorer.similarities)


def test_scores_stay_in_unit_interval():
    log = LOG + [_event("bob", "p3", "dismiss", BASE + timedelta(hours=1)), _event("erin", "p1", "view")]
    scores, _ = score_collaborative_batch("alice", ["p1", "p2", "p3"], log, AS_OF)
    assert all(0.0 <= s <= 1.0 for s in scores.values())


def test_future_interactions_not_used():
    log = [_event("alice", "p1"), _event("bob", "p1", when=AS_OF + timedelta(days=1))]
    with pytest.raises(InsufficientDataError) as exc_info:
        CollaborativeScorer.fit("alice", log, AS_OF)
    assert exc_info.value.reason == "no_neighbors"


def test_cancelled_scoring_raises_timeout_degradation():
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(TimeoutDegradation):
        score_collaborative_batch("alice", ["p3"], LOG, AS_OF, cancel=cancel)
