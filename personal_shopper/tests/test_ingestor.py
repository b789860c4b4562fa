from __future__ import annotations

import gc
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from personal_shopper.analytics.store import clear_events, get_events
from personal_shopper.interactions.ingestor import FeedbackIngestor
from personal_shopper.recommendations.cache import ResponseCache
from personal_shopper.recommendations.errors import DuplicateInteractionError, UnknownEntityError
from personal_shopper.recommendations.models import InteractionEvent, Product, User
from personal_shopper.recommendations.profile import build_profile
from personal_shopper.recommendations.repository import InMemoryRepository

BASE = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _repo() -> InMemoryRepository:
    return InMemoryRepository(
        products=[
            Product(id="p1", category="Books", brand="Penguin", price=12.0),
            Product(id="p2", category="Books", brand="Vintage", price=18.0),
        ],
        users=[User(id="u1"), User(id="u2")],
    )


def _event(product_id="p1", kind="like", user_id="u1", key=None):
    return InteractionEvent(
        user_id=user_id, product_id=product_id, type=kind, timestamp=BASE, idempotency_key=key,
    ).to_interaction()


def test_first_ingest_accepted():
    ingestor = FeedbackIngestor(_repo())
    result = ingestor.ingest(_event())
    assert result.accepted
    assert result.reason is None


def test_duplicate_key_rejected():
    repo = _repo()
    ingestor = FeedbackIngestor(repo)
    ingestor.ingest(_event(key="evt-1"))
    result = ingestor.ingest(_event(product_id="p2", key="evt-1"))

    assert not result.accepted
    assert result.reason == "duplicate"
    assert isinstance(result.error, DuplicateInteractionError)
    assert len(repo.get_interactions("u1")) == 1


def test_derived_key_makes_replay_idempotent():
    repo = _repo()
    ingestor = FeedbackIngestor(repo)
    as_of = BASE + timedelta(days=1)
    products = {p.id: p for p in repo.get_catalog()}

    ingestor.ingest(_event(kind="purchase"))
    once = build_profile(repo.get_user("u1"), repo.get_interactions("u1"), as_of, products)

    replay = ingestor.ingest(_event(kind="purchase"))
    twice = build_profile(repo.get_user("u1"), repo.get_interactions("u1"), as_of, products)

    assert not replay.accepted
    assert once == twice


def test_unknown_user_or_product_raises():
    ingestor = FeedbackIngestor(_repo())
    with pytest.raises(UnknownEntityError):
        ingestor.ingest(_event(user_id="ghost"))
    with pytest.raises(UnknownEntityError):
        ingestor.ingest(_event(product_id="p404"))


def test_concurrent_duplicates_accept_once():
    repo = _repo()
    ingestor = FeedbackIngestor(repo)
    event = _event(key="same")

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(ingestor.ingest, [event] * 32))

    assert sum(r.accepted for r in results) == 1
    assert len(repo.get_interactions()) == 1


def test_accepted_event_invalidates_user_cache():
    repo = _repo()
    cache = ResponseCache()
    cache.set({"user_id": "u1", "count": 5, "as_of": BASE}, "mine", repo.revision)
    cache.set({"user_id": "u2", "count": 5, "as_of": BASE}, "theirs", repo.revision)

    FeedbackIngestor(repo, cache).ingest(_event())

    assert cache.stats()["size"] == 1


def test_duplicate_event_leaves_cache_alone():
    repo = _repo()
    cache = ResponseCache()
    ingestor = FeedbackIngestor(repo, cache)
    ingestor.ingest(_event(key="evt-1"))
    cache.set({"user_id": "u1", "count": 5, "as_of": BASE}, "mine", repo.revision)

    ingestor.ingest(_event(key="evt-1"))

    assert cache.get({"user_id": "u1", "count": 5, "as_of": BASE}, repo.revision) == "mine"


def test_ingest_records_event():
    clear_events()
    ingestor = FeedbackIngestor(_repo())
    ingestor.ingest(_event(kind="view"))
    ingestor.ingest(_event(kind="view"))

    events = get_events("interaction")
    assert [e["accepted"] for e in events] == [True, False]
    assert events[0]["interaction_type"] == "view"


def test_known_key_skips_append():
    repo = _repo()
    ingestor = FeedbackIngestor(repo)
    ingestor.ingest(_event(key="evt-1"))

    with patch.object(repo, "append_interaction", wraps=repo.append_interaction) as append:
        result = ingestor.ingest(_event(key="evt-1"))

    assert result.reason == "duplicate"
    append.assert_not_called()


def test_user_locks_released_after_ingest():
    ingestor = FeedbackIngestor(_repo())
    ingestor.ingest(_event(user_id="u1"))
    ingestor.ingest(_event(user_id="u2", product_id="p2"))
    gc.collect()

    assert len(ingestor._locks) == 0
