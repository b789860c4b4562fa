from __future__ import annotations

from fastapi.testclient import TestClient

from personal_shopper.app import app
from personal_shopper.recommendations.cache import ResponseCache
from personal_shopper.recommendations.models import Product, User
from personal_shopper.recommendations.repository import InMemoryRepository
from personal_shopper.recommendations.service import get_engine, reset_engine

client = TestClient(app)

AS_OF = "2024-06-01T00:00:00Z"


def _reset():
    reset_engine(InMemoryRepository(
        products=[
            Product(id="p1", category="Home", brand="IKEA", price=12.0),
            Product(id="p2", category="Home", brand="Dyson", price=650.0),
            Product(id="p3", category="Garden", brand="Fiskars", price=35.0),
        ],
        users=[User(id="u1"), User(id="u2")],
    ))


def test_cache_miss_then_hit():
    _reset()
    resp1 = client.post("/recommendations/u1", params={"count": 2, "asOf": AS_OF})
    assert resp1.status_code == 200
    stats = get_engine().cache.stats()
    assert stats["misses"] == 1

    # Second identical call is served from the cache
    resp2 = client.post("/recommendations/u1", params={"count": 2, "asOf": AS_OF})
    assert resp2.json() == resp1.json()
    assert get_engine().cache.stats()["hits"] == 1


def test_cache_different_queries_miss():
    _reset()
    client.post("/recommendations/u1", params={"count": 2, "asOf": AS_OF})
    client.post("/recommendations/u1", params={"count": 3, "asOf": AS_OF})
    client.post("/recommendations/u2", params={"count": 2, "asOf": AS_OF})
    stats = get_engine().cache.stats()
    assert stats["misses"] == 3
    assert stats["hits"] == 0


def test_requests_without_as_of_are_not_cached():
    _reset()
    client.post("/recommendations/u1", params={"count": 2})
    client.post("/recommendations/u1", params={"count": 2})
    stats = get_engine().cache.stats()
    assert stats["size"] == 0
    assert stats["hits"] == 0


def test_interaction_invalidates_only_that_user():
    _reset()
    client.post("/recommendations/u1", params={"count": 2, "asOf": AS_OF})
    client.post("/recommendations/u2", params={"count": 2, "asOf": AS_OF})
    assert get_engine().cache.stats()["size"] == 2

    client.post("/interactions", json={
        "userId": "u1", "productId": "p3", "type": "purchase", "timestamp": "2024-05-31T09:00:00Z",
    })
    assert get_engine().cache.stats()["size"] == 1

    body = client.post("/recommendations/u1", params={"count": 2, "asOf": AS_OF}).json()
    assert "cold_start" not in body["fallbacks"]


def test_preference_update_invalidates_user():
    _reset()
    client.post("/recommendations/u1", params={"count": 2, "asOf": AS_OF})
    client.put("/preferences/u1", json={"categories": ["Garden"]})
    assert get_engine().cache.stats()["size"] == 0

    body = client.post("/recommendations/u1", params={"count": 1, "asOf": AS_OF}).json()
    assert body["data"][0]["productId"] == "p3"


def test_reset_engine_starts_with_empty_cache():
    _reset()
    client.post("/recommendations/u1", params={"count": 2, "asOf": AS_OF})
    reset_engine(InMemoryRepository(
        products=[Product(id="x1", category="Toys", brand="Lego", price=49.0)],
        users=[User(id="u1")],
    ))

    assert get_engine().cache.stats()["size"] == 0
    body = client.post("/recommendations/u1", params={"count": 2, "asOf": AS_OF}).json()
    assert [c["productId"] for c in body["data"]] == ["x1"]


def test_cache_stats_endpoint():
    _reset()
    client.post("/recommendations/u1", params={"count": 2, "asOf": AS_OF})
    client.post("/recommendations/u1", params={"count": 2, "asOf": AS_OF})
    resp = client.get("/cache/stats")
    assert resp.status_code == 200
    body = resp.json()
    assert body["hits"] == 1
    assert body["hit_rate"] == 50.0


def test_expired_entries_are_dropped():
    cache = ResponseCache(ttl=0)
    cache.set({"user_id": "u1", "count": 1}, "value", revision=0)
    assert cache.get({"user_id": "u1", "count": 1}, revision=0) is None
    assert cache.stats()["size"] == 0


def test_entries_from_an_older_revision_miss():
    cache = ResponseCache()
    cache.set({"user_id": "u1", "count": 1}, "old", revision=3)
    assert cache.get({"user_id": "u1", "count": 1}, revision=4) is None
    assert cache.stats()["size"] == 0


def test_newer_revision_evicts_older_entries():
    cache = ResponseCache()
    cache.set({"user_id": "u1", "count": 1}, "a", revision=1)
    cache.set({"user_id": "u2", "count": 1}, "b", revision=2)
    assert cache.stats()["size"] == 1
    assert cache.get({"user_id": "u2", "count": 1}, revision=2) == "b"


def test_invalidate_user_counts_entries():
    cache = ResponseCache()
    cache.set({"user_id": "u1", "count": 1}, "a", revision=0)
    cache.set({"user_id": "u1", "count": 2}, "b", revision=0)
    cache.set({"user_id": "u2", "count": 1}, "c", revision=0)
    assert cache.invalidate_user("u1") == 2
    assert cache.get({"user_id": "u2", "count": 1}, revision=0) == "c"
