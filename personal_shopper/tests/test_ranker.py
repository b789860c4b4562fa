from personal_shopper.recommendations.models import ScoredCandidate
from personal_shopper.recommendations.ranker import diversity_cap, rank


def _candidate(pid: str, score: float, category: str = "Books", brand: str | None = None) -> ScoredCandidate:
    return ScoredCandidate(
        product_id=pid,
        category=category,
        brand=brand or f"brand-{pid}",
        content_score=score,
        combined_score=score,
    )


def test_diversity_cap():
    assert diversity_cap(1) == 1
    assert diversity_cap(3) == 1
    assert diversity_cap(10) == 4


def test_sorted_descending_with_id_tiebreak():
    ranked = rank([_candidate("b", 0.5, "X"), _candidate("a", 0.5, "Y"), _candidate("c", 0.9, "Z")], 3)
    assert [c.product_id for c in ranked] == ["c", "a", "b"]


def test_duplicates_removed():
    ranked = rank([_candidate("a", 0.9, "X"), _candidate("a", 0.9, "X"), _candidate("b", 0.1, "Y")], 5)
    assert [c.product_id for c in ranked] == ["a", "b"]


def test_category_cap_prefers_variety():
    candidates = [
        _candidate("a1", 0.9, "A"),
        _candidate("a2", 0.8, "A"),
        _candidate("a3", 0.7, "A"),
        _candidate("b1", 0.6, "B"),
        _candidate("c1", 0.5, "C"),
    ]
    ranked = rank(candidates, 3)
    assert [c.product_id for c in ranked] == ["a1", "b1", "c1"]


def test_brand_cap_applies_across_categories():
    candidates = [
        _candidate("x1", 0.9, "A", "Acme"),
        _candidate("x2", 0.8, "B", "Acme"),
        _candidate("y1", 0.7, "C", "Other"),
    ]
    ranked = rank(candidates, 2)
    assert [c.product_id for c in ranked] == ["x1", "y1"]


def test_backfill_when_single_category():
    candidates = [_candidate(f"p{i}", 1.0 - i / 10) for i in range(5)]
    ranked = rank(candidates, 3)
    assert [c.product_id for c in ranked] == ["p0", "p1", "p2"]


def test_returns_fewer_when_short():
    ranked = rank([_candidate("a", 0.3), _candidate("b", 0.2)], 10)
    assert len(ranked) == 2


def test_zero_count_returns_nothing():
    assert rank([_candidate("a", 0.3)], 0) == []
