import math
import random

import pytest

from opendata_search.embeddings.index import ItemIndex
from opendata_search.search import similarity
from opendata_search.search.similarity import (
    ScoredItem,
    SimilarityEngine,
    bounded_top_k,
    cosine_similarity,
    select_top_k,
    sorted_top_k,
)

from conftest import keyword_vector, make_item


# ---------------------------------------------------------------------
# cosine_similarity
# ---------------------------------------------------------------------

def test_cosine_identical_vectors():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_cosine_orthogonal_and_opposite():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_cosine_degenerate_inputs_return_zero():
    assert cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
    assert cosine_similarity([math.nan, 1.0], [1.0, 1.0]) == 0.0
    assert cosine_similarity([math.inf, 1.0], [1.0, 1.0]) == 0.0


def test_cosine_stays_within_bounds():
    a = [0.1 + 1e-12 * i for i in range(768)]
    value = cosine_similarity(a, list(a))
    assert -1.0 <= value <= 1.0


# ---------------------------------------------------------------------
# top-K selection
# ---------------------------------------------------------------------

def _scored(scores):
    return [
        ScoredItem(item=make_item(f"i{n}"), score=s) for n, s in enumerate(scores)
    ]


SCORE_SETS = [
    [],
    [0.5],
    [0.3, 0.9, 0.1, 0.9, 0.5, 0.5, 0.7],
    [0.4] * 8,
    [0.2, 0.8, 0.8, 0.3, 0.8, 0.1, 0.95, 0.3, 0.3, 0.6, 0.6, 0.11],
]


@pytest.mark.parametrize("scores", SCORE_SETS)
@pytest.mark.parametrize("limit", [0, 1, 2, 3, 5, 20])
def test_bounded_and_sorted_selection_agree(scores, limit):
    candidates = _scored(scores)
    bounded = [c.item.id for c in bounded_top_k(candidates, limit)]
    full = [c.item.id for c in sorted_top_k(candidates, limit)]
    assert bounded == full


@pytest.mark.parametrize("seed", range(20))
def test_selection_agrees_on_random_scores_with_many_ties(seed):
    rng = random.Random(seed)
    palette = [-0.5, 0.0, 0.1, 0.25, 0.25001, 0.5, 0.75, 1.0]
    scores = [rng.choice(palette) for _ in range(rng.randint(1, 60))]
    candidates = _scored(scores)

    for limit in range(0, len(scores) + 3):
        expected = [c.item.id for c in sorted_top_k(candidates, limit)]
        assert [c.item.id for c in bounded_top_k(candidates, limit)] == expected
        assert [c.item.id for c in select_top_k(candidates, limit)] == expected


def test_ties_keep_encounter_order():
    candidates = _scored([0.5, 0.9, 0.5, 0.5])
    ids = [c.item.id for c in bounded_top_k(candidates, 3)]
    assert ids == ["i1", "i0", "i2"]


def test_select_top_k_uses_bounded_for_small_limits(monkeypatch):
    calls = []

    def spy(candidates, limit):
        calls.append(limit)
        return sorted_top_k(candidates, limit)

    monkeypatch.setattr(similarity, "bounded_top_k", spy)

    candidates = _scored([0.1 * (n % 9) + 0.05 for n in range(100)])
    select_top_k(candidates, 5, bounded_ratio=0.1)
    assert calls == [5]

    select_top_k(candidates, 50, bounded_ratio=0.1)
    assert calls == [5]


# ---------------------------------------------------------------------
# SimilarityEngine
# ---------------------------------------------------------------------

@pytest.fixture
def embedded_index(childcare_items):
    index = ItemIndex()
    index.replace_all(
        [i.with_embedding(keyword_vector(i.embeddable_text)) for i in childcare_items]
        + [make_item("pending", title="保育園 未処理")]
    )
    return index


def test_engine_ranks_most_similar_first(embedded_index):
    engine = SimilarityEngine(embedded_index)
    ranked = engine.rank(keyword_vector("保育園"), limit=10)

    assert [r.item.id for r in ranked] == ["nursery", "support"]
    assert ranked[0].score > ranked[1].score > 0.1


def test_engine_skips_items_without_embeddings(embedded_index):
    engine = SimilarityEngine(embedded_index)
    assert engine.candidate_count == 4
    ids = [i.id for i in engine.search(keyword_vector("保育園"), limit=10)]
    assert "pending" not in ids


def test_engine_applies_threshold(embedded_index):
    engine = SimilarityEngine(embedded_index, threshold=0.5)
    ids = [i.id for i in engine.search(keyword_vector("保育園"), limit=10)]
    assert ids == ["nursery"]


def test_engine_predicate_filters_before_limit(embedded_index):
    engine = SimilarityEngine(embedded_index)
    ids = [
        i.id
        for i in engine.search(
            keyword_vector("保育園"), limit=1, predicate=lambda i: i.id != "nursery"
        )
    ]
    assert ids == ["support"]


def test_engine_dimension_mismatch_yields_nothing(embedded_index):
    engine = SimilarityEngine(embedded_index)
    assert engine.search([1.0, 0.0], limit=5) == []
