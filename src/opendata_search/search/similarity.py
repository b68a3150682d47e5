"""
Vector Similarity Ranking

Cosine similarity over the in-process item index plus two interchangeable
top-K selection strategies:

- `bounded_top_k`: keeps a sorted list of at most K entries and inserts a
  new candidate only when it beats the current worst one
- `sorted_top_k`: stable full sort followed by a slice

Both return the same ordered sequence for any input; ties keep candidate
encounter order. `select_top_k` picks between them based on how small K is
relative to the candidate count.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..embeddings.index import ItemIndex
from ..embeddings.models import Item


@dataclass(frozen=True)
class ScoredItem:
    """An index item paired with its similarity to the query."""

    item: Item
    score: float


TopKSelector = Callable[[Sequence[ScoredItem], int], List[ScoredItem]]
ItemPredicate = Callable[[Item], bool]


# ---------------------------------------------------------------------
# Cosine similarity
# ---------------------------------------------------------------------

def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Return dot(a, b) / (||a|| * ||b||).

    Returns 0.0 when the vectors differ in length, are empty, either norm is
    zero, or the computation is not finite. Never raises for numeric input.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    value = float(np.dot(va, vb) / (norm_a * norm_b))
    if not np.isfinite(value):
        return 0.0

    # Rounding can push |value| marginally past 1.
    return max(-1.0, min(1.0, value))


# ---------------------------------------------------------------------
# Top-K selection
# ---------------------------------------------------------------------

def sorted_top_k(candidates: Sequence[ScoredItem], limit: int) -> List[ScoredItem]:
    """Full stable sort by descending score, then slice."""
    if limit <= 0:
        return []
    return sorted(candidates, key=lambda c: -c.score)[:limit]


def bounded_top_k(candidates: Sequence[ScoredItem], limit: int) -> List[ScoredItem]:
    """
    Maintain a descending list of at most `limit` entries.

    A candidate enters only if the list is not full or it strictly beats the
    current worst entry. It is placed after every kept entry with an equal
    score, which preserves encounter order among ties.
    """
    if limit <= 0:
        return []

    kept: List[ScoredItem] = []
    keys: List[float] = []  # negated scores, ascending

    for candidate in candidates:
        if len(kept) >= limit and candidate.score <= kept[-1].score:
            continue

        pos = bisect_right(keys, -candidate.score)
        keys.insert(pos, -candidate.score)
        kept.insert(pos, candidate)

        if len(kept) > limit:
            kept.pop()
            keys.pop()

    return kept


def select_top_k(
    candidates: Sequence[ScoredItem],
    limit: int,
    bounded_ratio: float = 0.1,
) -> List[ScoredItem]:
    """
    Choose the selection strategy for `limit` relative to the candidate count.
    """
    if limit < len(candidates) * bounded_ratio:
        return bounded_top_k(candidates, limit)
    return sorted_top_k(candidates, limit)


# ---------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------

class SimilarityEngine:
    """
    Ranks embedded index items against a query embedding.
    """

    def __init__(
        self,
        index: ItemIndex,
        threshold: float = 0.1,
        bounded_ratio: float = 0.1,
    ) -> None:
        self._index = index
        self.threshold = threshold
        self.bounded_ratio = bounded_ratio

    @property
    def candidate_count(self) -> int:
        """Number of indexed items that carry an embedding."""
        return len(self._index.embedded_items())

    def rank(
        self,
        query_embedding: Sequence[float],
        limit: int,
        predicate: Optional[ItemPredicate] = None,
    ) -> List[ScoredItem]:
        """
        Return up to `limit` scored items above the similarity threshold,
        best first. Items rejected by `predicate` are never candidates.
        """
        candidates: List[ScoredItem] = []

        for item in self._index.embedded_items():
            if predicate is not None and not predicate(item):
                continue
            score = cosine_similarity(query_embedding, item.embedding)
            if score > self.threshold:
                candidates.append(ScoredItem(item=item, score=score))

        return select_top_k(candidates, limit, self.bounded_ratio)

    def search(
        self,
        query_embedding: Sequence[float],
        limit: int,
        predicate: Optional[ItemPredicate] = None,
    ) -> List[Item]:
        return [c.item for c in self.rank(query_embedding, limit, predicate)]
