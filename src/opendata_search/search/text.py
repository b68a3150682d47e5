"""
Lexical Fallback Search

Scored substring matching over the item index, used when no query
embedding is available or vector ranking produced nothing.

Scoring, per lowercase query term found anywhere in
title + description + content + tags:
    +1 for the match
    +2 more if the term occurs in the title
    +1 more if the term occurs in any tag
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from ..embeddings.index import ItemIndex
from ..embeddings.models import Item


def split_terms(text: str) -> List[str]:
    # str.split() also splits on the ideographic space (U+3000).
    return [t for t in text.lower().split() if t]


def score_item(item: Item, terms: List[str]) -> int:
    title = item.title.lower()
    tags = [t.lower() for t in item.tags]
    searchable = " ".join(
        [title, item.description.lower(), item.content.lower(), " ".join(tags)]
    )

    score = 0
    for term in terms:
        if term not in searchable:
            continue
        score += 1
        if term in title:
            score += 2
        if any(term in tag for tag in tags):
            score += 1

    return score


class TextSearchEngine:
    """
    Keyword search over every indexed item, embedded or not.
    """

    def __init__(self, index: ItemIndex) -> None:
        self._index = index

    def rank(
        self,
        text: str,
        limit: int,
        predicate: Optional[Callable[[Item], bool]] = None,
    ) -> List[Tuple[Item, int]]:
        terms = split_terms(text)
        if not terms or limit <= 0:
            return []

        scored = []
        for item in self._index.snapshot():
            if predicate is not None and not predicate(item):
                continue
            score = score_item(item, terms)
            if score > 0:
                scored.append((item, score))

        # sorted() is stable: ties keep index order
        scored.sort(key=lambda pair: -pair[1])
        return scored[:limit]

    def search(
        self,
        text: str,
        limit: int,
        predicate: Optional[Callable[[Item], bool]] = None,
    ) -> List[Item]:
        return [item for item, _ in self.rank(text, limit, predicate)]
