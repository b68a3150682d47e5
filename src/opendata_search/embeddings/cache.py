"""
Embedding Cache

Memoizes embedding-provider results by a content hash of the exact text that
was embedded, so that two items with identical title/description/content
share one vector and one provider call.

The cache is unbounded by default (process lifetime). An optional
`max_size` turns on LRU eviction; no correctness property depends on it.
"""

from __future__ import annotations

import hashlib
from collections import OrderedDict
from typing import List, Optional


class EmbeddingCache:
    """
    In-memory mapping from text hash to embedding vector.

    All methods are synchronous and never suspend, so the cache needs no
    lock under cooperative (asyncio) scheduling.
    """

    def __init__(self, max_size: Optional[int] = None) -> None:
        self._store: "OrderedDict[str, List[float]]" = OrderedDict()
        self._max_size = max_size

    @staticmethod
    def key_for(text: str) -> str:
        """
        Return the cache key for a text: SHA-256 over its UTF-8 bytes.
        """
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def get(self, key: str) -> Optional[List[float]]:
        vector = self._store.get(key)
        if vector is not None and self._max_size:
            self._store.move_to_end(key)
        return vector

    def put(self, key: str, vector: List[float]) -> None:
        self._store[key] = list(vector)
        self._store.move_to_end(key)

        if self._max_size:
            while len(self._store) > self._max_size:
                self._store.popitem(last=False)

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)
