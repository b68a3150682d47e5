"""
In-Process Item Index

This module implements the in-memory index of content items that backs the
local similarity search and the lexical fallback search.

Key Properties
--------------
- Items are keyed by id; a repeated id within one rebuild keeps the last
  occurrence (never duplicates)
- Full rebuilds are published with a single reference swap, so readers see
  either the complete old contents or the complete new contents
- Concurrency-safe (thread locking) for callers outside the event loop
- Read methods return snapshots; callers cannot mutate internal state
"""

from __future__ import annotations

from threading import RLock
from typing import Dict, Iterable, List, Optional

from .models import Item


class ItemIndex:
    """
    Mapping from item id to `Item`.

    The indexer is the only writer. Search engines read through
    `snapshot()` / `embedded_items()`.
    """

    def __init__(self) -> None:
        self._items: Dict[str, Item] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def replace_all(self, items: Iterable[Item]) -> None:
        """
        Atomically replace the whole index.

        The new mapping is fully built before it is published.
        """
        fresh: Dict[str, Item] = {}
        for item in items:
            fresh[item.id] = item

        with self._lock:
            self._items = fresh

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, item_id: str) -> Optional[Item]:
        with self._lock:
            return self._items.get(item_id)

    def snapshot(self) -> List[Item]:
        """
        Return all items in insertion order.
        """
        with self._lock:
            return list(self._items.values())

    def embedded_items(self) -> List[Item]:
        with self._lock:
            return [i for i in self._items.values() if i.embedding is not None]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._items

    def get_stats(self) -> dict:
        """
        Return index statistics for diagnostics.
        """
        with self._lock:
            category_counts: Dict[str, int] = {}
            embedded = 0
            unembeddable = 0

            for item in self._items.values():
                category_counts[item.category] = category_counts.get(item.category, 0) + 1
                if item.embedding is not None:
                    embedded += 1
                elif item.unembeddable:
                    unembeddable += 1

            return {
                "total_items": len(self._items),
                "items_with_embeddings": embedded,
                "unembeddable_items": unembeddable,
                "category_counts": category_counts,
            }
