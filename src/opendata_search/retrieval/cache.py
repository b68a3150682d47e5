"""
Result Cache

Time-bounded, size-bounded memo of search results keyed by a query
fingerprint.

Design choices
--------------
- In-memory only (no persistence across process restarts).
- At most one entry per fingerprint; re-setting a fingerprint replaces it.
- Expired entries are dropped lazily on lookup and eagerly by
  `purge_expired()`.
- LRU eviction once `max_size` entries are held.
- Injected clock so tests can advance time deterministically.
"""

from __future__ import annotations

import json
import logging
import time
import unicodedata
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from .models import Query, SearchResult

logger = logging.getLogger("search.result_cache")


# ---------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------

def normalize_text(text: str) -> str:
    """
    Fold width variants, collapse whitespace, and lowercase.
    """
    folded = unicodedata.normalize("NFKC", text)
    return " ".join(folded.split()).lower()


def fingerprint(query: Query) -> str:
    """
    Deterministic cache key for a query.

    The key is canonical JSON over the normalized text, language, category,
    filters, and limit, so queries differing only in whitespace or casing
    share one entry.
    """
    filters = query.filters
    normalized = {
        "text": normalize_text(query.text),
        "language": query.language,
        "category": query.category or "",
        "limit": query.limit,
        "filters": {
            "date_from": filters.date_from.isoformat() if filters and filters.date_from else None,
            "date_to": filters.date_to.isoformat() if filters and filters.date_to else None,
            "tags": sorted(filters.tags) if filters else [],
        },
    }
    return json.dumps(normalized, sort_keys=True, ensure_ascii=False)


@dataclass
class CacheEntry:
    key: str
    value: SearchResult
    expires_at: float
    hits: int = 0


# ---------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------

class ResultCache:
    """
    Fingerprint -> SearchResult mapping with a time-to-live.
    """

    def __init__(
        self,
        ttl: float = 900.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Parameters
        ----------
        ttl : float
            Default entry lifetime in seconds.

        max_size : int
            Maximum number of live entries before LRU eviction.

        clock : Callable[[], float]
            Monotonic time source in seconds.
        """
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def key_for(query: Union[Query, str]) -> str:
        return query if isinstance(query, str) else fingerprint(query)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def get(self, key: Union[Query, str]) -> Optional[SearchResult]:
        """
        Return a deep copy of the cached result marked `used_cache=True`,
        or None when absent or expired. Mutating the copy never reaches the
        stored entry.
        """
        key = self.key_for(key)
        entry = self._entries.get(key)

        if entry is None:
            self._misses += 1
            return None

        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self._misses += 1
            return None

        entry.hits += 1
        self._hits += 1
        self._entries.move_to_end(key)

        return entry.value.model_copy(update={"used_cache": True}, deep=True)

    def set(
        self,
        key: Union[Query, str],
        result: SearchResult,
        ttl: Optional[float] = None,
    ) -> None:
        key = self.key_for(key)
        lifetime = self.ttl if ttl is None else ttl

        self._entries.pop(key, None)

        while self.max_size > 0 and len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Result cache eviction: %s", evicted[:80])

        self._entries[key] = CacheEntry(
            key=key,
            value=result.model_copy(update={"used_cache": False}, deep=True),
            expires_at=self._clock() + lifetime,
        )

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """
        Remove all entries, or those whose fingerprint contains `pattern`
        (after the same normalization applied to query text).

        Returns the number of removed entries.
        """
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            needle = normalize_text(pattern)
            doomed = [k for k in self._entries if needle in k]
            for k in doomed:
                del self._entries[k]
            removed = len(doomed)

        logger.info("Result cache invalidation: removed %d entries", removed)
        return removed

    def purge_expired(self) -> int:
        now = self._clock()
        doomed = [k for k, e in self._entries.items() if now >= e.expires_at]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, float]:
        lookups = self._hits + self._misses
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": (self._hits / lookups) if lookups else 0.0,
        }

    def __len__(self) -> int:
        return len(self._entries)
