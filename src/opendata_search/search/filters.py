"""
Query post-filters shared by every data-bearing strategy.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from ..embeddings.models import Item
from ..retrieval.models import Query, normalize_category, normalize_language

# Catalog records are published in Japanese; they match any query language.
CATALOG_LANGUAGE = "ja"


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _in_range(value: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    value = _aware(value)
    if start is not None and value < _aware(start):
        return False
    if end is not None and value > _aware(end):
        return False
    return True


def matches(item: Item, query: Query) -> bool:
    if query.category and normalize_category(item.category) != query.category:
        return False

    language = normalize_language(item.metadata.language)
    if language != query.language and language != CATALOG_LANGUAGE:
        return False

    filters = query.filters
    if filters is None:
        return True

    if filters.tags and not set(filters.tags).issubset(item.tags):
        return False

    return _in_range(item.metadata.last_updated, filters.date_from, filters.date_to)


def apply_query_filters(items: List[Item], query: Query) -> List[Item]:
    """Keep the items that satisfy the query's category, language and filters."""
    return [item for item in items if matches(item, query)]
