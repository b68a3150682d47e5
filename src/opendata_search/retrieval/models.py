"""
Retrieval Models

Request and result types for the retrieval engine. Both are immutable once
constructed, so results can be cached and shared by value.

JSON field names are camelCase (`searchMethod`, `usedCache`,
`processingTime`, `dateFrom`, ...); Python attribute names are snake_case
and either form is accepted on input.
"""

from __future__ import annotations

import unicodedata
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from ..embeddings.models import Item


_MODEL_CONFIG = ConfigDict(
    extra="forbid",
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


def normalize_language(value: str) -> str:
    return value.strip().lower()


def normalize_category(value: Optional[str]) -> Optional[str]:
    """NFKC-fold and trim a category label; blank labels become None."""
    if value is None:
        return None
    folded = unicodedata.normalize("NFKC", value).strip()
    return folded or None


class SearchMethod(str, Enum):
    """Which stage of the fallback chain produced a result."""

    DYNAMIC = "dynamic"
    VERTEX = "vertex"
    LOCAL = "local"
    TEXT = "text"
    BASIC_FALLBACK = "basic_fallback"
    ERROR_FALLBACK = "error_fallback"


class QueryFilters(BaseModel):
    """
    Optional narrowing applied to data-bearing strategies.
    """
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)

    model_config = _MODEL_CONFIG


class Query(BaseModel):
    """
    A single retrieval request.
    """
    text: str = Field(..., min_length=1)
    language: str = Field(default="ja", min_length=2)
    category: Optional[str] = None
    filters: Optional[QueryFilters] = None
    limit: int = Field(default=10, ge=1, le=100)

    model_config = _MODEL_CONFIG

    # The cache key and the post-filters compare these values verbatim.
    @field_validator("language", mode="before")
    @classmethod
    def _normalize_language(cls, v: object) -> object:
        return normalize_language(v) if isinstance(v, str) else v

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, v: object) -> object:
        return normalize_category(v) if isinstance(v, str) else v


class SearchResult(BaseModel):
    """
    Outcome of one `search()` call.

    `processing_time` is in milliseconds. `confidence` is a coarse quality
    hint derived from the number of items and the serving strategy.
    """
    items: List[Item]
    total: int = Field(..., ge=0)
    query: str
    processing_time: float = Field(..., ge=0.0)
    used_cache: bool = False
    search_method: SearchMethod
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    model_config = _MODEL_CONFIG


def confidence_for(item_count: int, search_method: SearchMethod) -> float:
    """
    Map an item count to a confidence score.

    Fallback results always carry the lowest confidence.
    """
    if search_method in (SearchMethod.BASIC_FALLBACK, SearchMethod.ERROR_FALLBACK):
        return 0.1
    if item_count == 0:
        return 0.2
    if item_count >= 3:
        return 0.8
    return round(0.4 + item_count * 0.2, 2)
