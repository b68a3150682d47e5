"""
API Models for the Search Service

Request and response models that are specific to the HTTP surface. The
search request and response bodies reuse `Query` and `SearchResult` from
the retrieval layer directly.
"""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


_API_MODEL_CONFIG = ConfigDict(
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


# ---------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------

class ResultCacheStats(BaseModel):
    size: int = Field(..., ge=0)
    max_size: int
    hits: int = Field(..., ge=0)
    misses: int = Field(..., ge=0)
    hit_rate: float = Field(..., ge=0.0, le=1.0)

    model_config = _API_MODEL_CONFIG


class SearchStats(BaseModel):
    """
    Snapshot returned by `GET /search/stats`.
    """
    total_items: int = Field(..., ge=0)
    items_with_embeddings: int = Field(..., ge=0)
    unembeddable_items: int = Field(..., ge=0)
    cache_size: int = Field(..., ge=0)
    is_initialized: bool
    in_flight: bool
    category_counts: Dict[str, int] = Field(default_factory=dict)
    embedding_cache_size: int = Field(..., ge=0)
    result_cache: ResultCacheStats

    model_config = _API_MODEL_CONFIG


# ---------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------

class ReinitializeResult(BaseModel):
    status: str = "reinitialized"
    items: Optional[int] = Field(default=None, ge=0)
    embedded: Optional[int] = Field(default=None, ge=0)
    failed: Optional[int] = Field(default=None, ge=0)
    elapsed_seconds: Optional[float] = Field(default=None, ge=0.0)

    model_config = _API_MODEL_CONFIG
