"""
Content Item Data Models

This module defines the canonical data model for a single content item
held in the in-process vector index.

Each instance corresponds to ONE catalog record and AT MOST ONE embedding
vector. An item is either fully embedded, explicitly marked unembeddable, or
not yet processed by the indexer; it is never partially embedded.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemMetadata(BaseModel):
    """
    Provenance information attached to an item by its content source.
    """

    source: str = Field(
        ...,
        min_length=1,
        description="Human-readable name of the source that produced the item.",
    )

    last_updated: datetime = Field(
        default_factory=_utcnow,
        description="Last modification time of the underlying record.",
    )

    language: str = Field(
        default="ja",
        min_length=2,
        description="Language code of the item's text.",
    )

    model_config = ConfigDict(extra="forbid", frozen=True)


class Item(BaseModel):
    """
    A single indexed content item.

    This model is the authoritative schema for:
    - Index storage
    - Similarity and text search candidates
    - Search result payloads
    """

    id: str = Field(..., min_length=1, description="Unique item identifier.")
    title: str = Field(default="", description="Short item title.")
    description: str = Field(default="", description="One-paragraph summary.")
    content: str = Field(default="", description="Full item body text.")
    category: str = Field(default="general", description="Catalog category.")

    tags: List[str] = Field(
        default_factory=list,
        description="Free-form tags; duplicates are dropped, order is preserved.",
    )

    metadata: ItemMetadata

    embedding: Optional[List[float]] = Field(
        default=None,
        description="Embedding of `embeddable_text`, absent until indexed.",
    )

    unembeddable: bool = Field(
        default=False,
        description="True when embedding generation failed for this item.",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    @field_validator("tags", mode="after")
    @classmethod
    def _dedupe_tags(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(t for t in v if t))

    @field_validator("embedding", mode="after")
    @classmethod
    def _validate_embedding(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        if v is not None and len(v) == 0:
            raise ValueError("embedding must be non-empty when present")
        return v

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def embeddable_text(self) -> str:
        """The exact text sent to the embedding provider for this item."""
        return f"{self.title} {self.description} {self.content}"

    def with_embedding(self, embedding: List[float]) -> "Item":
        return self.model_copy(
            update={"embedding": [float(x) for x in embedding], "unembeddable": False}
        )

    def mark_unembeddable(self) -> "Item":
        return self.model_copy(update={"embedding": None, "unembeddable": True})
