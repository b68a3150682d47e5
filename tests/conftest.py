import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from opendata_search.core.errors import UnavailableError
from opendata_search.embeddings.models import Item, ItemMetadata

# Each vocabulary word is one embedding dimension.
VOCABULARY = ["保育園", "公園", "施設", "子育て", "図書館", "防災", "交通", "病院"]


def make_item(
    item_id: str,
    title: str = "",
    description: str = "",
    content: str = "",
    category: str = "general",
    tags: Optional[List[str]] = None,
    language: str = "ja",
    last_updated: Optional[datetime] = None,
    embedding: Optional[List[float]] = None,
) -> Item:
    return Item(
        id=item_id,
        title=title or f"Item {item_id}",
        description=description,
        content=content,
        category=category,
        tags=tags or [],
        metadata=ItemMetadata(
            source="test",
            language=language,
            last_updated=last_updated or datetime(2024, 4, 1, tzinfo=timezone.utc),
        ),
        embedding=embedding,
    )


def keyword_vector(text: str) -> List[float]:
    return [float(text.count(word)) for word in VOCABULARY]


class FakeEmbedder:
    """
    Deterministic embedder: one dimension per vocabulary word, counting
    occurrences. Records every call.
    """

    def __init__(self, delay: float = 0.0, fail_all: bool = False, fail_on: Optional[List[str]] = None):
        self.delay = delay
        self.fail_all = fail_all
        self.fail_on = fail_on or []
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_all or any(marker in text for marker in self.fail_on):
                raise UnavailableError("provider down")
            return keyword_vector(text)
        finally:
            self.active -= 1


class FakeSource:
    """Content source returning a fixed item list, counting fetches."""

    def __init__(self, items: List[Item], delay: float = 0.0, error: Optional[Exception] = None):
        self.items = list(items)
        self.delay = delay
        self.error = error
        self.calls: List[Optional[str]] = []

    async def fetch_content_items(self, query: Optional[str] = None) -> List[Item]:
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.items)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def childcare_items():
    return [
        make_item(
            "nursery",
            title="保育園一覧",
            description="区内の認可保育園の所在地",
            content="保育園 保育園 子育て",
            category="子育て",
            tags=["保育", "子育て"],
        ),
        make_item(
            "park",
            title="都立公園の施設案内",
            description="公園にある施設の情報",
            content="公園 施設 トイレ 遊具",
            category="観光",
            tags=["公園"],
        ),
        make_item(
            "library",
            title="図書館の利用案内",
            description="開館時間と施設",
            content="図書館 施設",
            category="教育",
            tags=["図書館"],
        ),
        make_item(
            "support",
            title="子育て支援センター",
            description="子育て相談",
            content="子育て 相談 保育園の入園申込",
            category="子育て",
            tags=["子育て"],
        ),
    ]
