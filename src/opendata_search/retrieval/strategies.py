"""
Fallback Chain Strategies

Every stage of the retrieval fallback chain implements the same capability:

    async attempt(query) -> List[Item]

An attempt either returns items or raises. The orchestrator treats a raised
error and an empty list identically (fall through to the next stage), so
strategies contain no fallback logic of their own.

Order used by the engine:
    dynamic catalog -> cloud vector -> local vector -> text -> static fallback
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Protocol

from .models import Query, SearchMethod
from ..core.errors import ConfigurationError
from ..embeddings.indexer import ContentSource, Indexer
from ..embeddings.models import Item, ItemMetadata
from ..search.filters import apply_query_filters, matches
from ..search.similarity import SimilarityEngine
from ..search.text import TextSearchEngine


class CloudVectorSearch(Protocol):
    async def cloud_vector_search(self, text: str, limit: int) -> List[Item]: ...


class SearchStrategy(ABC):
    """
    One stage of the fallback chain.
    """

    name: str = "strategy"
    search_method: SearchMethod

    #: Whether the orchestrator applies its per-attempt timeout.
    bounded: bool = True

    @abstractmethod
    async def attempt(self, query: Query) -> List[Item]:
        """Return items for `query`, or raise on failure."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


# ---------------------------------------------------------------------
# Data-bearing strategies
# ---------------------------------------------------------------------

class DynamicSourceStrategy(SearchStrategy):
    """
    Query the live content source with the user's text.
    """

    name = "dynamic"
    search_method = SearchMethod.DYNAMIC

    def __init__(self, source: Optional[ContentSource]) -> None:
        self._source = source

    async def attempt(self, query: Query) -> List[Item]:
        if self._source is None:
            raise ConfigurationError("No dynamic content source configured")

        items = await self._source.fetch_content_items(query.text)
        return apply_query_filters(items, query)[: query.limit]


class CloudVectorStrategy(SearchStrategy):
    """
    Delegate ranking to a managed vector search service.
    """

    name = "vertex"
    search_method = SearchMethod.VERTEX

    def __init__(self, client: Optional[CloudVectorSearch]) -> None:
        self.client = client

    async def attempt(self, query: Query) -> List[Item]:
        if self.client is None:
            raise ConfigurationError("No cloud vector search configured")

        items = await self.client.cloud_vector_search(query.text, query.limit)
        return apply_query_filters(items, query)[: query.limit]


class LocalVectorStrategy(SearchStrategy):
    """
    Cosine ranking over the in-process index.

    The first attempt triggers (or joins) the index build.
    """

    name = "local"
    search_method = SearchMethod.LOCAL

    def __init__(
        self,
        indexer: Indexer,
        engine: SimilarityEngine,
        source: Optional[ContentSource],
    ) -> None:
        self._indexer = indexer
        self._engine = engine
        self._source = source

    async def attempt(self, query: Query) -> List[Item]:
        if self._source is not None:
            await self._indexer.ensure_index(self._source)

        if self._engine.candidate_count == 0:
            return []

        query_embedding = await self._indexer.embed_cached(query.text)
        return self._engine.search(
            query_embedding, query.limit, predicate=lambda i: matches(i, query)
        )


class TextSearchStrategy(SearchStrategy):
    """
    Lexical scoring over the in-process index; needs no embeddings.
    """

    name = "text"
    search_method = SearchMethod.TEXT

    def __init__(self, engine: TextSearchEngine) -> None:
        self._engine = engine

    async def attempt(self, query: Query) -> List[Item]:
        return self._engine.search(
            query.text, query.limit, predicate=lambda i: matches(i, query)
        )


# ---------------------------------------------------------------------
# Static fallback
# ---------------------------------------------------------------------

_FALLBACK_TEXT: Dict[str, Dict[str, str]] = {
    "ja": {
        "title": "お探しの情報について",
        "description": "ご質問にお答えできるよう努めます",
        "content": (
            "申し訳ございませんが、「{query}」に関する具体的な情報が見つかりませんでした。\n\n"
            "東京都の子育て支援に関するご質問でしたら、以下の方法でより詳しい情報を得ることができます：\n\n"
            "1. 各区市町村の子ども家庭支援センター\n"
            "2. 東京都公式ホームページ\n"
            "3. 子育て応援とうきょうパスポート事業\n\n"
            "具体的な手続きや制度についてお知りになりたい場合は、お住まいの区市町村窓口にお問い合わせください。"
        ),
        "source": "システム",
    },
    "en": {
        "title": "About the information you are looking for",
        "description": "We will do our best to answer your question",
        "content": (
            "Sorry, we could not find specific information about \"{query}\".\n\n"
            "For more detailed information you can contact:\n\n"
            "1. Your municipal child and family support center\n"
            "2. The Tokyo Metropolitan Government official website\n"
            "3. Your local ward or city office\n"
        ),
        "source": "System",
    },
    "zh": {
        "title": "关于您要查找的信息",
        "description": "我们将尽力回答您的问题",
        "content": (
            "抱歉，未能找到有关「{query}」的具体信息。\n\n"
            "请查看东京都官方网站或联系当地市区町村窗口。"
        ),
        "source": "系统",
    },
    "ko": {
        "title": "찾으시는 정보에 대하여",
        "description": "질문에 답변드릴 수 있도록 노력하겠습니다",
        "content": (
            "죄송합니다. 「{query}」에 관한 구체적인 정보를 찾지 못했습니다.\n\n"
            "도쿄도 공식 홈페이지나 각 구시정촌 창구에서 확인해주세요."
        ),
        "source": "시스템",
    },
}


def fallback_item(query_text: str, language: str) -> Item:
    """
    Build the canned apology item. Has no external dependencies.
    """
    text = _FALLBACK_TEXT.get(language, _FALLBACK_TEXT["ja"])

    return Item(
        id="fallback-search",
        title=text["title"],
        description=text["description"],
        content=text["content"].format(query=query_text),
        category="general",
        tags=["案内"],
        metadata=ItemMetadata(
            source=text["source"],
            language=language if language in _FALLBACK_TEXT else "ja",
        ),
    )


class StaticFallbackStrategy(SearchStrategy):
    """
    Terminal stage; always returns exactly one canned item.
    """

    name = "static_fallback"
    search_method = SearchMethod.BASIC_FALLBACK
    bounded = False

    async def attempt(self, query: Query) -> List[Item]:
        return [fallback_item(query.text, query.language)]

