"""
Retrieval Engine

Composition root for the search service. It owns one instance of every
component and exposes the service-level operations:

    search(query)          -> SearchResult (never raises)
    initialize()           -> build the index from the content source
    get_stats()            -> read-only introspection
    reinitialize_index()   -> forced rebuild, deduplicated with any build
                              already in flight

Nothing here is a module-level singleton; the FastAPI layer holds the one
process-wide instance through its dependency provider.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import SecretStr

from .cache import ResultCache
from .models import Query, SearchResult
from .orchestrator import RetrievalOrchestrator
from .strategies import (
    CloudVectorSearch,
    CloudVectorStrategy,
    DynamicSourceStrategy,
    LocalVectorStrategy,
    SearchStrategy,
    StaticFallbackStrategy,
    TextSearchStrategy,
)
from ..config import Settings
from ..core.errors import ConfigurationError
from ..embeddings.cache import EmbeddingCache
from ..embeddings.embedder import Embedder
from ..embeddings.index import ItemIndex
from ..embeddings.indexer import ContentSource, EmbeddingProvider, Indexer
from ..search.similarity import SimilarityEngine
from ..search.text import TextSearchEngine
from ..sources.open_data import OpenDataClient
from ..sources.vertex import VertexVectorSearchClient

logger = logging.getLogger("search.engine")


def _secret(value: Optional[SecretStr]) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


class RetrievalEngine:
    def __init__(
        self,
        index: ItemIndex,
        indexer: Indexer,
        embedding_cache: EmbeddingCache,
        result_cache: ResultCache,
        orchestrator: RetrievalOrchestrator,
        source: Optional[ContentSource] = None,
    ) -> None:
        self.index = index
        self.indexer = indexer
        self.embedding_cache = embedding_cache
        self.result_cache = result_cache
        self.orchestrator = orchestrator
        self.source = source

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        embedder: EmbeddingProvider,
        source: Optional[ContentSource] = None,
        cloud: Optional[CloudVectorSearch] = None,
        *,
        dynamic_search: bool = True,
        batch_size: int = 10,
        concurrency: int = 3,
        batch_delay: float = 0.1,
        embed_timeout: Optional[float] = 15.0,
        similarity_threshold: float = 0.1,
        bounded_ratio: float = 0.1,
        result_cache: Optional[ResultCache] = None,
        embedding_cache: Optional[EmbeddingCache] = None,
        strategy_timeout: Optional[float] = 10.0,
    ) -> "RetrievalEngine":
        """
        Assemble an engine from explicit collaborators.

        The fallback chain is:
            dynamic (if enabled) -> vertex -> local -> text -> static fallback

        Parameters
        ----------
        embedder : EmbeddingProvider
            Provider used for item and query embeddings.

        source : Optional[ContentSource]
            Catalog used to build the index and to answer dynamic queries.
            Without one, the index must be filled through `indexer.build_index`.

        cloud : Optional[CloudVectorSearch]
            Managed vector search client. None keeps the stage in the
            chain but reports it as not configured.
        """
        index = ItemIndex()
        embedding_cache = embedding_cache if embedding_cache is not None else EmbeddingCache()
        result_cache = result_cache if result_cache is not None else ResultCache()

        indexer = Indexer(
            index,
            embedder,
            embedding_cache,
            batch_size=batch_size,
            concurrency=concurrency,
            batch_delay=batch_delay,
            embed_timeout=embed_timeout,
        )

        strategies: List[SearchStrategy] = []
        if dynamic_search:
            strategies.append(DynamicSourceStrategy(source))
        strategies.extend(
            [
                CloudVectorStrategy(cloud),
                LocalVectorStrategy(
                    indexer,
                    SimilarityEngine(
                        index,
                        threshold=similarity_threshold,
                        bounded_ratio=bounded_ratio,
                    ),
                    source,
                ),
                TextSearchStrategy(TextSearchEngine(index)),
                StaticFallbackStrategy(),
            ]
        )

        orchestrator = RetrievalOrchestrator(
            strategies, result_cache, strategy_timeout=strategy_timeout
        )

        return cls(index, indexer, embedding_cache, result_cache, orchestrator, source)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        source: Optional[ContentSource] = None,
        embedder: Optional[EmbeddingProvider] = None,
        cloud: Optional[CloudVectorSearch] = None,
    ) -> "RetrievalEngine":
        """
        Build the production engine from `Settings`.

        Missing collaborators default to the catalog client, the HTTP
        embedder, and (when its coordinates are configured) the Vertex
        client.
        """
        if embedder is None:
            embedder = Embedder(
                api_key=_secret(settings.gemini_api_key),
                model=settings.embedding_model,
                base_url=str(settings.embedding_base_url),
                timeout=settings.embedding_timeout,
            )
        if source is None:
            source = OpenDataClient(
                base_url=str(settings.open_data_base_url),
                rows=settings.open_data_rows,
                timeout=settings.open_data_timeout,
            )

        engine = cls.build(
            embedder,
            source,
            cloud,
            dynamic_search=settings.dynamic_search_enabled,
            batch_size=settings.index_batch_size,
            concurrency=settings.index_concurrency,
            batch_delay=settings.index_batch_delay,
            embed_timeout=settings.embedding_timeout,
            similarity_threshold=settings.similarity_threshold,
            bounded_ratio=settings.bounded_selection_ratio,
            result_cache=ResultCache(
                ttl=settings.result_cache_ttl,
                max_size=settings.result_cache_max_size,
            ),
            embedding_cache=EmbeddingCache(max_size=settings.embedding_cache_max_size),
            strategy_timeout=settings.strategy_timeout,
        )

        if cloud is None:
            # The client resolves neighbors through this engine's index, so it
            # is attached after construction.
            vertex = VertexVectorSearchClient(
                embed=engine.indexer.embed_cached,
                resolve=engine.index.get,
                project_id=settings.gcp_project_id,
                location=settings.gcp_region,
                index_endpoint_id=settings.vertex_index_endpoint_id,
                deployed_index_id=settings.vertex_deployed_index_id,
                access_token=_secret(settings.vertex_access_token),
                timeout=settings.strategy_timeout,
            )
            if vertex.is_configured:
                engine.attach_cloud(vertex)
            else:
                logger.info("Vertex Vector Search not configured; stage will be skipped")

        return engine

    def attach_cloud(self, cloud: CloudVectorSearch) -> None:
        """Point the cloud vector stage at `cloud`."""
        for strategy in self.orchestrator.strategies:
            if isinstance(strategy, CloudVectorStrategy):
                strategy.client = cloud

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def search(self, query: Query) -> SearchResult:
        return await self.orchestrator.search(query)

    async def initialize(self) -> None:
        """
        Build the index from the configured source, once.

        Raises
        ------
        ConfigurationError
            If no content source is configured.
        """
        if self.source is None:
            raise ConfigurationError("No content source configured")

        await self.indexer.ensure_index(self.source)

    async def reinitialize_index(self) -> Dict[str, Any]:
        """
        Force a rebuild from the content source and drop cached results.

        Joins the build already in flight, if any. Returns the summary of
        the last completed build.
        """
        if self.source is None:
            raise ConfigurationError("No content source configured")

        logger.info("Reinitializing item index")
        await self.indexer.reinitialize(self.source)

        dropped = self.result_cache.invalidate()
        logger.info("Index reinitialized; dropped %d cached results", dropped)

        return dict(self.indexer.last_build)

    def get_stats(self) -> Dict[str, Any]:
        index_stats = self.index.get_stats()

        return {
            "total_items": index_stats["total_items"],
            "items_with_embeddings": index_stats["items_with_embeddings"],
            "unembeddable_items": index_stats["unembeddable_items"],
            "cache_size": len(self.result_cache),
            "is_initialized": self.indexer.is_initialized,
            "in_flight": self.indexer.in_flight,
            "category_counts": index_stats["category_counts"],
            "embedding_cache_size": len(self.embedding_cache),
            "result_cache": self.result_cache.stats(),
        }
