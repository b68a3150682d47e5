"""
Index Builder

This module populates the `ItemIndex` from a content source, attaching
embeddings in concurrency-bounded batches.

Responsibilities
----------------
- Partition items into fixed-size batches and run a bounded number of
  batches concurrently, pausing between batch groups to cap the request
  rate seen by the embedding provider
- Reuse cached vectors and share in-flight provider calls for identical text
- Degrade gracefully: an item whose embedding fails is still indexed,
  marked unembeddable, and remains eligible for lexical search
- Deduplicate builds: concurrent callers join the build already in flight
  instead of starting a second one
- Publish each build with a single swap so readers never observe a
  partially built index
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from .cache import EmbeddingCache
from .index import ItemIndex
from .models import Item
from ..core.errors import StrategyTimeoutError

logger = logging.getLogger("search.indexer")


def _log_background_failure(task: asyncio.Future) -> None:
    """
    Log the failure of a shared task.

    Awaiters hold the task through `asyncio.shield`, so it may finish after
    every one of them was cancelled.
    """
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "Background task failed (%s): %s", type(exc).__name__, exc
        )


# ---------------------------------------------------------------------
# Collaborator Contracts
# ---------------------------------------------------------------------

class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> List[float]: ...


class ContentSource(Protocol):
    async def fetch_content_items(self, query: Optional[str] = None) -> List[Item]: ...


# ---------------------------------------------------------------------
# Indexer
# ---------------------------------------------------------------------

class Indexer:
    """
    Single writer of the item index and the embedding cache.
    """

    def __init__(
        self,
        index: ItemIndex,
        embedder: EmbeddingProvider,
        cache: EmbeddingCache,
        batch_size: int = 10,
        concurrency: int = 3,
        batch_delay: float = 0.1,
        embed_timeout: Optional[float] = 15.0,
    ) -> None:
        """
        Parameters
        ----------
        index : ItemIndex
            Index that receives the built items.

        embedder : EmbeddingProvider
            Anything exposing `async embed(text) -> List[float]`.

        cache : EmbeddingCache
            Shared embedding cache keyed by text hash.

        batch_size : int
            Number of items embedded concurrently within one batch.

        concurrency : int
            Number of batches processed concurrently within one group.

        batch_delay : float
            Seconds to wait between batch groups (not within a group).

        embed_timeout : Optional[float]
            Bound on each provider call; None disables it.
        """
        if batch_size < 1 or concurrency < 1:
            raise ValueError("batch_size and concurrency must be positive")

        self._index = index
        self._embedder = embedder
        self._cache = cache
        self._batch_size = batch_size
        self._concurrency = concurrency
        self._batch_delay = batch_delay
        self._embed_timeout = embed_timeout

        self._initialized = False
        self._in_flight: Optional[asyncio.Future] = None
        self._pending_embeddings: Dict[str, asyncio.Future] = {}
        self.last_build: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def build_index(self, items: Sequence[Item], force: bool = False) -> None:
        """
        Build the index from `items`.

        Once the index is initialized further calls are no-ops unless
        `force` is set. While a build is running every caller awaits that
        same build.
        """
        if self._initialized and not force and self._in_flight is None:
            return

        snapshot = list(items)
        await self._run_exclusive(lambda: self._build(snapshot))

    async def ensure_index(self, source: ContentSource) -> None:
        """
        Fetch items from `source` and build the index, at most once.

        A failed fetch leaves the index uninitialized so a later call
        retries.
        """
        if self._initialized and self._in_flight is None:
            return

        await self._run_exclusive(lambda: self._fetch_and_build(source))

    async def reinitialize(self, source: ContentSource) -> None:
        """
        Force a rebuild from `source`.

        If any build is already running, this joins it rather than
        starting a duplicate.
        """
        await self._run_exclusive(lambda: self._fetch_and_build(source))

    async def embed_cached(self, text: str) -> List[float]:
        """
        Return the embedding for `text`, calling the provider at most once
        per distinct text.

        Raises whatever the provider raises; a timeout surfaces as
        `StrategyTimeoutError`.
        """
        key = self._cache.key_for(text)

        cached = self._cache.get(key)
        if cached is not None:
            return cached

        pending = self._pending_embeddings.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._call_provider(key, text))
            self._pending_embeddings[key] = pending
            pending.add_done_callback(
                lambda _f, k=key: self._pending_embeddings.pop(k, None)
            )
            pending.add_done_callback(_log_background_failure)

        return await asyncio.shield(pending)

    # ------------------------------------------------------------------
    # In-flight deduplication
    # ------------------------------------------------------------------

    async def _run_exclusive(self, start: Callable[[], Awaitable[None]]) -> None:
        # Check-and-set happens without a suspension point in between.
        task = self._in_flight
        if task is None:
            task = asyncio.ensure_future(start())
            self._in_flight = task
            task.add_done_callback(self._clear_in_flight)
            task.add_done_callback(_log_background_failure)
        else:
            logger.debug("Index build already in progress; joining it")

        await asyncio.shield(task)

    def _clear_in_flight(self, task: asyncio.Future) -> None:
        if self._in_flight is task:
            self._in_flight = None

    # ------------------------------------------------------------------
    # Build pipeline
    # ------------------------------------------------------------------

    async def _fetch_and_build(self, source: ContentSource) -> None:
        items = await source.fetch_content_items()
        logger.info("Fetched %d items from content source", len(items))
        await self._build(items)

    async def _build(self, items: Sequence[Item]) -> None:
        started = time.perf_counter()

        batches = [
            list(items[start : start + self._batch_size])
            for start in range(0, len(items), self._batch_size)
        ]

        processed: List[Item] = []

        for group_start in range(0, len(batches), self._concurrency):
            group = batches[group_start : group_start + self._concurrency]

            results = await asyncio.gather(
                *(self._process_batch(batch) for batch in group)
            )
            for batch_result in results:
                processed.extend(batch_result)

            if group_start + self._concurrency < len(batches) and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)

        self._index.replace_all(processed)
        self._initialized = True

        embedded = sum(1 for i in processed if i.embedding is not None)
        elapsed = time.perf_counter() - started

        self.last_build = {
            "items": len(processed),
            "embedded": embedded,
            "failed": len(processed) - embedded,
            "elapsed_seconds": elapsed,
        }

        logger.info(
            "Index built: items=%d embedded=%d failed=%d elapsed=%.2fs",
            len(processed),
            embedded,
            len(processed) - embedded,
            elapsed,
        )

    async def _process_batch(self, batch: List[Item]) -> List[Item]:
        return list(await asyncio.gather(*(self._process_item(item) for item in batch)))

    async def _process_item(self, item: Item) -> Item:
        if item.embedding is not None:
            self._cache.put(self._cache.key_for(item.embeddable_text), item.embedding)
            return item

        try:
            vector = await self.embed_cached(item.embeddable_text)
        except Exception as exc:
            logger.warning(
                "Embedding failed for item %s (%s): %s; indexing without embedding",
                item.id,
                type(exc).__name__,
                exc,
            )
            return item.mark_unembeddable()

        return item.with_embedding(vector)

    async def _call_provider(self, key: str, text: str) -> List[float]:
        try:
            if self._embed_timeout is None:
                vector = await self._embedder.embed(text)
            else:
                vector = await asyncio.wait_for(
                    self._embedder.embed(text), timeout=self._embed_timeout
                )
        except asyncio.TimeoutError as exc:
            raise StrategyTimeoutError(
                f"Embedding call exceeded {self._embed_timeout}s"
            ) from exc

        self._cache.put(key, vector)
        return vector
