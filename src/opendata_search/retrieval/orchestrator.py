"""
Retrieval Orchestrator

Coordinates the fallback chain for a single query:

    CacheCheck -> strategy 1 -> strategy 2 -> ... -> StaticFallback -> Done

Behavior
--------
- A cache hit short-circuits the chain and is returned with
  `used_cache=True`; no strategy runs.
- Strategies are attempted in order. The first one that returns a
  non-empty list without raising (and within its time bound) wins; its
  result is cached and tagged with that strategy's `search_method`.
- Errors, timeouts, and empty results are logged with the strategy name
  and the query prefix, then the chain moves on.
- `search()` never raises. If every stage fails, or the orchestrator itself
  hits an unexpected error, the caller receives an `error_fallback` result
  holding the canned apology item.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Sequence

from .cache import ResultCache, fingerprint
from .models import Query, SearchMethod, SearchResult, confidence_for
from .strategies import SearchStrategy, fallback_item
from ..core.errors import ConfigurationError, RetrievalError
from ..embeddings.models import Item

logger = logging.getLogger("search.orchestrator")

_FALLBACK_METHODS = (SearchMethod.BASIC_FALLBACK, SearchMethod.ERROR_FALLBACK)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


class RetrievalOrchestrator:
    """
    Ordered, catch-and-continue execution of search strategies.
    """

    def __init__(
        self,
        strategies: Sequence[SearchStrategy],
        result_cache: ResultCache,
        strategy_timeout: Optional[float] = 10.0,
    ) -> None:
        """
        Parameters
        ----------
        strategies : Sequence[SearchStrategy]
            Chain stages in priority order; normally ends with
            `StaticFallbackStrategy`.

        result_cache : ResultCache
            Shared result cache.

        strategy_timeout : Optional[float]
            Seconds allowed for each bounded strategy attempt. None disables
            the bound.
        """
        self._strategies = list(strategies)
        self._cache = result_cache
        self._timeout = strategy_timeout

    @property
    def strategies(self) -> List[SearchStrategy]:
        return list(self._strategies)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(self, query: Query) -> SearchResult:
        started = time.perf_counter()

        try:
            return await self._run_chain(query, started)
        except Exception:
            logger.exception(
                "Retrieval chain failed unexpectedly for query '%s'",
                query.text[:50],
            )
            return self._fallback_result(query, started, SearchMethod.ERROR_FALLBACK)

    # ------------------------------------------------------------------
    # Chain
    # ------------------------------------------------------------------

    async def _run_chain(self, query: Query, started: float) -> SearchResult:
        key = fingerprint(query)

        cached = self._cache.get(key)
        if cached is not None:
            logger.info("Cache hit for query '%s'", query.text[:50])
            return cached.model_copy(update={"processing_time": _elapsed_ms(started)})

        for strategy in self._strategies:
            items = await self._attempt(strategy, query)
            if not items:
                continue

            result = SearchResult(
                items=items,
                total=len(items),
                query=query.text,
                processing_time=_elapsed_ms(started),
                used_cache=False,
                search_method=strategy.search_method,
                confidence=confidence_for(len(items), strategy.search_method),
            )

            # Canned answers are not cached so a recovered strategy is
            # picked up on the next call.
            if strategy.search_method not in _FALLBACK_METHODS:
                self._cache.set(key, result)

            logger.info(
                "Query '%s' served by %s: items=%d time=%.1fms",
                query.text[:50],
                strategy.name,
                len(items),
                result.processing_time,
            )
            return result

        logger.error("Every strategy failed for query '%s'", query.text[:50])
        return self._fallback_result(query, started, SearchMethod.ERROR_FALLBACK)

    async def _attempt(
        self,
        strategy: SearchStrategy,
        query: Query,
    ) -> Optional[List[Item]]:
        """
        Run one strategy; return its items, or None on any failure.
        """
        try:
            if strategy.bounded and self._timeout is not None:
                items = await asyncio.wait_for(
                    strategy.attempt(query), timeout=self._timeout
                )
            else:
                items = await strategy.attempt(query)
        except asyncio.TimeoutError:
            logger.warning(
                "Strategy %s timed out after %.1fs for query '%s'",
                strategy.name,
                self._timeout,
                query.text[:50],
            )
            return None
        except ConfigurationError as exc:
            logger.debug(
                "Strategy %s not configured (%s); skipping query '%s'",
                strategy.name,
                exc,
                query.text[:50],
            )
            return None
        except RetrievalError as exc:
            logger.warning(
                "Strategy %s failed (%s: %s) for query '%s'",
                strategy.name,
                type(exc).__name__,
                exc,
                query.text[:50],
            )
            return None
        except Exception as exc:
            logger.warning(
                "Strategy %s raised unexpected %s for query '%s'",
                strategy.name,
                type(exc).__name__,
                query.text[:50],
                exc_info=exc,
            )
            return None

        if not items:
            logger.info(
                "Strategy %s returned no items for query '%s'",
                strategy.name,
                query.text[:50],
            )
            return None

        return list(items)

    @staticmethod
    def _fallback_result(
        query: Query,
        started: float,
        method: SearchMethod,
    ) -> SearchResult:
        items = [fallback_item(query.text, query.language)]
        return SearchResult(
            items=items,
            total=len(items),
            query=query.text,
            processing_time=_elapsed_ms(started),
            used_cache=False,
            search_method=method,
            confidence=confidence_for(len(items), method),
        )
