"""
Search Routes

Endpoints for querying the open data search service and inspecting or
rebuilding its index.

Security
--------
`POST /search/reinitialize` is protected by `verify_admin`, which requires:
- `x-admin-key` header OR
- `key` query parameter
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query as QueryParam, status

from .dependencies import get_engine
from .models import ReinitializeResult, SearchStats
from ..config import settings
from ..core.errors import ConfigurationError, RetrievalError
from ..retrieval.engine import RetrievalEngine
from ..retrieval.models import Query, SearchResult

router = APIRouter(prefix="/search", tags=["search"])


# ---------------------------------------------------------------------
# Security Dependency
# ---------------------------------------------------------------------

async def verify_admin(
    x_admin_key: Optional[str] = Header(None, alias="x-admin-key"),
    key: Optional[str] = QueryParam(None),
):
    """
    Verify the request is from an admin using the configured API key.
    Checks header first, then query param.
    """
    expected_key = settings.admin_api_key.get_secret_value() if settings.admin_api_key else None

    if not expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is not configured (ADMIN_API_KEY missing)"
        )

    provided_key = x_admin_key or key

    if not provided_key or provided_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing admin API key"
        )


# ---------------------------------------------------------------------
# API Endpoints
# ---------------------------------------------------------------------

@router.post(
    "",
    response_model=SearchResult,
    response_model_by_alias=True,
    summary="Search open data with automatic fallback",
    status_code=status.HTTP_200_OK,
)
async def search(
    query: Query,
    engine: Annotated[RetrievalEngine, Depends(get_engine)],
) -> SearchResult:
    """
    Run a query through the retrieval fallback chain.

    Always answers 200 with a `SearchResult`; when every data-bearing
    strategy fails the body holds a single guidance item and
    `searchMethod` is `basic_fallback` or `error_fallback`.
    """
    return await engine.search(query)


@router.get(
    "/stats",
    response_model=SearchStats,
    response_model_by_alias=True,
    summary="Index and cache statistics",
)
async def get_stats(
    engine: Annotated[RetrievalEngine, Depends(get_engine)],
) -> SearchStats:
    return SearchStats.model_validate(engine.get_stats())


@router.post(
    "/reinitialize",
    response_model=ReinitializeResult,
    response_model_by_alias=True,
    summary="Force an index rebuild",
    dependencies=[Depends(verify_admin)],
)
async def reinitialize(
    engine: Annotated[RetrievalEngine, Depends(get_engine)],
) -> ReinitializeResult:
    """
    Rebuild the index from the content source and clear cached results.

    A rebuild already in progress is joined rather than duplicated.
    """
    try:
        summary = await engine.reinitialize_index()
    except ConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        )
    except RetrievalError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Index rebuild failed: {exc}",
        )

    return ReinitializeResult.model_validate(summary)
