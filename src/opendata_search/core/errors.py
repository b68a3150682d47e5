"""
Error Taxonomy and Global Error Handling

This module defines the retrieval-layer exception hierarchy and the
application-wide exception handler for the search server.

Design Goals
------------
- Failures of external collaborators (embedding provider, catalog, cloud
  vector search) are typed so the fallback chain can log them with the
  right severity
- Never leak internal exception details to HTTP clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("search.errors")


# ---------------------------------------------------------------------
# Retrieval Exceptions
# ---------------------------------------------------------------------

class RetrievalError(RuntimeError):
    """Base error for all retrieval-layer failures."""

    retryable: bool = False


class ProviderError(RetrievalError):
    """An external call (embedding, catalog, cloud search) failed."""

    retryable = True


class QuotaError(ProviderError):
    """The provider rejected the call because of rate limits or quota."""


class UnavailableError(ProviderError):
    """The provider is down, returned a 5xx, or could not be reached."""


class NetworkError(ProviderError):
    """The content source could not be reached or answered with an error."""


class EmbeddingError(ProviderError):
    """The embedding provider returned a malformed response."""


class ConfigurationError(RetrievalError):
    """A collaborator is not configured (e.g. no cloud endpoint)."""


class StrategyTimeoutError(RetrievalError):
    """A strategy or external call exceeded its time bound."""


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    The search route itself never raises (the fallback chain converts every
    failure into a degraded result), so this handler only fires for defects
    in the administrative and introspection routes.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
