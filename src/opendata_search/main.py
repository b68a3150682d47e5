"""
Search Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Deterministic startup
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from .config import settings
from .core.errors import unhandled_exception_handler

from .api import (
    search_routes,
    health_routes,
)


logger = logging.getLogger("search.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    The index is not built at startup; the first search that reaches the
    local vector stage builds it, and concurrent first searches share that
    single build.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="opendata-search-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(search_routes.router)

    # --------------------------------------------------------------
    # Startup Hook
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup_report() -> None:
        logger.info("Starting opendata-search-server")

        if settings.gemini_api_key is None:
            logger.warning(
                "GEMINI_API_KEY is not set; vector search is disabled and "
                "queries will be served by text search or the static fallback"
            )
        if settings.admin_api_key is None:
            logger.info("ADMIN_API_KEY is not set; index reinitialization is disabled")

    # --------------------------------------------------------------
    # Shutdown Hook
    # --------------------------------------------------------------

    @app.on_event("shutdown")
    async def _shutdown_cleanup() -> None:
        logger.info("Shutting down opendata-search-server")

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
