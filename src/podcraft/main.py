"""
FastAPI Application Entry Point.

Usage:
    # Run with uvicorn
    uvicorn podcraft.main:app --host 0.0.0.0 --port 3000

    # Or use the module directly
    python -m uvicorn podcraft.main:app --reload
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from podcraft import __version__
from podcraft.api.dependencies import get_podcast_service
from podcraft.api.routes import podcraft_error_handler, router, unexpected_error_handler
from podcraft.core.errors import PodcraftError
from podcraft.core.logging import configure_logging, get_logger, info


def init_service() -> None:
    """Create the service at startup so the speaker table is seeded before the first request."""
    service = get_podcast_service()
    info(get_logger("podcraft.main"), "startup", genai=service.genai_configured, quota=service.quota_enabled)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_service()
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function:
        1. Configures structured logging (PODCRAFT_LOG_LEVEL etc.)
        2. Registers the API router and error handlers
        3. Initializes the service on startup (lifespan)
    """
    configure_logging()

    app = FastAPI(title="podcraft", version=__version__, lifespan=lifespan)
    app.include_router(router)
    app.add_exception_handler(PodcraftError, podcraft_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
