"""Remvana application entry point.

Quick Start:
    $ remvana serve            # Start the API server
    $ remvana init-db          # Create database tables
    $ remvana doctor           # Show configuration status

Environment:
    REMVANA_ENV                # development/production (default: development)
    REMVANA_LOG_LEVEL          # DEBUG/INFO/WARNING/ERROR (default: INFO)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from remvana import __version__
from remvana.api.routes import router
from remvana.config import get_settings
from remvana.database import close_db, init_db
from remvana.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    settings = get_settings()
    setup_logging()
    logger.info("remvana_starting", version=__version__, env=settings.remvana_env)

    await init_db()
    for provider in ("duffel", "stripe", "openai"):
        if not settings.has_provider(provider):
            logger.warning("provider_not_configured", provider=provider)

    yield

    logger.info("remvana_shutting_down")
    await close_db()


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="Remvana",
        description="Travel booking backend: trips, bookings, proposals and corporate cards",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix="/api")
    return app


app = create_app()


def main() -> None:
    """Run the API server with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "remvana.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.remvana_env == "development",
        log_level=settings.remvana_log_level.lower(),
    )


if __name__ == "__main__":
    main()
