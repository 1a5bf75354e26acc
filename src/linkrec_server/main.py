"""
Internal-Linking Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Deterministic startup
- Schema and singleton rows in place before the first request
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from sqlalchemy.exc import InterfaceError, OperationalError

from .config import settings
from .core.errors import (
    ConfigurationError,
    configuration_exception_handler,
    database_exception_handler,
    unhandled_exception_handler,
)
from .db import AsyncSessionLocal, Base, IndexStore, LinkingSettingsStore, async_engine

from .api import (
    health_routes,
    indexing_routes,
    settings_routes,
)


logger = logging.getLogger("linkrec.app")


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Create the linking tables and singleton rows, then serve.

    Startup fails fast when the database is unreachable.
    """
    logger.info("Starting linkrec-server")

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        await IndexStore(session).ensure_state()
        await LinkingSettingsStore(session).get()
        await session.commit()

    logger.info("Database schema ready")

    yield

    logger.info("Shutting down linkrec-server")
    await async_engine.dispose()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    configure_logging()

    app = FastAPI(
        title="linkrec-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(ConfigurationError, configuration_exception_handler)
    app.add_exception_handler(OperationalError, database_exception_handler)
    app.add_exception_handler(InterfaceError, configuration_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(indexing_routes.router)
    app.include_router(settings_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
