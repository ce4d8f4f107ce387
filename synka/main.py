"""Synka Billing — FastAPI application entry point.

Run with the application factory so settings are read once at startup::

    uvicorn synka.main:create_app --factory
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from synka.api.v1.payments import router as payments_router
from synka.api.v1.webhooks import router as webhooks_router
from synka.config import Settings, get_settings
from synka.database import create_engine_from_settings, create_session_factory

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup: one engine per process
    engine = create_engine_from_settings(app.state.settings)
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    logger.info("Database engine ready (%s)", engine.url.render_as_string(hide_password=True))
    yield
    # Shutdown — dispose engine connections
    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    ``settings`` defaults to the process environment; a missing database URL,
    service key or webhook secret fails here, before any request is served.
    """
    settings = settings or get_settings()

    # Configure root logger so all synka.* loggers output to stderr.
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Razorpay webhook ingestion and subscription reconciliation for Synka.",
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(webhooks_router)
    app.include_router(payments_router)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "service": settings.app_name}

    @app.get("/", tags=["root"])
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
        }

    return app
