"""
FastAPI application for the comparable adjustment engine.

Production deployment configuration via environment variables.
"""

import asyncio
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.adjustment_engine import __version__
from utils.config import Config
from web.adjustment_routes import get_preset_writer, router as adjustment_router


logger = logging.getLogger(__name__)

# =============================================================================
# Environment Configuration
# =============================================================================

# Production mode detection
IS_PRODUCTION = os.getenv("PRODUCTION", "").lower() == "true"

# CORS configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    # Development fallback only
    ALLOWED_ORIGINS = ["http://localhost:8000", "http://127.0.0.1:8000"]

# Debug mode - never enabled in production
DEBUG_MODE = os.getenv("DEBUG", "false").lower() == "true" and not IS_PRODUCTION


async def flush_presets_periodically(interval: float) -> None:
    """Write debounced preset edits once their quiet period has passed."""
    writer = get_preset_writer()
    while True:
        await asyncio.sleep(interval)
        await asyncio.to_thread(writer.flush_due)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    config = Config.load()

    app = FastAPI(
        title="Comparable Adjustment Engine",
        description="Comparable sale adjustments for the direct-comparison approach",
        version=__version__,
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=DEBUG_MODE,
    )

    # ==========================================================================
    # Healthcheck endpoints are registered first and perform no IO.
    # ==========================================================================
    @app.get("/", include_in_schema=False)
    def root():
        """Root healthcheck. No dependencies, no IO."""
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        """Secondary health endpoint. No dependencies, no IO."""
        return {"status": "healthy"}

    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
            allow_headers=["*"],
        )

    # ==========================================================================
    # Startup: background preset flushing
    # ==========================================================================
    @app.on_event("startup")
    async def on_startup():
        """Start the preset flush loop. Runs after healthcheck is ready."""
        app.state.preset_flush_task = asyncio.create_task(
            flush_presets_periodically(config.preset_flush_interval)
        )
        logger.info("Comparable Adjustment Engine started")

    @app.on_event("shutdown")
    async def on_shutdown():
        """Stop the flush loop and write whatever is still pending."""
        task = getattr(app.state, "preset_flush_task", None)
        if task is not None:
            task.cancel()
        get_preset_writer().flush()

    app.include_router(adjustment_router)

    return app


# Create app instance for uvicorn
app = create_app()
