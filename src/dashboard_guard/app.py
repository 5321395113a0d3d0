"""
Application factory for a guarded dashboard.

Usage:
    from dashboard_guard.app import create_app

    app = create_app()
    # uvicorn dashboard_guard.app:create_app --factory
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from dashboard_guard import __version__
from dashboard_guard.core.config import GuardSettings, get_settings
from dashboard_guard.core.logging import setup_logging
from dashboard_guard.middleware.fastapi import (
    DashboardGuardMiddleware,
    GuardComponents,
    create_guard_router,
)

logger = logging.getLogger(__name__)


def create_app(settings: GuardSettings | None = None) -> FastAPI:
    """
    Build a FastAPI app with the dashboard gate installed.

    Args:
        settings: Settings to use (defaults to environment settings)

    Returns:
        Configured application
    """
    settings = settings or get_settings()
    components = GuardComponents.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(settings.log_level)
        if components.token_store.info() is None:
            logger.warning(
                "No dashboard token configured at %s; dashboard is OPEN",
                settings.token_file,
            )
        yield
        components.close()
        logger.info("Dashboard guard stopped")

    app = FastAPI(title="Dashboard Guard", version=__version__, lifespan=lifespan)
    app.state.guard = components

    app.add_middleware(
        DashboardGuardMiddleware,
        gate=components.gate,
        exempt_paths=settings.exempt_paths,
    )
    app.include_router(create_guard_router())

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
