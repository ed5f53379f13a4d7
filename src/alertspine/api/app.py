"""
FastAPI application factory.

Usage::

    from alertspine.api import create_app
    app = create_app()

    # or via uvicorn
    uvicorn alertspine.api:create_app --factory

When no engine is passed the app builds one from settings and owns its
lifecycle: the lifespan starts it (recovering timers and cooldowns) and
stops it on shutdown. An engine passed in is left to its caller.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from alertspine import __version__
from alertspine.api.errors import alertspine_error_handler, unhandled_exception_handler
from alertspine.api.routers import alerts, health, rules, samples
from alertspine.core.errors import AlertSpineError
from alertspine.core.logging import get_logger
from alertspine.core.settings import EngineSettings
from alertspine.engine import AlertEngine

logger = get_logger(__name__)


def create_app(
    engine: AlertEngine | None = None,
    *,
    settings: EngineSettings | None = None,
) -> FastAPI:
    """Build and return the configured FastAPI application."""
    owns_engine = engine is None
    if engine is None:
        engine = AlertEngine(settings=settings or EngineSettings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("api_starting", version=__version__, owns_engine=owns_engine)
        if owns_engine:
            engine.start()
        yield
        if owns_engine:
            engine.stop()
        logger.info("api_shutdown")

    app = FastAPI(
        title="alertspine",
        version=__version__,
        description="Threshold alerting for server metrics.",
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.settings = engine.settings

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(AlertSpineError, alertspine_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    app.include_router(health.router, tags=["health"])
    app.include_router(alerts.router, tags=["alerts"])
    app.include_router(samples.router, tags=["samples"])
    app.include_router(rules.router, tags=["rules"])

    return app
