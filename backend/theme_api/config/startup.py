"""Startup and shutdown hooks for the FastAPI application."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI


def register_startup(app: FastAPI) -> None:
    """Register startup/shutdown event handlers with the FastAPI app.

    Startup creates missing tables, then starts the scheduled processor when
    SCHEDULER_ENABLED is set. Shutdown stops it.

    Args:
        app: FastAPI application instance
    """
    from theme_api.core.config import settings
    from theme_api.core.logging import get_logger

    log = get_logger("theme_api.config.startup")
    app.state.scheduler = None

    @app.on_event("startup")
    async def _startup():  # type: ignore
        from theme_api.core.database import create_db_and_tables
        from theme_api.services.billing import configure_stripe

        try:
            create_db_and_tables()
            log.info("[startup] Database tables ensured")
        except Exception as e:
            log.exception("[startup] Table creation failed: %s", e)

        if not configure_stripe():
            log.warning("[startup] STRIPE_SECRET_KEY not set; subscription routes will fail")

        if settings.SCHEDULER_ENABLED:
            from theme_api.services.scheduler import ScheduledProcessor

            processor = ScheduledProcessor()
            processor.start()
            app.state.scheduler = processor
            log.info("[startup] Scheduler started: %s", processor.registry.running())
        else:
            log.info("[startup] Scheduler disabled (SCHEDULER_ENABLED=false)")

    @app.on_event("shutdown")
    async def _shutdown():  # type: ignore
        processor = getattr(app.state, "scheduler", None)
        if processor is not None:
            stopped = processor.stop()
            app.state.scheduler = None
            log.info("[startup] Scheduler stopped: %s", stopped)
