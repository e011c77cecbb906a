"""Router attachment and health check endpoints."""
from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from fastapi import FastAPI


def attach_routes(app: FastAPI) -> dict:
    """Attach all routers and configure health check endpoints.

    Args:
        app: FastAPI application instance

    Returns:
        Router availability map from attach_routers
    """
    from theme_api.core.logging import get_logger
    from theme_api.routing import attach_routers
    from theme_api.core import database

    log = get_logger("theme_api.config.routes")

    try:
        availability = attach_routers(app)
    except Exception as e:
        log.exception("attach_routers threw an exception: %s", e)
        availability = {}
    app.state.router_availability = availability

    @app.get("/api/health")
    def api_health():
        return {"status": "ok"}

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    @app.get("/readyz")
    def readyz():
        try:
            with database.engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
        except Exception as e:
            log.warning("[db] Readiness check failed: %s", e)
            return JSONResponse(status_code=503, content={"ok": False, "database": "unavailable"})
        return {"ok": True, "database": "ok", "routers": availability}

    return availability
