"""FastAPI application factory.

``create_app()`` builds and configures the application once; the module-level
``app`` is what ASGI servers load (``uvicorn theme_api.main:app``).
"""
from __future__ import annotations

from fastapi import FastAPI

_APP_SINGLETON: FastAPI | None = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    1. Logging and Sentry configuration
    2. FastAPI app instantiation
    3. Application middleware and exception handlers
    4. Routers and health checks
    5. Startup/shutdown hooks

    Returns:
        FastAPI: Configured application instance ready for use by ASGI server.
    """
    global _APP_SINGLETON
    # Repeated imports/calls must not re-run initialization (duplicate handlers)
    if _APP_SINGLETON is not None:
        return _APP_SINGLETON

    from theme_api.core.config import settings
    from theme_api.core.logging import get_logger

    # Step 1: Configure logging and Sentry
    from theme_api.config.logging import configure_logging, setup_sentry
    configure_logging()
    env = (settings.APP_ENV or "dev").strip().lower()
    setup_sentry(environment=env)

    log = get_logger("theme_api.main")

    # Step 2: Create FastAPI app
    app = FastAPI(title="Theme Discovery API", debug=settings.is_dev_mode)

    # Log pool configuration without touching the pool (no connection at import)
    from theme_api.core import database as db_module
    if db_module.engine.dialect.name != "sqlite":
        pool_kwargs = db_module._POOL_KWARGS
        log.info(
            "[db-pool] Configuration: pool_size=%d, max_overflow=%d, pool_timeout=%ds",
            pool_kwargs.get("pool_size", 0),
            pool_kwargs.get("max_overflow", 0),
            pool_kwargs.get("pool_timeout", 30),
        )

    # Step 3: Configure middleware
    from theme_api.config.middleware import configure_middleware
    configure_middleware(app, settings)

    # Step 4: Attach routes and health checks
    from theme_api.config.routes import attach_routes
    attach_routes(app)

    # Step 5: Register startup tasks
    from theme_api.config.startup import register_startup
    register_startup(app)

    log.info("[startup] Application configured successfully (env=%s)", env)

    _APP_SINGLETON = app
    return app


app = create_app()
