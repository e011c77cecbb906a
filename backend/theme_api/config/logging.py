"""Logging and Sentry configuration for the application."""
from __future__ import annotations

import logging
import os


def configure_logging() -> None:
    """Configure application logging.

    Calls the core logging configuration, then quiets the SQL echo logger
    which is noisy at INFO under the SQLite dev engine.
    """
    from theme_api.core.logging import configure_logging as core_configure_logging
    core_configure_logging()
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def setup_sentry(environment: str, dsn: str | None = None) -> bool:
    """Initialize Sentry error tracking.

    Args:
        environment: Current environment (dev, production, etc.)
        dsn: Sentry DSN. If None, reads from SENTRY_DSN env var.

    Returns:
        True when Sentry was initialized.
    """
    from theme_api.core.logging import get_logger
    log = get_logger("theme_api.config.logging")

    sentry_dsn = dsn or os.getenv("SENTRY_DSN")

    # Skip Sentry in dev/test environments
    if not sentry_dsn or environment in ("dev", "development", "test", "testing", "local"):
        log.debug("[startup] Sentry disabled (missing DSN or dev/test env)")
        return False

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        def before_send(event, hint):
            # 404s are client mistakes, not errors
            if event.get("tags", {}).get("status_code") == 404:
                return None
            if "exc_info" in hint:
                _, exc_value, _ = hint["exc_info"]
                if hasattr(exc_value, "request_id"):
                    event.setdefault("tags", {})["request_id"] = str(exc_value.request_id)
            return event

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[
                FastApiIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.WARNING),
                SqlalchemyIntegration(),
            ],
            traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
            environment=environment,
            send_default_pii=False,
            before_send=before_send,
            max_breadcrumbs=100,
        )
        log.info("[startup] Sentry initialized for env=%s", environment)
        return True
    except Exception as se:
        log.warning("[startup] Sentry init failed: %s", se)
        return False
