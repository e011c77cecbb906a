from __future__ import annotations

from fastapi import FastAPI
import logging
import traceback

log = logging.getLogger(__name__)


def _safe_import(mod: str, name: str = "router"):
    """Import router objects defensively; return None if missing/errors.

    The import exception is logged with a short stack trace so a broken router
    shows up in startup logs instead of silently disappearing from the API.
    """
    candidate = mod if "." in mod else f"theme_api.routers.{mod}"
    try:
        m = __import__(candidate, fromlist=[name])
    except Exception as exc:
        tb_short = "\n".join(traceback.format_exc().splitlines()[:8])
        log.warning("_safe_import failed for %s: %r\n%s", candidate, exc, tb_short)
        return None
    return getattr(m, name, None)


themes_router          = _safe_import("theme_api.routers.themes")
users_router           = _safe_import("theme_api.routers.users")
subscriptions_router   = _safe_import("theme_api.routers.subscriptions")
billing_webhook_router = _safe_import("theme_api.routers.billing_webhook")
process_data_router    = _safe_import("theme_api.routers.process_data")


def _maybe(app: FastAPI, r, prefix: str = "/api"):
    if r is not None:
        app.include_router(r, prefix=prefix)


def attach_routers(app: FastAPI) -> dict:
    availability: dict = {}

    _maybe(app, themes_router)
    availability['themes'] = themes_router is not None
    _maybe(app, users_router)
    availability['users'] = users_router is not None
    _maybe(app, subscriptions_router)
    availability['subscriptions'] = subscriptions_router is not None
    _maybe(app, billing_webhook_router)
    availability['billing_webhook'] = billing_webhook_router is not None
    _maybe(app, process_data_router)
    availability['process_data'] = process_data_router is not None

    missing = sorted(k for k, ok in availability.items() if not ok)
    if missing:
        log.error("Routers unavailable: %s", ", ".join(missing))
    else:
        log.info("All routers attached: %s", ", ".join(sorted(availability)))
    return availability
