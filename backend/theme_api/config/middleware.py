"""Middleware configuration for the FastAPI application."""
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest

if TYPE_CHECKING:
    from fastapi import FastAPI
    from theme_api.core.config import Settings

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Stamp every request with an id (client supplied or generated) and echo it back."""

    async def dispatch(self, request: StarletteRequest, call_next):
        incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
        request_id = incoming[:128] if incoming else str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def configure_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure all middleware for the application.

    Args:
        app: FastAPI application instance
        settings: Application settings
    """
    from theme_api.core.logging import get_logger
    log = get_logger("theme_api.config.middleware")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
        allow_credentials=True,
    )
    app.add_middleware(RequestIDMiddleware)
    log.info("[startup] CORS origins: %s", settings.cors_allowed_origin_list)

    from theme_api.exceptions import install_exception_handlers
    install_exception_handlers(app)
