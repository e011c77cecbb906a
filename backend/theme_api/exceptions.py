from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import ValidationError
import traceback
import uuid
from theme_api.core.logging import get_logger


def error_payload(code: str, message: str, details=None, request: Request | None = None, error_id: str | None = None):
    """Create error payload with user-friendly messages.

    Maps technical error codes to user-friendly messages while preserving
    technical details for debugging.
    """
    USER_FRIENDLY_MESSAGES = {
        "internal_error": "We're experiencing technical difficulties. Please try again in a moment.",
        "validation_error": "Please check your input and try again.",
        "service_unavailable": "A service we depend on is temporarily unavailable. Please try again shortly.",
        "http_error": message,
    }

    retryable_codes = {
        "service_unavailable",
        "internal_error",
    }

    user_message = USER_FRIENDLY_MESSAGES.get(code, message)

    out = {
        "error": {
            "code": code,
            "message": user_message,
            "technical_message": message if user_message != message else None,
            "details": details,
            "retryable": code in retryable_codes,
        }
    }

    rid = getattr(getattr(request, "state", None), "request_id", None)
    if rid:
        out["error"]["request_id"] = rid
    if error_id:
        out["error"]["error_id"] = error_id
    return out


def _field_errors(errors) -> list[dict]:
    """Reduce pydantic error dicts to field/message/type triples (JSON safe)."""
    out = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ())]
        out.append({
            "field": ".".join(loc),
            "message": err.get("msg"),
            "type": err.get("type"),
        })
    return jsonable_encoder(out)


def install_exception_handlers(app):
    log = get_logger("theme_api.exceptions")

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):
        log.warning(
            "HTTPException %s %s -> %s: %s",
            request.method, request.url.path, exc.status_code, exc.detail,
        )
        return JSONResponse(
            error_payload("http_error", str(exc.detail), {"status_code": exc.status_code}, request),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        log.info("RequestValidationError %s %s", request.method, request.url.path)
        return JSONResponse(
            error_payload("validation_error", "Validation failed", _field_errors(exc.errors()), request),
            status_code=400,
        )

    @app.exception_handler(ValidationError)
    async def validation_exc_handler(request: Request, exc: ValidationError):
        log.info("ValidationError %s %s", request.method, request.url.path)
        return JSONResponse(
            error_payload("validation_error", "Validation failed", _field_errors(exc.errors()), request),
            status_code=400,
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):
        err_id = str(uuid.uuid4())
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        log.error(
            "Unhandled exception [%s] %s %s\nTraceback:\n%s",
            err_id, request.method, request.url.path, tb,
        )
        return JSONResponse(
            error_payload("internal_error", "Something went wrong", None, request, error_id=err_id),
            status_code=500,
        )
