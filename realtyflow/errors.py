"""
Error taxonomy and the JSON error envelope.

Every error response has the shape {"success": false, "message": ...} with
optional extra fields; `error` (internal detail) is omitted in production.
"""

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from realtyflow.config import config
from realtyflow.logging_config import get_logger

logger = get_logger(__name__)


class BookingError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    default_message = "Server Error"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.detail = detail
        self.extra = extra
        super().__init__(self.message)


class InvalidInput(BookingError):
    status_code = 400
    default_message = "Validation Error"


class NotFound(BookingError):
    status_code = 404
    default_message = "Not found"


class Conflict(BookingError):
    status_code = 409
    default_message = "Conflict"


class ProviderUnavailable(BookingError):
    """Calendar provider call failed. Normally caught and logged, never surfaced."""
    status_code = 503
    default_message = "Calendar provider unavailable"


class ServerError(BookingError):
    status_code = 500
    default_message = "Server Error"


def error_body(message: str, *, detail: Optional[str] = None, **extra: Any) -> dict:
    body = {"success": False, "message": message}
    body.update(extra)
    if detail and not config.is_production():
        body["error"] = detail
    return body


async def _booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.detail or exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, detail=exc.detail, **exc.extra),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
    return JSONResponse(status_code=400, content=error_body("Validation Error", errors=messages))


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(status_code=500, content=error_body("Server Error", detail=str(exc)))


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(BookingError, _booking_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
