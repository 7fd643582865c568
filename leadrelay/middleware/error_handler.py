"""Structured error responses.

Relay errors and request validation errors are rendered by exception
handlers; anything else is caught by the middleware and rendered as 500.
"""
from typing import Any
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from .correlation import get_correlation_id
from ..api.cors import cors_headers
from ..errors import RelayError

log = structlog.get_logger()


def error_body(message: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": message}
    if details is not None:
        body["details"] = details
    body["correlation_id"] = get_correlation_id()
    return body


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns unhandled exceptions into a JSON 500."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            log.error(
                "unhandled.exception",
                error=str(exc),
                error_type=exc.__class__.__name__,
                path=request.url.path,
                exc_info=True,
            )
            return JSONResponse(status_code=500, content=error_body("Internal server error"))


def api_cors(request: Request) -> dict[str, str] | None:
    return cors_headers(request) if request.url.path.startswith("/api/") else None


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    level = log.error if exc.status_code >= 500 else log.warning
    level(
        "relay.error",
        error=exc.message,
        error_type=exc.__class__.__name__,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.details),
        headers=api_cors(request),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    log.warning("request.invalid", path=request.url.path, errors=len(errors))
    missing = [str(e["loc"][-1]) for e in errors if e.get("type") == "missing"]
    message = "Missing required fields" if missing else "Invalid request"
    return JSONResponse(
        status_code=400,
        content=error_body(message, missing or [e.get("msg") for e in errors]),
        headers=api_cors(request),
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
