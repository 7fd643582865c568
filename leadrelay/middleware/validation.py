"""Validation middleware for request payload size and JSON syntax."""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import structlog
import orjson
from .error_handler import api_cors, error_body
from ..config import get_settings

log = structlog.get_logger()
settings = get_settings()


def _too_large(size: int, request: Request) -> JSONResponse:
    log.warning("payload.too_large", size=size, max_size=settings.MAX_EVENT_SIZE, path=request.url.path)
    return JSONResponse(
        status_code=413,
        content=error_body(
            f"Request payload exceeds maximum size of {settings.MAX_EVENT_SIZE} bytes",
            {"max_size": settings.MAX_EVENT_SIZE, "received_size": size},
        ),
        headers=api_cors(request),
    )


class ValidationMiddleware(BaseHTTPMiddleware):
    """Rejects oversized bodies (413) and malformed JSON (400)."""

    async def dispatch(self, request: Request, call_next):
        if request.method not in ("POST", "PUT", "PATCH"):
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > settings.MAX_EVENT_SIZE:
            return _too_large(int(content_length), request)

        if request.headers.get("content-type", "").startswith("application/json"):
            body = await request.body()
            if len(body) > settings.MAX_EVENT_SIZE:
                return _too_large(len(body), request)

            if body:
                try:
                    orjson.loads(body)
                except orjson.JSONDecodeError as e:
                    log.warning("invalid.json", error=str(e), path=request.url.path)
                    return JSONResponse(
                        status_code=400,
                        content=error_body("Invalid JSON body", str(e)),
                        headers=api_cors(request),
                    )

        return await call_next(request)
