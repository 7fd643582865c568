"""CORS headers for the relay endpoints called from the browser."""
from fastapi import Request, Response

ALLOWED_METHODS = "POST, OPTIONS"
ALLOWED_HEADERS = "Content-Type, X-Test-Request"
PREFLIGHT_MAX_AGE = "86400"


def cors_headers(request: Request, methods: str = ALLOWED_METHODS) -> dict[str, str]:
    """Echo the caller's origin (``*`` when absent)."""
    return {
        "Access-Control-Allow-Origin": request.headers.get("origin") or "*",
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    }


def preflight(request: Request, methods: str = ALLOWED_METHODS) -> Response:
    headers = cors_headers(request, methods)
    headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
    return Response(status_code=204, headers=headers)


async def apply_cors(request: Request, response: Response):
    """Router dependency adding CORS headers to successful responses."""
    response.headers.update(cors_headers(request))
