"""Tracking cookie middleware.

Captures the request context the Conversions API needs (client ip, user
agent, geo, Meta browser cookies) into an httpOnly ``__meta_data`` cookie,
and assigns a first-party ``_vfx_extid`` visitor id when absent.
"""
import time
import uuid
from typing import Any
import orjson
import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from ..config import get_settings

log = structlog.get_logger()

META_DATA_COOKIE = "__meta_data"
EXTERNAL_ID_COOKIE = "_vfx_extid"
META_DATA_MAX_AGE = 3600
EXTERNAL_ID_MAX_AGE = 365 * 24 * 3600

EXCLUDED_PATHS = (
    "/health",
    "/metrics",
    "/api/health",
    "/favicon.ico",
    "/robots.txt",
    "/sitemap.xml",
)


def is_excluded(path: str) -> bool:
    return any(path.startswith(p) for p in EXCLUDED_PATHS)


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else ""


def get_geo(request: Request) -> dict[str, str]:
    """Geo hints set by the edge proxy, empty strings when absent."""
    return {
        "country": request.headers.get("x-vercel-ip-country") or request.headers.get("cf-ipcountry") or "",
        "city": request.headers.get("x-vercel-ip-city", ""),
        "region": request.headers.get("x-vercel-ip-country-region", ""),
    }


def capture_tracking_data(request: Request) -> dict[str, Any]:
    return {
        "ip": get_client_ip(request),
        "ua": request.headers.get("user-agent", ""),
        "geo": get_geo(request),
        "fbp": request.cookies.get("_fbp"),
        "fbc": request.cookies.get("_fbc"),
        "timestamp": int(time.time() * 1000),
    }


def read_tracking_data(request: Request) -> dict[str, Any]:
    """
    Tracking context for a relay request.

    Prefers the ``__meta_data`` cookie captured on an earlier page request,
    falls back to the current request headers. ``external_id`` is the raw
    visitor id; callers hash it before forwarding.
    """
    data: dict[str, Any] = {}
    raw = request.cookies.get(META_DATA_COOKIE)
    if raw:
        try:
            parsed = orjson.loads(raw)
            if isinstance(parsed, dict):
                data = parsed
        except orjson.JSONDecodeError:
            log.debug("tracking.cookie_invalid")

    current = capture_tracking_data(request)
    for key in ("ip", "ua", "fbp", "fbc"):
        if not data.get(key):
            data[key] = current[key]
    data.setdefault("geo", current["geo"])
    data["external_id"] = request.cookies.get(EXTERNAL_ID_COOKIE)
    return data


class TrackingCookieMiddleware(BaseHTTPMiddleware):
    """Sets ``__meta_data`` on every tracked path and ``_vfx_extid`` once."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if is_excluded(request.url.path):
            return response

        secure = get_settings().ENV == "production"
        try:
            tracking_data = capture_tracking_data(request)
            response.set_cookie(
                META_DATA_COOKIE,
                orjson.dumps(tracking_data).decode(),
                max_age=META_DATA_MAX_AGE,
                path="/",
                httponly=True,
                secure=secure,
                samesite="lax",
            )
            if not request.cookies.get(EXTERNAL_ID_COOKIE):
                response.set_cookie(
                    EXTERNAL_ID_COOKIE,
                    str(uuid.uuid4()),
                    max_age=EXTERNAL_ID_MAX_AGE,
                    path="/",
                    httponly=True,
                    secure=secure,
                    samesite="lax",
                )
            log.debug(
                "tracking.captured",
                ip="***",
                geo=tracking_data["geo"],
                has_fbp=bool(tracking_data["fbp"]),
                has_fbc=bool(tracking_data["fbc"]),
            )
        except Exception as e:
            log.error("tracking.capture_failed", error=str(e))
        return response
