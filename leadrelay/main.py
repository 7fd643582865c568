"""
LeadRelay - tracking relay and lead intake service.

Features:
- Meta Conversions API and GA4 Measurement Protocol relays
- Lead intake with scoring and CRM webhook delivery
- Sent-event deduplication
- Structured logging with correlation IDs, Prometheus metrics, health checks
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import get_settings
from .logging import setup_logging, get_logger
from .api import dedup_router, ga4_router, leads_router, meta_router, webhook_router
from .middleware.correlation import CorrelationIdMiddleware
from .middleware.error_handler import ErrorHandlerMiddleware, register_exception_handlers
from .middleware.metrics import MetricsMiddleware
from .middleware.tracking import TrackingCookieMiddleware
from .middleware.validation import ValidationMiddleware
from .metrics import get_metrics
from .health import HealthChecker
from .services.dedup import dedup_store
from .services.gateways import ga4_gateway, meta_gateway

VERSION = "0.1.0"

settings = get_settings()

setup_logging(json_output=settings.LOG_JSON)
logger = get_logger()

metrics = get_metrics()
health_checker = HealthChecker(service_name="leadrelay", version=VERSION)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "service_starting",
        version=VERSION,
        env=settings.ENV,
        dedup_backend=settings.DEDUP_BACKEND,
        supabase_configured=bool(settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY),
    )
    await meta_gateway.initialize()
    await ga4_gateway.initialize()
    yield
    logger.info("service_stopping")
    await dedup_store.close()
    metrics.app_up.labels(service="leadrelay", version=VERSION).set(0)


app = FastAPI(
    title="LeadRelay",
    version=VERSION,
    description="Tracking relay and lead intake service with unified observability",
    lifespan=lifespan,
)

# Last added runs first: correlation id wraps everything
app.add_middleware(TrackingCookieMiddleware)
app.add_middleware(ValidationMiddleware)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

app.include_router(webhook_router.router)
app.include_router(ga4_router.router)
app.include_router(meta_router.router)
app.include_router(leads_router.router)
app.include_router(dedup_router.router)

app.mount("/metrics", make_asgi_app(registry=metrics.registry))


@app.get("/health")
async def health():
    """Liveness probe."""
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready():
    """
    Readiness probe.

    Returns:
        200: Service is ready to handle traffic
        503: Service is not ready
    """
    logger.debug("health_check_readiness")
    metrics.update_system_metrics()
    result = await health_checker.readiness()
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(content=result, status_code=status_code)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "leadrelay.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=True,
    )
