"""FastAPI application for FleetOps."""

import asyncio
import contextlib
import time
from http import HTTPStatus
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from fleetops import __version__
from fleetops.api import drivers_router, inspections_router, vehicles_router
from fleetops.config import get_settings
from fleetops.exceptions import FleetOpsError, ServiceError, error_response
from fleetops.logging import bind_request_context, setup_logging
from fleetops.metrics import metrics
from fleetops.ratelimit.filter import get_rate_limit_filter
from fleetops.ratelimit.service import RateLimitService, get_rate_limit_service
from fleetops.repository import get_repository
from fleetops.security import ROLE_ADMIN, authentication_middleware, hsts_middleware, require_roles

logger = structlog.get_logger()


async def sweep_idle_buckets(service: RateLimitService, interval_seconds: float) -> None:
    """Periodically drop idle rate limit buckets."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = service.evict_idle()
        if removed:
            metrics.rate_limit_evictions_total.inc(removed)
        metrics.rate_limit_buckets.set(service.bucket_count)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    # Startup
    setup_logging()
    settings = get_settings()
    logger.info("fleetops_starting", version=__version__)

    # Build the limiter eagerly so a bad configuration stops startup
    rate_limiter = get_rate_limit_service()

    repository = get_repository()
    try:
        await repository.connect()
    except Exception as e:
        logger.error("redis_connection_failed", error=str(e))
        raise

    sweeper = None
    if settings.rate_limit_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            sweep_idle_buckets(rate_limiter, settings.rate_limit_sweep_interval_seconds)
        )

    yield

    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await repository.disconnect()
    logger.info("fleetops_stopped")


app = FastAPI(
    title="FleetOps API",
    version=__version__,
    description="Fleet management: vehicles, drivers and inspections",
    lifespan=lifespan,
    docs_url="/swagger-ui",
    swagger_ui_oauth2_redirect_url="/swagger-ui/oauth2-redirect",
    openapi_url="/v3/api-docs",
    redoc_url=None,
)


# === Middleware ===
# Registered innermost first: hsts -> metrics -> authentication -> rate limit -> routes


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Throttle callers before any route runs."""
    if not get_settings().rate_limit_enabled:
        return await call_next(request)
    return await get_rate_limit_filter()(request, call_next)


app.middleware("http")(authentication_middleware)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Bind the logging context and record HTTP metrics for each request."""
    bind_request_context(request)
    start_time = time.perf_counter()

    response: Response = await call_next(request)

    duration = time.perf_counter() - start_time
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    method = request.method

    metrics.http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration.labels(
        method=method,
        endpoint=endpoint,
    ).observe(duration)

    return response


app.middleware("http")(hsts_middleware)


# === Routers ===

app.include_router(vehicles_router)
app.include_router(drivers_router)
app.include_router(inspections_router)


# === Health endpoints ===


@app.get("/actuator/health", tags=["Health"])
async def health() -> dict[str, Any]:
    """Health check endpoint."""
    repository = get_repository()
    redis_healthy = await repository.health_check()

    status = "healthy" if redis_healthy else "degraded"

    return {
        "status": status,
        "version": __version__,
        "checks": {
            "redis": "ok" if redis_healthy else "error",
        },
    }


@app.get("/actuator/info", tags=["Health"], dependencies=[Depends(require_roles(ROLE_ADMIN))])
async def info() -> dict[str, Any]:
    """Build and rate limit details, for administrators."""
    settings = get_settings()
    return {
        "name": "fleetops",
        "version": __version__,
        "rateLimit": {
            "enabled": settings.rate_limit_enabled,
            "capacity": settings.rate_limit_capacity,
            "refillPeriodSeconds": settings.rate_limit_refill_period_seconds,
        },
    }


@app.get("/api/public/status", tags=["Public"])
async def public_status() -> dict[str, str]:
    """Unauthenticated liveness probe for API clients."""
    return {"status": "ok", "version": __version__}


# === Metrics endpoint ===


@app.get("/metrics", tags=["Observability"])
async def prometheus_metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# === Error handlers ===


@app.exception_handler(FleetOpsError)
async def fleetops_exception_handler(request: Request, exc: FleetOpsError) -> JSONResponse:
    """Render domain and security errors with the shared error body."""
    if isinstance(exc, ServiceError):
        logger.error("service_exception", error=str(exc.__cause__ or exc), path=request.url.path)
    elif exc.status_code >= 500:
        logger.error("fleetops_exception", error=exc.message, path=request.url.path)
    else:
        logger.debug("request_rejected", status=exc.status_code, error=exc.message)
    return error_response(exc.status_code, exc.error, exc.message, request.url.path)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Map body and parameter validation failures to 400."""
    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        return error_response(
            400,
            "Bad Request",
            "Malformed JSON request. Please check your request format.",
            request.url.path,
        )

    field_errors: dict[str, str] = {}
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        field_errors.setdefault(".".join(location) or "request", error.get("msg", "Invalid value"))

    logger.debug("validation_failed", path=request.url.path, fields=sorted(field_errors))
    return error_response(
        400,
        "Validation Failed",
        "Request validation failed for one or more fields.",
        request.url.path,
        fieldErrors=field_errors,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Keep routing errors (404, 405) in the shared error format."""
    return error_response(
        exc.status_code,
        HTTPStatus(exc.status_code).phrase,
        str(exc.detail),
        request.url.path,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("unhandled_exception", error=str(exc), path=request.url.path)
    return error_response(
        500,
        "Internal Server Error",
        "An unexpected error occurred. Please try again later.",
        request.url.path,
    )
