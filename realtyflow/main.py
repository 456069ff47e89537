"""Main FastAPI application."""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from realtyflow.config import config
from realtyflow.database import init_db
from realtyflow.errors import register_exception_handlers
from realtyflow.health import VERSION, router as health_router
from realtyflow.logging_config import logger
from realtyflow.metrics import api_request_duration, api_requests_total
from realtyflow.realtime import router as realtime_router
from realtyflow.routers.agents import router as agents_router
from realtyflow.routers.booking import router as booking_router
from realtyflow.routers.core import router as core_router
from realtyflow.routers.leads import router as leads_router
from realtyflow.routers.meetings import router as meetings_router
from realtyflow.routers.properties import router as properties_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    # Startup
    logger.info("application_starting", version=VERSION, environment=config.ENVIRONMENT)
    init_db()
    logger.info("database_initialized")
    logger.info("google_calendar_configured", configured=config.has_google_oauth())
    logger.info("smtp_configured", configured=config.has_smtp_config())
    logger.info("twilio_configured", configured=config.has_twilio_config())

    yield

    # Shutdown
    logger.info("application_shutting_down")


app = FastAPI(
    title="RealtyFlow API",
    description="Real-estate lead management with automated viewing bookings",
    version=VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL] if config.is_production() else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    """Count requests per route and record their latency."""
    start = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    api_requests_total.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
    api_request_duration.observe(time.perf_counter() - start)
    return response


app.include_router(core_router)
app.include_router(health_router)
app.include_router(booking_router)
app.include_router(leads_router)
app.include_router(properties_router)
app.include_router(meetings_router)
app.include_router(agents_router)
app.include_router(realtime_router)


# GET /metrics
# Gets: nothing
# Returns: Prometheus text exposition
# Example:
#   curl http://localhost:8000/metrics
@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
