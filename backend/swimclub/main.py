"""
Swim Club Reservations API - Main Application Entry Point

Monthly pool-session enrollment for club members:
- Batch booking of next month's sessions, all or nothing
- Per-day write lock so concurrent bookings never exceed a day's capacity
- Admin day cancellation with refunds in one transaction
- Redis caching of the weekly timetable, structured logging, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from swimclub.core.config import get_settings
from swimclub.core.exceptions import register_exception_handlers
from swimclub.core.logging import setup_logging, get_logger
from swimclub.core.metrics import metrics_endpoint
from swimclub.api.router import api_router
from swimclub.api.middleware import RequestLoggingMiddleware
from swimclub.db.session import engine
from swimclub.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        timezone=settings.TIMEZONE,
        notifier=settings.NOTIFIER,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Serving the timetable without cache")

    yield

    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Swim club session scheduling with capacity-safe monthly enrollment",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_endpoint()
