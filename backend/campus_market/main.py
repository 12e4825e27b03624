"""
Campus Marketplace API - Main Application Entry Point

A university marketplace backend demonstrating:
- All-or-nothing multi-product bookings that never oversell
- Immutable price/seller snapshots per booked line item
- Compensating stock restoration on cancellation
- Best-effort notifications dispatched after commit
- Structured logging with request correlation
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campus_market.core.config import get_settings
from campus_market.core.exceptions import AppError, app_error_handler
from campus_market.core.logging import setup_logging, get_logger
from campus_market.core.metrics import metrics_endpoint
from campus_market.api.router import api_router
from campus_market.api.middleware import RequestLoggingMiddleware
from campus_market.services.cache_service import get_redis, close_redis, get_cache_stats
from campus_market.services.notifier_factory import create_notifier

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
        notifier=settings.NOTIFIER_BACKEND,
        price_policy=settings.BOOKING_PRICE_POLICY,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    # One notifier per process, shared by every request
    app.state.notifier = create_notifier()

    yield

    await app.state.notifier.close()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="University marketplace API with atomic, oversell-safe bookings",
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
app.add_exception_handler(AppError, app_error_handler)

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


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
