"""
Park Booking API - Main Application Entry Point

Ticketing backend for an amusement park:
- Mixed carts of capacity-bound event tickets and open game tickets
- One master ticket per booking with per-product entitlement balances
- Oversell-proof capacity via conditional UPDATEs, all-or-nothing bookings
- Gate redemption and cancellation/refund
- Redis-cached catalog, structured logging, Prometheus metrics
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from parkpass.api.middleware import RequestLoggingMiddleware
from parkpass.api.router import api_router
from parkpass.core.config import get_settings
from parkpass.core.errors import DomainError, ErrorCode
from parkpass.core.logging import get_logger, setup_logging
from parkpass.core.metrics import metrics_endpoint
from parkpass.services.cache_service import close_redis, get_cache_stats, get_redis

settings = get_settings()
logger = get_logger(__name__)

ERROR_STATUS = {
    ErrorCode.UNKNOWN_TICKET_TYPE: 422,
    ErrorCode.TICKET_TYPE_LIMIT_EXCEEDED: 422,
    ErrorCode.INVALID_CART: 422,
    ErrorCode.INVALID_QUANTITY: 422,
    ErrorCode.CAPACITY_EXCEEDED: 409,
    ErrorCode.INSUFFICIENT_BALANCE: 409,
    ErrorCode.TICKET_NOT_ACTIVE: 409,
    ErrorCode.PRODUCT_LOCKED: 409,
    ErrorCode.ALREADY_CANCELLED: 400,
    ErrorCode.TICKET_NOT_FOUND: 404,
    ErrorCode.BOOKING_NOT_FOUND: 404,
    ErrorCode.PRODUCT_NOT_ON_TICKET: 404,
    ErrorCode.TICKET_EXPIRED: 410,
    ErrorCode.REFERENCE_GENERATION_EXHAUSTED: 503,
    ErrorCode.PERSISTENCE_FAILURE: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Amusement park booking and entitlement API",
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

app.include_router(api_router)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.code, 400)
    if status_code >= 500:
        logger.error("domain_error", code=exc.code.value, detail=exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"code": exc.code.value, "detail": exc.message},
    )


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
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
