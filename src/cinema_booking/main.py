"""
ASGI application: routers, error rendering, lifecycle of Redis and the workers
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from cinema_booking.api import bookings, payments, sessions
from cinema_booking.core.config import settings
from cinema_booking.core.database import engine
from cinema_booking.core.exceptions import BookingServiceError
from cinema_booking.core.logging_config import setup_logging
from cinema_booking.core.metrics import get_metrics
from cinema_booking.core.redis import redis_client
from cinema_booking.middleware.rate_limiter import limiter
from cinema_booking.middleware.tracing import TracingMiddleware
from cinema_booking.services import reminder_worker
from cinema_booking.services.expiry_worker import expiry_worker

setup_logging()
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
WORKERS = (expiry_worker, reminder_worker)


async def _check_database():
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"❌ Database unreachable: {e}")
        raise
    logger.info("✅ Database reachable")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Starting {settings.APP_NAME} {settings.APP_VERSION}")
    await _check_database()
    await redis_client.connect()

    if settings.WORKERS_ENABLED:
        for worker in WORKERS:
            await worker.start()

    yield

    logger.info("🛑 Shutting down")
    if settings.WORKERS_ENABLED:
        for worker in reversed(WORKERS):
            await worker.stop()
    await redis_client.close()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Seat holds, booking lifecycle and payment confirmation for cinema sessions",
    lifespan=lifespan,
)
app.state.limiter = limiter


@app.exception_handler(BookingServiceError)
async def booking_error_handler(request: Request, exc: BookingServiceError):
    """Domain errors render as {"error": kind, "code": code, "message": ...}"""
    log = logger.error if exc.http_status >= 500 else logger.info
    log(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"⚠️ Rate limit hit on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limited",
            "code": "rate_limit_exceeded",
            "message": f"Too many requests ({exc.detail})",
        },
        headers={"Retry-After": "60"},
    )


app.add_middleware(TracingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
async def health():
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "redis": "connected" if redis_client.connected else "disabled",
        "workers": {worker.name: worker.running for worker in WORKERS},
    }


@app.get("/metrics", tags=["Health"])
async def metrics():
    content, content_type = get_metrics()
    return Response(content=content, media_type=content_type)


app.include_router(sessions.router, prefix=API_PREFIX, tags=["Availability"])
app.include_router(bookings.router, prefix=API_PREFIX, tags=["Bookings"])
app.include_router(payments.router, prefix=API_PREFIX, tags=["Payments"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("cinema_booking.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
