# dream60/main.py
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dream60.api import admin, auth, payments, prize_claim, scheduler, websocket
from dream60.core.config import settings
from dream60.core.exceptions import AuctionError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown events for FastAPI application.
    """
    from dream60.core.database import close_db
    from dream60.core.redis import redis_client
    from dream60.tasks.scheduler_jobs import start_scheduler_tasks, stop_scheduler_tasks

    # Connect to Redis on startup
    try:
        await redis_client.connect()
        logger.info("✓ Redis connected")
    except Exception as e:
        logger.warning(f"⚠ Redis connection failed: {e}")

    tasks = []
    if settings.SCHEDULER_ENABLED:
        tasks = start_scheduler_tasks()
        logger.info("✓ Scheduler tasks started")

    logger.info("✓ Application started")
    yield

    await stop_scheduler_tasks(tasks)

    try:
        await redis_client.disconnect()
        logger.info("✓ Redis disconnected")
    except Exception as e:
        logger.warning(f"⚠ Redis disconnect failed: {e}")

    await close_db()
    logger.info("✓ Application shutdown")


app = FastAPI(
    title="Dream60 Auction Scheduler API",
    description="Hourly auction rounds, bidding, prize claims and live updates",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include API routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
app.include_router(scheduler.router, prefix="/api/scheduler", tags=["Scheduler"])
app.include_router(payments.router, prefix="/api/razorpay", tags=["Payments"])
app.include_router(prize_claim.router, prefix="/api/prize-claim", tags=["Prize Claim"])
app.include_router(websocket.router, tags=["WebSocket"])


def _envelope(message: str, data=None) -> dict:
    return {"success": False, "message": message, "data": jsonable_encoder(data)}


@app.exception_handler(AuctionError)
async def auction_exception_handler(request: Request, exc: AuctionError):
    """Service errors carry their own HTTP status"""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=_envelope(exc.message, exc.data))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors as 400s with the field errors"""
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope("Validation failed", exc.errors()),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler to log and return detailed errors"""
    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Request: {request.method} {request.url}")
    logger.error(f"Traceback: {traceback.format_exc()}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": "Internal server error",
            "data": {
                "type": type(exc).__name__,
                "traceback": traceback.format_exc().split("\n") if app.debug else None,
            },
        },
    )


@app.get("/")
async def root():
    """Root endpoint - health check"""
    return {
        "message": settings.APP_NAME,
        "status": "running",
        "version": settings.APP_VERSION,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    from dream60.core.redis import redis_client

    redis_ok = await redis_client.ping() if redis_client.is_connected else False
    return {"status": "healthy", "redis": "connected" if redis_ok else "unavailable"}


@app.get("/metrics/pool")
async def pool_metrics():
    """
    Monitor connection pool status.
    Useful when the top-of-hour join and bid bursts hit the database.
    """
    from dream60.core.database import engine

    pool = engine.pool

    return {
        "pool_size": pool.size(),
        "checked_in_connections": pool.checkedin(),
        "checked_out_connections": pool.checkedout(),
        "overflow_connections": pool.overflow(),
        "total_connections": pool.size() + pool.overflow(),
        "status": "healthy" if pool.checkedout() < (pool.size() + pool.overflow()) else "exhausted",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("dream60.main:app", host="0.0.0.0", port=8000, reload=True)
