"""
PixelCanvas API - Shared Real-Time Pixel Board

Main application entry point with FastAPI setup, middleware configuration,
and lifecycle management.
"""
import logging
import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from pixelcanvas.cache import cache
from pixelcanvas.config import get_settings
from pixelcanvas.database import init_db, SessionLocal
from pixelcanvas.errors import PlacementError
from pixelcanvas.api.pixels import router as pixels_router
from pixelcanvas.api.leaderboard import router as leaderboard_router
from pixelcanvas.api.users import router as users_router
from pixelcanvas.api.chat import router as chat_router
from pixelcanvas.api.payments import router as payments_router, webhook_router
from pixelcanvas.api.realtime import router as realtime_router
from pixelcanvas.middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from pixelcanvas.realtime import manager

API_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('pixelcanvas.log')
    ]
)

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - Database initialization
    - New Relic agent initialization
    - Closing realtime subscriptions on shutdown
    """
    logger.info("=" * 60)
    logger.info("PixelCanvas API Starting Up")
    logger.info("=" * 60)

    try:
        logger.info("Initializing database connection pool...")
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}", exc_info=True)
        raise

    if settings.new_relic_license_key:
        try:
            import newrelic.agent
            newrelic.agent.initialize()
            logger.info("New Relic agent initialized successfully")
        except ImportError:
            logger.warning("New Relic package not installed. Monitoring disabled.")
        except Exception as e:
            logger.warning(f"New Relic initialization failed: {str(e)}")
    else:
        logger.info("New Relic monitoring not configured (license key not set)")

    logger.info("Application started successfully!")
    logger.info(f"API Documentation available at: http://{settings.api_host}:{settings.api_port}/docs")
    logger.info("=" * 60)

    yield

    logger.info("=" * 60)
    logger.info("PixelCanvas API Shutting Down")
    logger.info("=" * 60)
    await manager.close_all()
    logger.info("Application shutdown complete")


tags_metadata = [
    {
        "name": "pixels",
        "description": "Pixel placement (cooldown, balance and color checks in one transaction) and box reads of the board.",
    },
    {
        "name": "leaderboard",
        "description": "Top painters of the current UTC day, month or year.",
    },
    {
        "name": "users",
        "description": "User provisioning, profiles, counters and search.",
    },
    {
        "name": "chat",
        "description": "Global chat history and sending.",
    },
    {
        "name": "payments",
        "description": "Stripe checkout, billing portal and the entitlement webhook.",
    },
    {
        "name": "realtime",
        "description": "WebSocket feed of `pixelPlaced` and `chatMessage` events.",
    },
    {
        "name": "root",
        "description": "Root endpoint providing API information and health status.",
    },
]

app = FastAPI(
    title="PixelCanvas API",
    description="""
    ## Shared Real-Time Pixel Board

    A 10,000 x 10,000 canvas where authenticated users place one colored
    pixel at a time under a per-user cooldown.

    ### Features
    - **Atomic placement**: cooldown, balance debit, color entitlement,
      pixel overwrite and leaderboard counters commit together
    - **Realtime**: every committed pixel is pushed to all subscribers
    - **Leaderboards**: day / month / year buckets, cached in Redis
    - **Monetization**: color packs and pixel top-ups via Stripe

    ### Authentication
    Mutating endpoints require `Authorization: Bearer <Firebase ID token>`.

    ### Rate Limiting
    `/api` requests are rate-limited per IP address.
    """,
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=tags_metadata,
    license_info={
        "name": "MIT",
    },
)

# Add security headers middleware (first, so it wraps all responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    RateLimitMiddleware,
    max_requests=settings.rate_limit_requests,
    window_seconds=settings.rate_limit_window,
)

# Configure CORS middleware (last, so it can override headers if needed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_origin_regex=r"http://localhost:\d+|http://127\.0\.0\.1:\d+",
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Stripe-Signature",
        "Accept",
        "Origin",
    ],
    expose_headers=[
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "Retry-After",
        "Content-Type",
    ],
    max_age=3600,
)


@app.exception_handler(PlacementError)
async def placement_exception_handler(request: Request, exc: PlacementError):
    """Render placement failures as {"success": false, "error": ...}."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed requests are client errors (400) like every other input check."""
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": "Validation Error",
            "detail": jsonable_errors(exc),
            "message": "Invalid request data. Please check your input."
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic may put the raw exception object under ctx
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with consistent error format."""
    logger.warning(f"HTTP {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions with logging."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )


app.include_router(pixels_router)
app.include_router(leaderboard_router)
app.include_router(users_router)
app.include_router(chat_router)
app.include_router(payments_router)
app.include_router(webhook_router)
app.include_router(realtime_router)


@app.get("/", tags=["root"])
async def root():
    """
    Root endpoint providing API information.

    Returns basic API metadata and links to documentation.
    """
    return {
        "message": "Welcome to PixelCanvas API",
        "version": API_VERSION,
        "description": "Shared real-time pixel board",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "place_pixel": "POST /api/pixels/place",
            "get_box": "GET /api/pixels/box",
            "get_top_painters": "GET /api/leaderboard/top",
            "realtime": "WS /ws"
        }
    }


@app.get("/health", tags=["root"])
async def health():
    """
    Liveness plus dependency status.

    The database is required; the cache is optional and reported as
    ``disabled`` when not configured.
    """
    db_status = "healthy"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        db_status = "unhealthy"
    finally:
        db.close()

    if not cache.enabled:
        cache_status = "disabled"
    else:
        cache_status = "healthy" if cache.ping() else "unhealthy"

    status_code = status.HTTP_200_OK if db_status == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "healthy" if db_status == "healthy" else "unhealthy",
            "database": db_status,
            "cache": cache_status,
            "subscribers": len(manager.connections),
        }
    )


@app.get("/version", tags=["root"])
async def version():
    return {"version": API_VERSION}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pixelcanvas.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level="info",
        access_log=True
    )
