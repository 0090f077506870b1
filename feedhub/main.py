"""
FeedHub API.

Run with:
    uvicorn feedhub.main:app --reload

Domain errors raised by the services are converted to HTTP responses by
the exception handlers registered below.
"""

import logging
from pathlib import Path
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables before settings are read
env_paths = [
    Path(__file__).parent.parent / ".env",
    Path(__file__).parent / ".env",
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path)
        break

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import dependencies
from .adapters.registry import build_adapter_registry
from .config import settings
from .database import check_database_health, init_db
from .exceptions import (
    ConfigurationError,
    FeedHubError,
    NotFoundError,
    ProviderError,
    RateLimitedError,
    ValidationError,
)
from .redis_client import check_cache_health
from .routers import collections, content, cron, feed, filters, preferences, sources

# =============================================================================
# Logging
# =============================================================================

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan Event Handler
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create tables and resolve provider adapters once.
    """
    init_db()
    dependencies.adapter_registry.clear()
    dependencies.adapter_registry.update(build_adapter_registry(settings))
    logger.info(f"FeedHub started ({settings.environment})")
    yield
    logger.info("FeedHub shutting down")


app = FastAPI(
    title="FeedHub",
    description="Aggregated per-user content feed",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = sources.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS
if settings.cors_origins == ["*"] and settings.is_production:
    logger.warning(
        "SECURITY WARNING: CORS is set to allow ALL origins (*). "
        "Set FEEDHUB_ALLOWED_ORIGINS to specific domains."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": exc.message, "errors": exc.errors})


@app.exception_handler(RateLimitedError)
async def rate_limited_handler(request: Request, exc: RateLimitedError):
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    return JSONResponse(
        status_code=429,
        content={"detail": str(exc), "provider": exc.provider, "retry_after_seconds": exc.retry_after},
        headers=headers,
    )


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    return JSONResponse(status_code=502, content={"detail": str(exc), "provider": exc.provider})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Server misconfigured"})


@app.exception_handler(FeedHubError)
async def feedhub_error_handler(request: Request, exc: FeedHubError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# =============================================================================
# Mount Routers
# =============================================================================

app.include_router(feed.router)
app.include_router(sources.router)
app.include_router(filters.router)
app.include_router(preferences.router)
app.include_router(content.router)
app.include_router(collections.router)
app.include_router(cron.router)


@app.get("/health", tags=["health"])
def health():
    """Database and cache connectivity."""
    database = check_database_health()
    cache = check_cache_health()
    healthy = database.get("database_connected", False)
    return {"status": "healthy" if healthy else "degraded", **database, **cache}
