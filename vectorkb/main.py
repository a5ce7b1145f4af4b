"""
FastAPI backend for the vectorkb preference-learning engine.

This main file handles app initialization and router mounting.
All endpoints are organized in the routers/ directory.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
env_paths = [
    Path(__file__).parent.parent / '.env',
    Path(__file__).parent / '.env',
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path)
        break

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from .config import settings
from .database import check_database_health, init_db
from .redis_client import get_redis_client
from .routers import feedback

# =============================================================================
# Configuration
# =============================================================================

LOG_LEVEL = settings.log_level
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan event handler for FastAPI application.
    Handles startup and shutdown events.
    """
    init_db()
    logger.info(f"vectorkb started (environment={settings.environment})")
    yield
    logger.info("vectorkb shutting down")


app = FastAPI(
    title="vectorkb Preference Engine",
    description="Learns retrieval preferences from feedback on generated SVGs",
    version="0.1.0",
    lifespan=lifespan
)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Rate limit exceeded response with a Retry-After header."""
    retry_after = 3600 if "hour" in str(exc.detail).lower() else 60
    return JSONResponse(
        status_code=429,
        content={
            "detail": str(exc.detail),
            "error": "rate_limit_exceeded",
            "retry_after_seconds": retry_after,
        },
        headers={"Retry-After": str(retry_after)}
    )


app.state.limiter = feedback.limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

# =============================================================================
# Routers
# =============================================================================

app.include_router(feedback.router)


# =============================================================================
# Health Check Endpoint
# =============================================================================

@app.get("/health", tags=["health"])
async def health_check():
    """Service status with database and Redis health."""
    health_data = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "dependencies": {
            "database": check_database_health(),
            "redis_connected": get_redis_client() is not None if settings.enable_preference_caching else False,
        },
    }

    if not health_data["dependencies"]["database"]["database_connected"]:
        health_data["status"] = "degraded"

    return health_data
