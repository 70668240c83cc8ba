"""
API Endpoints:
- GET /api/lockReason: Lock state and reason per category for a video
- GET /api/userInfo: Caller-selected statistics for one user
- GET /health: Health check
- GET /metrics: Prometheus metrics

Shared clients live on app.state. app.state.disk_cache is the advisory disk
cache client for handlers that cache derived results; the lock reason and
user info reads always go to the store, so their answers are never stale.
"""

import os
import asyncio
import time
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import sentry_sdk
from sentry_sdk.integrations.starlette import StarletteIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration

from config import (
    APP_VERSION,
    SENTRY_DSN,
    SENTRY_TRACES_SAMPLE_RATE,
)
from utils.common_utils import filter_transient_errors

# Initialize Sentry before FastAPI app
sentry_sdk.init(
    dsn=SENTRY_DSN,
    send_default_pii=False,
    traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
    environment=os.getenv("ENV", "production"),
    release=f"lock-userinfo-api@{APP_VERSION}",
    integrations=[
        StarletteIntegration(),
        FastApiIntegration(),
    ],
    before_send=filter_transient_errors,
)

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel
from redis.exceptions import RedisError
from prometheus_client import REGISTRY, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.multiprocess import MultiProcessCollector

from collaborators import Collaborators
from config import (
    API_HOST,
    API_PORT,
    API_WORKERS,
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ORIGINS,
    DATABASE_MAX_OVERFLOW,
    DATABASE_POOL_RECYCLE,
    DATABASE_POOL_SIZE,
    DATABASE_POOL_TIMEOUT,
    DATABASE_REPLICA_URL,
    DATABASE_URL,
    DISK_CACHE_URL,
    LOG_FORMAT,
    LOG_LEVEL,
    REDIS_CONFIG,
    REDIS_CONNECT_TIMEOUT,
    REDIS_ENABLED,
)
from errors import InvalidRequestError, ServiceError
from lock_reasons import LockResult, get_lock_reasons
from user_info import get_user_info
from utils.async_redis_utils import AsyncRedisService
from utils.database import Database
from utils.disk_cache import DiskCache
from utils.hash_cache import HashCache
from utils.metrics_utils import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_LATENCY
from utils.request_utils import parse_list_param


# Configure logging
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


# ============================================================================
# Pydantic Models
# ============================================================================


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    timestamp: int
    database_connected: bool
    redis_connected: bool
    uptime_seconds: float


# ============================================================================
# FastAPI App with Async Lifespan
# ============================================================================


async def _connect_redis() -> Optional[AsyncRedisService]:
    """Connect the hash cache backend; the service runs without it on failure."""
    if not REDIS_ENABLED:
        logger.info("REDIS_ENABLED=false - hash cache disabled")
        return None

    service = AsyncRedisService(**REDIS_CONFIG)
    try:
        await asyncio.wait_for(service.connect(), timeout=REDIS_CONNECT_TIMEOUT)
        return service
    except (asyncio.TimeoutError, RedisError, OSError) as e:
        logger.warning(f"Redis unavailable, hashing without cache: {e}")
        await service.close()
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """

    Startup:
    - Create store engines (primary + optional replica)
    - Connect Redis for the hash cache (optional)
    - Create the disk cache client and collaborators

    Shutdown:
    - Close clients and dispose engine pools
    """
    logger.info("Starting lock reason / user info API...")

    app.state.database = Database(
        DATABASE_URL,
        DATABASE_REPLICA_URL or None,
        pool_size=DATABASE_POOL_SIZE,
        max_overflow=DATABASE_MAX_OVERFLOW,
        pool_timeout=DATABASE_POOL_TIMEOUT,
        pool_recycle=DATABASE_POOL_RECYCLE,
        pool_pre_ping=True,
    )
    app.state.redis_service = await _connect_redis()
    app.state.hash_cache = HashCache(app.state.redis_service)
    app.state.disk_cache = DiskCache(DISK_CACHE_URL)
    app.state.collaborators = Collaborators()
    app.state.start_time = time.time()

    yield

    logger.info("Shutting down lock reason / user info API...")

    await app.state.disk_cache.aclose()
    if app.state.redis_service:
        await app.state.redis_service.close()
    await app.state.database.close()


# Create FastAPI app
app = FastAPI(
    title="Lock Reason and User Info API",
    description="Read-only lock reason and user statistics queries",
    version=APP_VERSION,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)


# ============================================================================
# Dependencies
# ============================================================================


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_hash_cache(request: Request) -> HashCache:
    return request.app.state.hash_cache


def get_collaborators(request: Request) -> Collaborators:
    return request.app.state.collaborators


def _server_error(e: Exception, what: str) -> HTTPException:
    """Log and report an unexpected fault; the caller only sees a generic 500."""
    logger.error(f"Error {what}: {e}", exc_info=True)
    sentry_sdk.capture_exception(e)
    return HTTPException(status_code=500, detail="Internal server error")


# ============================================================================
# API Endpoints (ALL ASYNC)
# ============================================================================


@app.get("/api/lockReason", response_model=List[LockResult])
async def lock_reason(request: Request, db: Database = Depends(get_database)):
    """
    ASYNC - Lock state, reason and locking user for each requested category.

    Categories come from `categories` (JSON array) or repeated `category`
    values; omitted or all-invalid means every configured category.
    """
    categories = parse_list_param(
        request.query_params,
        "categories",
        "category",
        invalid_json_message="Bad parameter: categories (invalid JSON)",
        not_a_list_message="Categories parameter does not match format requirements.",
    )
    video_id = request.query_params.get("videoID")

    try:
        return await get_lock_reasons(db, video_id, categories)
    except InvalidRequestError:
        raise
    except Exception as e:
        raise _server_error(e, f"getting lock reasons for {video_id}")


@app.get("/api/userInfo")
async def user_info(
    request: Request,
    db: Database = Depends(get_database),
    hash_cache: HashCache = Depends(get_hash_cache),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Dict[str, Any]:
    """
    ASYNC - Requested statistics for a user identified by userID or publicUserID.

    Fields come from `values` (JSON array) or repeated `value` values and
    default to the standard field set.
    """
    values = parse_list_param(
        request.query_params,
        "values",
        "value",
        invalid_json_message="Invalid values JSON",
        not_a_list_message="Invalid values",
    )
    user_id = request.query_params.get("userID")
    public_user_id = request.query_params.get("publicUserID")

    try:
        return await get_user_info(
            db,
            collaborators,
            hash_cache,
            user_id=user_id,
            public_user_id=public_user_id,
            values=values,
        )
    except InvalidRequestError:
        raise
    except Exception as e:
        raise _server_error(e, "getting user info")


@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    ASYNC - Health check endpoint.

    The store is required; Redis is optional and only reported.
    """
    state = request.app.state
    database = getattr(state, "database", None)
    redis_service = getattr(state, "redis_service", None)

    database_connected = await database.ping() if database else False
    redis_connected = await redis_service.verify_connection() if redis_service else False
    uptime = time.time() - state.start_time if hasattr(state, "start_time") else 0

    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        timestamp=int(time.time()),
        database_connected=database_connected,
        redis_connected=redis_connected,
        uptime_seconds=uptime,
    )


@app.get("/metrics")
async def metrics():
    """
    Expose Prometheus metrics.

    Aggregates across workers when PROMETHEUS_MULTIPROC_DIR is set.
    """
    if "PROMETHEUS_MULTIPROC_DIR" in os.environ or "prometheus_multiproc_dir" in os.environ:
        registry = CollectorRegistry()
        MultiProcessCollector(registry)
        output = generate_latest(registry)
    else:
        output = generate_latest(REGISTRY)

    return PlainTextResponse(content=output, media_type=CONTENT_TYPE_LATEST)


# ============================================================================
# Exception Handlers
# ============================================================================


def _error_response(request: Request, status_code: int, message: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": message,
            "status_code": status_code,
            "path": request.url.path,
        },
    )


@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError):
    """Client errors carry their message; server errors stay generic."""
    if exc.status_code >= 500:
        logger.error(f"Service error on {request.url.path}: {exc}")
    return _error_response(request, exc.status_code, exc.public_message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with consistent formatting."""
    return _error_response(request, exc.status_code, exc.detail)


# ============================================================================
# Middleware for Request Logging and Prometheus Metrics
# ============================================================================


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware for request logging and Prometheus metrics.

    Endpoint labels use the matched route template so unknown paths
    collapse into one label.
    """
    if request.url.path == "/metrics":
        return await call_next(request)

    ACTIVE_REQUESTS.inc()
    start_time = time.time()

    try:
        logger.debug(f"Request: {request.method} {request.url.path}")

        response = await call_next(request)
        duration = time.time() - start_time

        route = request.scope.get("route")
        endpoint = getattr(route, "path", "unmatched")

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(method=request.method, endpoint=endpoint).observe(duration)

        logger.debug(
            f"Response: {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s"
        )

        response.headers["X-Process-Time"] = str(duration)
        return response
    finally:
        ACTIVE_REQUESTS.dec()


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 80)
    logger.info("Starting Lock Reason and User Info API")
    logger.info(f"Environment: {os.getenv('ENV', 'development')}")
    logger.info(f"Log Level: {LOG_LEVEL}")
    logger.info("=" * 80)

    uvicorn.run(
        "api_server:app",
        host=API_HOST,
        port=API_PORT,
        workers=API_WORKERS,
        reload=False,
        log_level=LOG_LEVEL.lower(),
    )
