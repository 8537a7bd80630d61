"""
FastAPI application entry point.

Registers routers, middleware, and exception handlers.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError, HTTPException
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.config.settings import settings
from api.utils.exceptions import BaseAPIException
from api.utils.exception_handlers import (
    base_api_exception_handler,
    request_validation_exception_handler,
    http_exception_handler,
    rate_limit_exception_handler,
    database_exception_handler,
    general_exception_handler,
)
from api.utils.logger import get_logger
from api.apps.auth.routers import router as auth_router
from api.apps.organizations.routers import router as organizations_router
from api.apps.users.routers import admin_router as admin_users_router
from api.apps.users.routers import router as users_router
from api.apps.tickets.routers import admin_router as admin_tickets_router
from api.apps.tickets.routers import router as tickets_router
from api.apps.comments.routers import router as comments_router
from api.apps.attachments.routers import router as attachments_router
from api.apps.notifications.routers import router as notifications_router
from api.apps.dashboard.routers import router as dashboard_router
from api.apps.realtime.routers import router as realtime_router
from api.core.cache import CacheManager
from api.core.dependencies import get_cache, get_change_feed
from api.core.rate_limit import limiter
from api.db.base_model import utcnow
from api.db.session import get_session

logger = get_logger(__name__)


# ── Lifespan ──────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup/shutdown lifecycle events."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} [{settings.ENVIRONMENT}]")
    yield
    await get_change_feed().close()
    await get_cache().close()
    logger.info("Shutdown complete")


# ── App ───────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-tenant help desk ticketing with department-scoped access control",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)
app.state.limiter = limiter


# ── Middleware ────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Exception Handlers ────────────────────────────────────────────────────────

app.add_exception_handler(BaseAPIException, base_api_exception_handler)          # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(HTTPException, http_exception_handler)                  # type: ignore[arg-type]
app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)        # type: ignore[arg-type]
app.add_exception_handler(SQLAlchemyError, database_exception_handler)            # type: ignore[arg-type]
app.add_exception_handler(Exception, general_exception_handler)


# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(auth_router)
app.include_router(organizations_router)
app.include_router(admin_users_router)
app.include_router(users_router)
app.include_router(tickets_router)
app.include_router(admin_tickets_router)
app.include_router(comments_router)
app.include_router(attachments_router)
app.include_router(notifications_router)
app.include_router(dashboard_router)
app.include_router(realtime_router)


# ── Health ────────────────────────────────────────────────────────────────────

@app.get("/health", tags=["Infra"])
async def health():
    """Liveness probe, must respond < 200ms."""
    return {"status": "ok", "version": settings.APP_VERSION}


@app.get("/ready", tags=["Infra"])
async def ready(
    session: AsyncSession = Depends(get_session),
    cache: CacheManager = Depends(get_cache),
):
    """
    Readiness probe. Verifies the database and Redis are reachable.
    Returns 503 if any dependency is down.
    """
    checks = {}
    healthy = True

    try:
        await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error(f"DB health check failed: {e}")
        checks["database"] = f"error: {str(e)[:80]}"
        healthy = False

    try:
        await cache.ping()
        checks["redis"] = "ok"
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        checks["redis"] = f"error: {str(e)[:80]}"
        healthy = False

    payload = {
        "status": "ready" if healthy else "degraded",
        "checks": checks,
        "timestamp": utcnow().isoformat(),
    }

    if not healthy:
        return JSONResponse(status_code=503, content=payload)

    return payload


@app.get("/metrics", tags=["Infra"], include_in_schema=False)
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
