from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from aoiviewer.api.dependencies import get_db
from aoiviewer.api.exception_handlers import (
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
    wms_upstream_exception_handler,
)
from aoiviewer.api.middleware import RequestLoggingMiddleware
from aoiviewer.api.routes.aoi import router as aoi_router
from aoiviewer.api.routes.wms import router as wms_router
from aoiviewer.api.schemas import ErrorResponse, HealthResponse
from aoiviewer.config import settings
from aoiviewer.db.session import async_session, engine
from aoiviewer.logging_config import setup_logging
from aoiviewer.services.aoi_store import seed_public_aois
from aoiviewer.services.cache import BoundedTTLCache, run_periodic_cleanup
from aoiviewer.services.metrics import metrics
from aoiviewer.services.wms import WMSUpstreamError

logger = logging.getLogger("aoiviewer")

_DESCRIPTION = """\
Backend for the AOI map viewer.

Stores user-drawn **Areas of Interest** and proxies **WMS GetFeatureInfo**
lookups to the upstream map server.

### Geometry handling

Incoming AOI polygons are closed, simplified with Douglas-Peucker
(1e-4 degree tolerance by default) and checked against WGS84 bounds
before they are written to PostGIS.

### Feature-info caching

Feature lookups are cached in memory by request fingerprint for a few
minutes with a hard cap on entry count. Upstream failures are never
cached.
"""

_OPENAPI_TAGS = [
    {"name": "system", "description": "Health checks and operational endpoints."},
    {"name": "aoi", "description": "Create and list Areas of Interest."},
    {"name": "wms", "description": "Cached WMS GetFeatureInfo proxy."},
]


def _run_migrations() -> None:
    from alembic import command
    from alembic.config import Config

    command.upgrade(Config("alembic.ini"), "head")


async def _seed_samples() -> None:
    try:
        async with async_session() as session:
            await seed_public_aois(session)
    except Exception as exc:
        logger.warning("Sample AOI seeding skipped: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Alembic's fileConfig replaces root handlers, so migrate before setup_logging.
    if settings.run_migrations:
        await asyncio.to_thread(_run_migrations)
    setup_logging(settings.log_level, settings.log_format)

    if settings.seed_samples:
        await _seed_samples()

    cleanup_task = asyncio.create_task(
        run_periodic_cleanup(app.state.feature_cache, settings.cache_cleanup_interval)
    )
    logger.info(
        "Feature cache ready (max_size=%d, ttl=%ss, sweep every %ss)",
        settings.cache_maxsize,
        settings.cache_ttl,
        settings.cache_cleanup_interval,
    )
    try:
        yield
    finally:
        cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup_task
        await engine.dispose()


def create_app() -> FastAPI:
    """Build the application with its own feature-info cache."""
    app = FastAPI(
        title="AOI Viewer API",
        version="0.1.0",
        summary="Areas of Interest storage and cached WMS feature lookups",
        description=_DESCRIPTION,
        openapi_tags=_OPENAPI_TAGS,
        lifespan=lifespan,
    )
    app.state.feature_cache = BoundedTTLCache(
        max_size=settings.cache_maxsize, ttl=settings.cache_ttl
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(WMSUpstreamError, wms_upstream_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(aoi_router)
    app.include_router(wms_router)

    @app.get(
        "/health",
        tags=["system"],
        summary="Health check",
        description="Check API and database connectivity. Returns 200 when "
        "healthy, 503 when the database is unreachable.",
        response_model=HealthResponse,
        responses={503: {"model": ErrorResponse, "description": "Database unreachable"}},
    )
    async def health(request: Request, session: AsyncSession = Depends(get_db)):
        """Check API and database connectivity."""
        cache: BoundedTTLCache = request.app.state.feature_cache
        try:
            await session.execute(text("SELECT 1"))
        except Exception as exc:
            logger.warning("Health check database probe failed: %s", exc)
            return JSONResponse(
                status_code=503,
                content={
                    "status": "degraded",
                    "database": "unreachable",
                    "detail": "Database connection failed",
                },
            )
        return {
            "status": "ok",
            "database": "connected",
            "cache": {
                "size": cache.size,
                "max_size": cache.max_size,
                "ttl_seconds": cache.ttl,
                "hit_rate": metrics.cache_hit_rate(),
            },
            "uptime_seconds": metrics.uptime_seconds(),
        }

    @app.get(
        "/metrics",
        tags=["system"],
        summary="Application metrics",
        description="Request counters, latency percentiles, cache and WMS "
        "upstream statistics.",
    )
    async def get_metrics(request: Request):
        """Return application metrics snapshot."""
        cache: BoundedTTLCache = request.app.state.feature_cache
        snap = metrics.snapshot()
        snap["cache"]["size"] = cache.size
        snap["cache"]["max_size"] = cache.max_size
        return snap

    return app


app = create_app()
