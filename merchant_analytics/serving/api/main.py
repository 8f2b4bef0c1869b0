"""
FastAPI Application Factory

Creates and configures the analytics API application.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from merchant_analytics.analytics.exceptions import InvalidFilterError, TenantScopeError
from merchant_analytics.analytics.merchant_settings import SettingsCache
from merchant_analytics.config import get_settings
from merchant_analytics.config.logging import configure_logging
from merchant_analytics.database.connection import close_database, init_database
from merchant_analytics.serving.api.middleware import RequestLoggingMiddleware
from merchant_analytics.serving.api.routes import analytics_router, health_router, settings_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging, connect the database and create the settings cache."""
    configure_logging()
    logger.info("Starting Merchant Analytics API")

    app.state.settings_cache = SettingsCache()

    try:
        await init_database()
    except Exception as e:
        logger.warning("Database init failed", error=str(e))

    yield

    logger.info("Shutting down")
    await close_database()


async def invalid_filter_handler(request: Request, exc: InvalidFilterError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": "invalid_filter", "detail": str(exc)})


async def tenant_scope_handler(request: Request, exc: TenantScopeError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "tenant_required", "detail": str(exc)})


def create_api_app(lifespan_handler: Optional[object] = lifespan) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        lifespan_handler: Lifespan context; tests pass None to skip startup

    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Merchant Analytics API",
        description="KPIs, revenue series, breakdowns, cohorts and churn scoring for merchant dashboards",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan_handler,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(InvalidFilterError, invalid_filter_handler)
    app.add_exception_handler(TenantScopeError, tenant_scope_handler)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])
    app.include_router(settings_router, prefix="/api/v1/settings", tags=["Settings"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Merchant Analytics API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app
