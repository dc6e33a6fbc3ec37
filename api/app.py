"""
FastAPI application factory.

Creates and configures the FastAPI application instance.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config import get_settings
from .dependencies import get_container
from .routes import admin, health
from modules.billing.routes import router as billing_router
from modules.billing.routes import webhook_router
from modules.entitlements.routes import router as entitlements_router
from modules.generation.routes import router as generation_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Seeds the default app config when none is stored yet, so a fresh
    deployment does not deny every feature.
    """
    # Startup
    settings = get_settings()
    logger.info(
        f"Starting {settings.app_name} {settings.app_version} on {settings.host}:{settings.port} "
        f"(entitlement backend: {settings.entitlement_backend})"
    )
    try:
        await get_container().entitlements.ensure_config()
    except Exception as e:
        # Features stay denied until an admin saves a config.
        logger.error(f"Could not load app config at startup: {e}")
    yield
    # Shutdown
    logger.info(f"Shutting down {settings.app_name}")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Entitlement, usage metering and billing API for EduSpark AI",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Register routes
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(entitlements_router, prefix="/api/entitlements", tags=["entitlements"])
    app.include_router(generation_router, prefix="/api", tags=["generation"])
    app.include_router(billing_router, prefix="/api/billing", tags=["billing"])
    app.include_router(webhook_router, prefix="/api/webhooks", tags=["webhooks"])
    app.include_router(admin.router, prefix="/api/admin", tags=["admin"])

    return app


# Application instance for uvicorn
app = create_app()
