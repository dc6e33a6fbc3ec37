"""
Health check endpoints.

Provides endpoints for monitoring application health and readiness.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_entitlement_service
from modules.entitlements.exceptions import ConfigUnavailableError
from modules.entitlements.service import EntitlementService
from shared.config import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    status: str
    entitlement_backend: str
    config: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns 200 if the API is running.
    """
    return HealthResponse(status="healthy", version=get_settings().app_version)


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(
    service: EntitlementService = Depends(get_entitlement_service),
) -> ReadinessResponse:
    """
    Readiness check endpoint.

    Not ready while the app config cannot be read, since every gated
    feature is denied until it can.
    """
    try:
        await service.get_config()
        config_status = "loaded"
    except ConfigUnavailableError:
        config_status = "missing"
    except Exception:
        config_status = "unreachable"

    return ReadinessResponse(
        status="ready" if config_status == "loaded" else "not_ready",
        entitlement_backend=get_settings().entitlement_backend,
        config=config_status,
    )
