"""
Admin console endpoints.

App configuration, user management and the activity monitor. Every
endpoint requires an admin entitlement.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from api.dependencies import get_entitlement_service, require_admin
from api.models.errors import error_responses
from modules.entitlements.exceptions import (
    ConcurrentModificationError,
    ConfigUnavailableError,
    EntitlementNotFoundError,
    InvalidEntitlementUpdateError,
)
from modules.entitlements.models import (
    ActivityLogRecord,
    AppConfig,
    EntitlementUpdate,
    UserEntitlement,
)
from modules.entitlements.service import EntitlementService

router = APIRouter(dependencies=[Depends(require_admin)])


class GrantCreditsRequest(BaseModel):
    """Credits to add (or, if negative, remove) from a user's balance."""

    amount: int


@router.get("/config", response_model=AppConfig, responses=error_responses(503))
async def get_config(
    service: EntitlementService = Depends(get_entitlement_service),
) -> AppConfig:
    """Get the global app config."""
    try:
        return await service.get_config()
    except ConfigUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict())


@router.put("/config", response_model=AppConfig)
async def update_config(
    config: AppConfig,
    service: EntitlementService = Depends(get_entitlement_service),
) -> AppConfig:
    """
    Replace the global app config.

    Connected sessions receive the new config through their store
    subscription.
    """
    return await service.update_config(config)


@router.get("/users", response_model=list[UserEntitlement])
async def list_users(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: EntitlementService = Depends(get_entitlement_service),
) -> list[UserEntitlement]:
    """List user entitlements, oldest first."""
    return await service.list_users(limit=limit, offset=offset)


@router.patch(
    "/users/{user_id}",
    response_model=UserEntitlement,
    responses=error_responses(400, 404, 409),
)
async def update_user(
    user_id: str,
    update: EntitlementUpdate,
    service: EntitlementService = Depends(get_entitlement_service),
) -> UserEntitlement:
    """
    Edit a user's tier, status, credits, role, admin flag or account status.

    Blocking an account signs out its live sessions.
    """
    try:
        return await service.admin_update(user_id, update)
    except InvalidEntitlementUpdateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())
    except EntitlementNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.to_dict())
    except ConcurrentModificationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.to_dict())


@router.post(
    "/users/{user_id}/credits",
    response_model=UserEntitlement,
    responses=error_responses(404, 409),
)
async def grant_credits(
    user_id: str,
    request: GrantCreditsRequest,
    service: EntitlementService = Depends(get_entitlement_service),
) -> UserEntitlement:
    """Adjust a user's credit balance. The balance never drops below zero."""
    try:
        return await service.grant_credits(user_id, request.amount)
    except EntitlementNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.to_dict())
    except ConcurrentModificationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.to_dict())


@router.get("/activity", response_model=list[ActivityLogRecord])
async def list_activity(
    limit: int = Query(default=50, ge=1, le=500),
    user_id: Optional[str] = Query(default=None, description="Only this user's activity"),
    service: EntitlementService = Depends(get_entitlement_service),
) -> list[ActivityLogRecord]:
    """Recent feature usage, most recent first."""
    return await service.list_activity(limit=limit, user_id=user_id)
