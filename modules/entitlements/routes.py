"""
Entitlement API endpoints.

Clients send usage intents; the server evaluates the policy and applies
the consumption. Every endpoint acts on the caller's own entitlement.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import get_current_entitlement, get_entitlement_service
from api.middleware.auth import get_current_user
from api.models.errors import error_responses
from shared.models import AuthenticatedUser

from .exceptions import (
    AccountBlockedError,
    ConcurrentModificationError,
    ConfigUnavailableError,
    FeatureAccessDeniedError,
)
from .models import (
    AppConfig,
    ConsumptionResult,
    EntitlementView,
    PolicyDecision,
    RoleRequest,
    UsageRequest,
    UserEntitlement,
)
from .rollover import current_counters
from .service import EntitlementService

router = APIRouter()


@router.get("/me", response_model=EntitlementView)
async def get_my_entitlement(
    entitlement: UserEntitlement = Depends(get_current_entitlement),
) -> EntitlementView:
    """
    Get the caller's entitlement, creating it on first sign-in.

    ``usage_today`` holds the counters that apply today; stale stored
    counters read as empty.
    """
    return EntitlementView(
        entitlement=entitlement,
        usage_today=current_counters(entitlement.usage),
    )


@router.get("/config", response_model=AppConfig, responses=error_responses(503))
async def get_app_config(
    user: AuthenticatedUser = Depends(get_current_user),
    service: EntitlementService = Depends(get_entitlement_service),
) -> AppConfig:
    """Get the global app config used for client-side gating."""
    try:
        return await service.get_config()
    except ConfigUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict())


@router.post("/check", response_model=PolicyDecision)
async def check_usage(
    request: UsageRequest,
    entitlement: UserEntitlement = Depends(get_current_entitlement),
    service: EntitlementService = Depends(get_entitlement_service),
) -> PolicyDecision:
    """
    Evaluate whether the caller may use a feature, without consuming.

    Denials are returned as a decision (allowed=false with a reason), not
    as an error.
    """
    return await service.check(entitlement.user_id, request.feature, request.amount)


@router.post(
    "/consume",
    response_model=ConsumptionResult,
    responses=error_responses(403, 409, 503),
)
async def consume_usage(
    request: UsageRequest,
    entitlement: UserEntitlement = Depends(get_current_entitlement),
    service: EntitlementService = Depends(get_entitlement_service),
) -> ConsumptionResult:
    """
    Consume a feature use.

    Returns the authoritative entitlement after the change. A denied
    request returns 403 whose details carry the policy decision, so the
    client can render the upgrade prompt.
    """
    try:
        return await service.consume(entitlement.user_id, request.feature, request.amount)
    except (FeatureAccessDeniedError, AccountBlockedError) as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.to_dict())
    except ConcurrentModificationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.to_dict())
    except ConfigUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict())


@router.put("/role", response_model=UserEntitlement, responses=error_responses(403, 409))
async def set_role(
    request: RoleRequest,
    entitlement: UserEntitlement = Depends(get_current_entitlement),
    service: EntitlementService = Depends(get_entitlement_service),
) -> UserEntitlement:
    """Persist the role picked in the role selector, or clear it with null."""
    try:
        return await service.set_role(entitlement.user_id, request.role)
    except AccountBlockedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.to_dict())
    except ConcurrentModificationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.to_dict())
