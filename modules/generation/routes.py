"""
Content generation endpoint.

Runs the server-side version of the gated flow: check the caller's
entitlement, generate, then consume. Nothing is consumed when the
generation fails.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from api.dependencies import (
    get_current_entitlement,
    get_entitlement_service,
    get_generation_service,
)
from api.models.errors import error_responses
from modules.entitlements.exceptions import (
    AccountBlockedError,
    ConcurrentModificationError,
    ConfigUnavailableError,
    FeatureAccessDeniedError,
)
from modules.entitlements.features import Tool, feature_for_tool, tools_for_role
from modules.entitlements.models import ConsumptionResult, UserEntitlement
from modules.entitlements.service import EntitlementService

from .exceptions import GenerationError, TransientServiceError
from .interfaces import IGenerationService
from .models import GenerationRequest, Language, PayloadKind

logger = logging.getLogger(__name__)

router = APIRouter()


class GenerateRequest(BaseModel):
    """Request body for a tool's generate action."""

    tool: Tool
    prompt: str = Field(..., min_length=1)
    kind: PayloadKind = PayloadKind.TEXT
    language: Language = Language.EN
    system_prompt: Optional[str] = None
    amount: int = Field(default=1, ge=1)


class GenerateResponse(BaseModel):
    content: Any
    consumption: ConsumptionResult


@router.post(
    "/generate",
    response_model=GenerateResponse,
    responses=error_responses(400, 403, 409, 502, 503),
)
async def generate(
    request: GenerateRequest,
    entitlement: UserEntitlement = Depends(get_current_entitlement),
    service: EntitlementService = Depends(get_entitlement_service),
    generation: IGenerationService = Depends(get_generation_service),
) -> GenerateResponse:
    """
    Generate content for a tool and meter it.

    A denied check returns 403 with the policy decision in ``details``
    before the model is called. Transient model failures return 503 and
    leave usage untouched.
    """
    feature = feature_for_tool(request.tool)
    if feature is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "TOOL_NOT_METERED",
                "message": f"Tool '{request.tool.value}' does not generate content",
                "details": {"tool": request.tool.value},
            },
        )
    if not entitlement.is_admin and request.tool not in tools_for_role(entitlement.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "TOOL_NOT_AVAILABLE",
                "message": f"Tool '{request.tool.value}' is not available for this role",
                "details": {"tool": request.tool.value},
            },
        )

    decision = await service.check(entitlement.user_id, feature, request.amount)
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=FeatureAccessDeniedError(decision).to_dict(),
        )

    config = await service.get_config()
    try:
        content = await generation.generate(
            GenerationRequest(
                model_key=request.tool.value,
                prompt=request.prompt,
                kind=request.kind,
                language=request.language,
                system_prompt=request.system_prompt,
            ),
            config,
        )
    except TransientServiceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=e.to_dict(),
        )
    except GenerationError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.to_dict())

    try:
        consumption = await service.consume(entitlement.user_id, feature, request.amount)
    except (FeatureAccessDeniedError, AccountBlockedError) as e:
        # Quota was spent by a concurrent request while generating.
        logger.warning(f"Discarding generation for {entitlement.user_id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.to_dict())
    except ConcurrentModificationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.to_dict())
    except ConfigUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict())

    if isinstance(content, BaseModel):
        content = content.model_dump(by_alias=True)
    return GenerateResponse(content=content, consumption=consumption)
