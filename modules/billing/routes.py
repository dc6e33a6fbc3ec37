"""
Billing API endpoints.

Payment provider webhooks (unauthenticated, verified by signature) and
Stripe checkout creation for signed-in users. Webhook routes accept POST
only; other methods get 405.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from api.dependencies import get_payment_webhook_service
from api.middleware.auth import get_current_user
from api.models.errors import error_responses
from shared.config import get_settings
from shared.models import AuthenticatedUser

from .exceptions import (
    BillingError,
    InvalidPayloadError,
    InvalidTierError,
    WebhookVerificationError,
)
from .models import CheckoutRequest, CheckoutSession, WebhookResult
from .service import PaymentWebhookService

webhook_router = APIRouter()
router = APIRouter()


def _require_webhooks_enabled() -> None:
    if not get_settings().enable_webhooks:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "WEBHOOKS_DISABLED", "message": "Webhooks are disabled", "details": {}},
        )


def _raise_for(error: BillingError) -> None:
    if isinstance(error, WebhookVerificationError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=error.to_dict())
    if isinstance(error, InvalidPayloadError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.to_dict())
    # Anything else is our failure; a 5xx makes the provider retry.
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.to_dict())


@webhook_router.post(
    "/stripe",
    response_model=WebhookResult,
    dependencies=[Depends(_require_webhooks_enabled)],
    responses=error_responses(400, 401, 500),
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    service: PaymentWebhookService = Depends(get_payment_webhook_service),
) -> WebhookResult:
    """
    Stripe webhook.

    Verifies the signature over the raw body, then upgrades the user on
    ``checkout.session.completed``. Replays and unrecognised prices are
    acknowledged with 200 and change nothing.
    """
    payload = await request.body()
    try:
        return await service.handle_stripe(payload, stripe_signature)
    except BillingError as e:
        _raise_for(e)


@webhook_router.post(
    "/cashfree",
    response_model=WebhookResult,
    dependencies=[Depends(_require_webhooks_enabled)],
    responses=error_responses(400, 401, 500),
)
async def cashfree_webhook(
    request: Request,
    x_webhook_signature: Optional[str] = Header(default=None),
    x_webhook_timestamp: Optional[str] = Header(default=None),
    service: PaymentWebhookService = Depends(get_payment_webhook_service),
) -> WebhookResult:
    """
    Cashfree webhook.

    Test events from the dashboard are acknowledged without verification.
    Payment events are verified (HMAC-SHA256 over timestamp + raw body)
    and upgrade the customer by order amount.
    """
    payload = await request.body()
    try:
        return await service.handle_cashfree(payload, x_webhook_signature, x_webhook_timestamp)
    except BillingError as e:
        _raise_for(e)


@router.post(
    "/checkout",
    response_model=CheckoutSession,
    responses=error_responses(400, 502),
)
async def create_checkout(
    request: CheckoutRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: PaymentWebhookService = Depends(get_payment_webhook_service),
) -> CheckoutSession:
    """Start a Stripe subscription checkout for the caller."""
    try:
        return await service.create_checkout_session(user.id, request)
    except InvalidTierError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())
    except BillingError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.to_dict())
