"""
Billing module data models.

Payment records written by the webhook handlers and the results the
handlers report back to the routes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from modules.entitlements.models import SubscriptionTier


class PaymentProvider(str, Enum):
    """Payment gateways that can upgrade a subscription."""

    STRIPE = "stripe"
    CASHFREE = "cashfree"


class PaymentRecord(BaseModel):
    """
    One applied payment.

    ``transaction_id`` is the provider's identifier (Stripe checkout
    session id, Cashfree order id) and is unique per provider.
    """

    transaction_id: str = Field(..., description="Provider transaction ID")
    provider: PaymentProvider
    user_id: str
    tier: SubscriptionTier
    amount: Optional[int] = Field(None, description="Amount in major currency units, if known")
    currency: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class WebhookOutcome(str, Enum):
    """What a webhook delivery did."""

    APPLIED = "applied"            # Tier upgraded and payment recorded
    DUPLICATE = "duplicate"        # Transaction seen before; nothing changed
    IGNORED = "ignored"            # Not a payment we act on, or unmappable
    TEST = "test"                  # Provider dashboard test event


class WebhookResult(BaseModel):
    """Result of handling one webhook delivery."""

    outcome: WebhookOutcome
    event_type: Optional[str] = None
    transaction_id: Optional[str] = None
    user_id: Optional[str] = None
    tier: Optional[SubscriptionTier] = None
    reason: Optional[str] = None


class CheckoutRequest(BaseModel):
    """Request to start a Stripe checkout for a paid tier."""

    tier: SubscriptionTier
    app_url: str = Field(..., description="URL to return to after checkout")


class CheckoutSession(BaseModel):
    """A created Stripe checkout session."""

    session_id: str
    url: Optional[str] = None
