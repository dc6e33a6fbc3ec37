"""
Billing module.

Handles payment provider webhooks (Stripe, Cashfree), idempotent tier
upgrades and Stripe checkout creation.

Public API:
- IPaymentStore: Interface for applying payments atomically
- PaymentWebhookService: Webhook verification and tier mapping
- PaymentRecord / WebhookResult: Payment and delivery records
- Billing exceptions: WebhookVerificationError, etc.
"""

from .interfaces import IPaymentStore
from .models import (
    CheckoutRequest,
    CheckoutSession,
    PaymentProvider,
    PaymentRecord,
    WebhookOutcome,
    WebhookResult,
)
from .exceptions import (
    BillingError,
    DuplicateTransactionError,
    InvalidPayloadError,
    InvalidTierError,
    PaymentFailedError,
    PaymentStoreError,
    WebhookVerificationError,
)
from .store import InMemoryPaymentStore, SupabasePaymentStore
from .service import PaymentWebhookService

__all__ = [
    # Interface
    "IPaymentStore",
    # Models
    "PaymentProvider",
    "PaymentRecord",
    "WebhookOutcome",
    "WebhookResult",
    "CheckoutRequest",
    "CheckoutSession",
    # Implementations
    "InMemoryPaymentStore",
    "SupabasePaymentStore",
    "PaymentWebhookService",
    # Exceptions
    "BillingError",
    "WebhookVerificationError",
    "DuplicateTransactionError",
    "InvalidPayloadError",
    "InvalidTierError",
    "PaymentFailedError",
    "PaymentStoreError",
]
