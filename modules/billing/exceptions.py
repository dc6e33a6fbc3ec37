"""
Billing module exceptions.

These exceptions are raised by the billing module and can be caught
by API error handlers to return appropriate HTTP responses.
"""

from typing import Optional

from shared.exceptions import EduSparkError, ValidationError


class BillingError(EduSparkError):
    """Base exception for billing-related errors."""

    pass


class WebhookVerificationError(BillingError):
    """Raised when a webhook signature does not verify against the raw body."""

    def __init__(self, provider: str, reason: Optional[str] = None):
        super().__init__(
            "Webhook signature verification failed",
            code="WEBHOOK_VERIFICATION_FAILED",
            details={"provider": provider, "reason": reason} if reason else {"provider": provider},
        )


class DuplicateTransactionError(BillingError):
    """Raised when attempting to process a duplicate transaction."""

    def __init__(self, transaction_id: str):
        super().__init__(
            f"Transaction already processed: {transaction_id}",
            code="DUPLICATE_TRANSACTION",
            details={"transaction_id": transaction_id},
        )


class PaymentStoreError(BillingError):
    """Raised when a payment could not be applied; the provider should retry."""

    def __init__(self, transaction_id: str, message: str):
        super().__init__(
            f"Failed to apply payment {transaction_id}: {message}",
            code="PAYMENT_STORE_FAILED",
            details={"transaction_id": transaction_id, "error": message},
        )


class InvalidTierError(ValidationError):
    """Raised when checkout is requested for a tier that cannot be bought."""

    def __init__(self, tier: str):
        super().__init__(
            f"Invalid subscription tier selected: {tier}",
            code="INVALID_TIER",
            details={"tier": tier},
        )


class PaymentFailedError(BillingError):
    """Raised when the payment provider rejects a request."""

    def __init__(self, message: str, stripe_error: Optional[str] = None):
        super().__init__(
            message,
            code="PAYMENT_FAILED",
            details={"stripe_error": stripe_error} if stripe_error else {},
        )


class InvalidPayloadError(BillingError):
    """Raised when a verified webhook body is not the JSON the provider documents."""

    def __init__(self, provider: str, reason: str):
        super().__init__(
            f"Invalid {provider} webhook payload: {reason}",
            code="INVALID_PAYLOAD",
            details={"provider": provider, "reason": reason},
        )
