"""
Billing module interfaces.

The webhook handlers depend on IPaymentStore, not a concrete store, so the
atomic "upgrade tier and record payment" step can live in memory for
tests and in a Postgres function in production.
"""

from typing import Optional, Protocol, runtime_checkable

from .models import PaymentRecord


@runtime_checkable
class IPaymentStore(Protocol):
    """
    Interface for applying payments to entitlements.
    """

    async def apply_payment(self, record: PaymentRecord) -> None:
        """
        Atomically upgrade the user's tier and record the payment.

        Sets the entitlement's tier to ``record.tier`` with status active,
        marks ``record.transaction_id`` as processed and appends the
        record. Either all three happen or none.

        Raises:
            DuplicateTransactionError: If the transaction was already processed
            EntitlementNotFoundError: If the user has no entitlement
            PaymentStoreError: If the write failed
        """
        ...

    async def is_processed(self, transaction_id: str) -> bool:
        """Whether a transaction has already been applied."""
        ...

    async def list_payments(
        self,
        user_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[PaymentRecord]:
        """Most recent payments first, optionally for one user."""
        ...
