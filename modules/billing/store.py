"""
Payment store implementations.

Provides both in-memory (for testing and development) and Supabase-backed
(for production) implementations of IPaymentStore.
"""

from typing import Any, Optional

from supabase import Client

from modules.entitlements.exceptions import EntitlementNotFoundError
from modules.entitlements.models import SubscriptionStatus
from modules.entitlements.store import InMemoryEntitlementStore, SupabaseEntitlementStore
from shared.repository import BaseRepository

from .exceptions import DuplicateTransactionError
from .models import PaymentProvider, PaymentRecord


def _transaction_key(provider: PaymentProvider, transaction_id: str) -> str:
    return f"{provider.value}:{transaction_id}"


class InMemoryPaymentStore:
    """
    Payment store with in-memory storage.

    For testing and development. Use SupabasePaymentStore for production.
    Shares the entitlement store so upgrades reach its subscribers.
    """

    def __init__(self, entitlements: InMemoryEntitlementStore):
        self._entitlements = entitlements
        self._processed: set[str] = set()
        self._payments: list[PaymentRecord] = []

    async def apply_payment(self, record: PaymentRecord) -> None:
        key = _transaction_key(record.provider, record.transaction_id)
        if key in self._processed:
            raise DuplicateTransactionError(record.transaction_id)

        # Claim the key before the first await so a concurrent replay sees it.
        self._processed.add(key)
        try:
            await self._entitlements.update_user(record.user_id, {
                "subscription_tier": record.tier,
                "subscription_status": SubscriptionStatus.ACTIVE,
            })
        except Exception:
            self._processed.discard(key)
            raise
        self._payments.insert(0, record)

    async def is_processed(self, transaction_id: str) -> bool:
        return any(key.split(":", 1)[1] == transaction_id for key in self._processed)

    async def list_payments(
        self,
        user_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[PaymentRecord]:
        payments = self._payments
        if user_id is not None:
            payments = [p for p in payments if p.user_id == user_id]
        return payments[:limit]


class SupabasePaymentStore(BaseRepository[PaymentRecord]):
    """
    Payment store with Supabase persistence.

    apply_payment() calls the ``apply_payment`` Postgres function, which
    inserts into ``processed_transactions`` (primary key on provider and
    transaction id), updates ``users`` and appends to ``payments`` in one
    transaction. It returns false when the transaction was already there and null
    when the user does not exist.
    """

    def __init__(self, db: Client, entitlements: SupabaseEntitlementStore) -> None:
        super().__init__(db)
        self._entitlements = entitlements

    async def apply_payment(self, record: PaymentRecord) -> None:
        result = self._db.rpc("apply_payment", {
            "p_provider": record.provider.value,
            "p_transaction_id": record.transaction_id,
            "p_user_id": record.user_id,
            "p_tier": record.tier.value,
            "p_amount": record.amount,
            "p_currency": record.currency,
        }).execute()

        if result.data is None:
            raise EntitlementNotFoundError(record.user_id)
        if result.data is False:
            raise DuplicateTransactionError(record.transaction_id)

        # The update happened inside Postgres; push it to local subscribers.
        await self._entitlements.refresh_user(record.user_id)

    async def is_processed(self, transaction_id: str) -> bool:
        row = self._select_one(
            "processed_transactions", "transaction_id", transaction_id, columns="transaction_id"
        )
        return row is not None

    async def list_payments(
        self,
        user_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[PaymentRecord]:
        return [self._map_to_record(row) for row in self._select_recent("payments", limit, user_id)]

    def _map_to_record(self, row: dict[str, Any]) -> PaymentRecord:
        return PaymentRecord(
            transaction_id=row["transaction_id"],
            provider=row["provider"],
            user_id=row["user_id"],
            tier=row["tier"],
            amount=row.get("amount"),
            currency=row.get("currency"),
            created_at=row["created_at"],
        )
