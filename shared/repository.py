"""
Base repository class for database access.

Holds the Supabase client for the stores and the two query shapes they
share: a point read by key and a newest-first listing optionally
narrowed to one user.
"""

from typing import Any, Generic, Optional, TypeVar

from supabase import Client


T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Base class for Supabase-backed stores.

    Subclasses map rows to their pydantic model ``T`` themselves; the
    helpers here return raw rows.

    Example:
        class PaymentRepository(BaseRepository[PaymentRecord]):
            async def get(self, transaction_id: str) -> Optional[PaymentRecord]:
                row = self._select_one("payments", "transaction_id", transaction_id)
                return PaymentRecord.model_validate(row) if row else None
    """

    def __init__(self, db: Client) -> None:
        """
        Initialize the repository with a Supabase client.

        Args:
            db: Supabase client, normally the service-role client from
                shared.database.get_supabase_client().
        """
        self._db = db

    def _select_one(
        self,
        table: str,
        column: str,
        value: Any,
        columns: str = "*",
    ) -> Optional[dict[str, Any]]:
        """First row of ``table`` where ``column`` equals ``value``, or None."""
        result = self._db.table(table).select(columns).eq(column, value).execute()
        return result.data[0] if result.data else None

    def _select_recent(
        self,
        table: str,
        limit: int,
        user_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Rows of ``table`` by ``created_at`` descending, optionally for one user."""
        query = self._db.table(table).select("*")
        if user_id is not None:
            query = query.eq("user_id", user_id)
        return query.order("created_at", desc=True).limit(limit).execute().data
