"""
Entitlement store implementations.

Provides both in-memory (for testing and development) and Supabase-backed
(for production) implementations of IEntitlementStore. Both fan out
snapshot notifications to in-process subscribers after every write.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel
from supabase import Client

from shared.repository import BaseRepository

from .exceptions import EntitlementNotFoundError
from .interfaces import ConfigListener, EntitlementListener, Unsubscribe
from .models import ActivityLogRecord, AppConfig, UserEntitlement

logger = logging.getLogger(__name__)

CONFIG_ID = "app"

# Fields callers may write on a user document. user_id, version and
# created_at are managed by the store.
WRITABLE_FIELDS = frozenset({
    "email",
    "subscription_tier",
    "subscription_status",
    "credits",
    "usage",
    "role",
    "is_admin",
    "account_status",
    "last_credit_reset",
})


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Not writable on an entitlement: {', '.join(sorted(unknown))}")


def _merge(current: UserEntitlement, fields: dict) -> UserEntitlement:
    """Validate ``fields`` on top of ``current`` and bump the version."""
    data = current.model_dump()
    data.update(fields)
    data["version"] = current.version + 1
    return UserEntitlement.model_validate(data)


class _SubscriptionHub:
    """In-process fan-out of snapshot notifications."""

    def __init__(self) -> None:
        self._user_listeners: dict[str, list[EntitlementListener]] = defaultdict(list)
        self._config_listeners: list[ConfigListener] = []

    def subscribe_user(self, user_id: str, listener: EntitlementListener) -> Unsubscribe:
        self._user_listeners[user_id].append(listener)

        def unsubscribe() -> None:
            listeners = self._user_listeners.get(user_id, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def subscribe_config(self, listener: ConfigListener) -> Unsubscribe:
        self._config_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._config_listeners:
                self._config_listeners.remove(listener)

        return unsubscribe

    def _notify_user(self, entitlement: UserEntitlement) -> None:
        for listener in list(self._user_listeners.get(entitlement.user_id, [])):
            try:
                listener(entitlement)
            except Exception:
                logger.exception(f"Entitlement listener failed for user {entitlement.user_id}")

    def _notify_config(self, config: AppConfig) -> None:
        for listener in list(self._config_listeners):
            try:
                listener(config)
            except Exception:
                logger.exception("Config listener failed")


class InMemoryEntitlementStore(_SubscriptionHub):
    """
    Entitlement store with in-memory storage.

    For testing and development. Use SupabaseEntitlementStore for production.
    Operations never await between read and write, so each one is atomic
    on the event loop.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        super().__init__()
        self._users: dict[str, UserEntitlement] = {}
        self._config: Optional[AppConfig] = config
        self._activity: list[ActivityLogRecord] = []

    async def get_user(self, user_id: str) -> Optional[UserEntitlement]:
        return self._users.get(user_id)

    async def create_user(self, entitlement: UserEntitlement) -> UserEntitlement:
        existing = self._users.get(entitlement.user_id)
        if existing is not None:
            return existing
        self._users[entitlement.user_id] = entitlement
        self._notify_user(entitlement)
        return entitlement

    async def update_user(self, user_id: str, fields: dict) -> UserEntitlement:
        _check_fields(fields)
        current = self._users.get(user_id)
        if current is None:
            raise EntitlementNotFoundError(user_id)
        updated = _merge(current, fields)
        self._users[user_id] = updated
        self._notify_user(updated)
        return updated

    async def compare_and_swap(
        self,
        user_id: str,
        expected_version: int,
        fields: dict,
    ) -> Optional[UserEntitlement]:
        _check_fields(fields)
        current = self._users.get(user_id)
        if current is None:
            raise EntitlementNotFoundError(user_id)
        if current.version != expected_version:
            return None
        updated = _merge(current, fields)
        self._users[user_id] = updated
        self._notify_user(updated)
        return updated

    async def list_users(self, limit: int = 100, offset: int = 0) -> list[UserEntitlement]:
        users = sorted(self._users.values(), key=lambda u: u.created_at)
        return users[offset : offset + limit]

    async def get_config(self) -> Optional[AppConfig]:
        return self._config

    async def set_config(self, config: AppConfig) -> AppConfig:
        self._config = config
        self._notify_config(config)
        return config

    async def append_activity(self, record: ActivityLogRecord) -> None:
        self._activity.insert(0, record)

    async def list_activity(
        self,
        limit: int = 50,
        user_id: Optional[str] = None,
    ) -> list[ActivityLogRecord]:
        records = self._activity
        if user_id is not None:
            records = [r for r in records if r.user_id == user_id]
        return records[:limit]


def _to_column(value: Any) -> Any:
    """Convert a model field value to its JSON column form."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class SupabaseEntitlementStore(BaseRepository[UserEntitlement], _SubscriptionHub):
    """
    Entitlement store with Supabase persistence.

    Tables: ``users`` (one row per entitlement, ``usage`` as jsonb),
    ``app_config`` (single row ``id = 'app'`` with a jsonb ``data`` column)
    and ``activity_log``. Compare-and-swap is a conditional update on the
    ``version`` column.

    Subscribers are notified of writes made through this process. Writes
    made elsewhere (another worker, the SQL console) reach subscribers
    when refresh_user() or refresh_config() pulls them.
    """

    def __init__(self, db: Client) -> None:
        BaseRepository.__init__(self, db)
        _SubscriptionHub.__init__(self)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def get_user(self, user_id: str) -> Optional[UserEntitlement]:
        row = self._select_one("users", "id", user_id)
        return self._map_to_entitlement(row) if row else None

    async def create_user(self, entitlement: UserEntitlement) -> UserEntitlement:
        existing = await self.get_user(entitlement.user_id)
        if existing is not None:
            return existing
        result = self._db.table("users").insert(self._to_row(entitlement)).execute()
        created = self._map_to_entitlement(result.data[0])
        self._notify_user(created)
        return created

    async def update_user(self, user_id: str, fields: dict) -> UserEntitlement:
        _check_fields(fields)
        current = await self.get_user(user_id)
        if current is None:
            raise EntitlementNotFoundError(user_id)
        updated = _merge(current, fields)
        row = {key: _to_column(value) for key, value in fields.items()}
        row["version"] = updated.version
        self._db.table("users").update(row).eq("id", user_id).execute()
        self._notify_user(updated)
        return updated

    async def compare_and_swap(
        self,
        user_id: str,
        expected_version: int,
        fields: dict,
    ) -> Optional[UserEntitlement]:
        _check_fields(fields)
        current = await self.get_user(user_id)
        if current is None:
            raise EntitlementNotFoundError(user_id)
        if current.version != expected_version:
            return None
        _merge(current, fields)

        row = {key: _to_column(value) for key, value in fields.items()}
        row["version"] = expected_version + 1
        result = (
            self._db.table("users")
            .update(row)
            .eq("id", user_id)
            .eq("version", expected_version)
            .execute()
        )
        if not result.data:
            logger.debug(f"CAS lost for user {user_id} at version {expected_version}")
            return None

        updated = self._map_to_entitlement(result.data[0])
        self._notify_user(updated)
        return updated

    async def list_users(self, limit: int = 100, offset: int = 0) -> list[UserEntitlement]:
        result = (
            self._db.table("users")
            .select("*")
            .order("created_at")
            .range(offset, offset + limit - 1)
            .execute()
        )
        return [self._map_to_entitlement(row) for row in result.data]

    async def refresh_user(self, user_id: str) -> Optional[UserEntitlement]:
        """Pull the stored document and push it to subscribers."""
        entitlement = await self.get_user(user_id)
        if entitlement is not None:
            self._notify_user(entitlement)
        return entitlement

    # -------------------------------------------------------------------------
    # Config
    # -------------------------------------------------------------------------

    async def get_config(self) -> Optional[AppConfig]:
        row = self._select_one("app_config", "id", CONFIG_ID, columns="data")
        return AppConfig.model_validate(row["data"]) if row else None

    async def set_config(self, config: AppConfig) -> AppConfig:
        self._db.table("app_config").upsert({
            "id": CONFIG_ID,
            "data": config.model_dump(mode="json"),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }).execute()
        self._notify_config(config)
        return config

    async def refresh_config(self) -> Optional[AppConfig]:
        """Pull the stored config and push it to subscribers."""
        config = await self.get_config()
        if config is not None:
            self._notify_config(config)
        return config

    # -------------------------------------------------------------------------
    # Activity log
    # -------------------------------------------------------------------------

    async def append_activity(self, record: ActivityLogRecord) -> None:
        self._db.table("activity_log").insert({
            "user_id": record.user_id,
            "user_email": record.user_email,
            "action": record.action,
            "feature": record.feature.value,
            "amount": record.amount,
            "created_at": record.timestamp.isoformat(),
        }).execute()

    async def list_activity(
        self,
        limit: int = 50,
        user_id: Optional[str] = None,
    ) -> list[ActivityLogRecord]:
        rows = self._select_recent("activity_log", limit, user_id)
        return [
            ActivityLogRecord(
                user_id=r["user_id"],
                user_email=r.get("user_email") or "",
                action=r["action"],
                feature=r["feature"],
                amount=r.get("amount", 1),
                timestamp=datetime.fromisoformat(r["created_at"].replace("Z", "+00:00")),
            )
            for r in rows
        ]

    # -------------------------------------------------------------------------
    # Mapping
    # -------------------------------------------------------------------------

    def _to_row(self, entitlement: UserEntitlement) -> dict[str, Any]:
        data = entitlement.model_dump(mode="json")
        data["id"] = data.pop("user_id")
        return data

    def _map_to_entitlement(self, row: dict[str, Any]) -> UserEntitlement:
        data = dict(row)
        data["user_id"] = data.pop("id")
        data.pop("updated_at", None)
        return UserEntitlement.model_validate(data)
