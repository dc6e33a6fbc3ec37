"""
Trusted entitlement service.

Runs the usage policy behind the server boundary. Clients send intents
("consume two quiz questions") and receive authoritative results; every
write to a user document goes through compare-and-swap on its version,
re-reading and re-evaluating on conflict.
"""

import datetime as dt
import logging
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from shared.config import Settings, get_settings
from shared.models import AuthenticatedUser

from .exceptions import (
    AccountBlockedError,
    ConcurrentModificationError,
    ConfigUnavailableError,
    EntitlementNotFoundError,
    FeatureAccessDeniedError,
    InvalidEntitlementUpdateError,
)
from .interfaces import IEntitlementStore
from .models import (
    ActivityLogRecord,
    AppConfig,
    ConsumptionResult,
    EntitlementUpdate,
    FeatureKey,
    PolicyDecision,
    SubscriptionStatus,
    SubscriptionTier,
    UserEntitlement,
    UserRole,
    default_app_config,
)
from .policy import compute_consumption, evaluate
from .refill import credit_refill
from .rollover import fresh_usage, today

logger = logging.getLogger(__name__)

# Builds the fields to write from the latest snapshot.
FieldBuilder = Callable[[UserEntitlement], Awaitable[dict]]


class EntitlementService:
    """
    Entitlement operations over an IEntitlementStore.

    The store decides where documents live (memory or Supabase); this
    class owns the policy checks and the optimistic-concurrency loop.
    """

    def __init__(self, store: IEntitlementStore, settings: Optional[Settings] = None):
        self._store = store
        self._settings = settings or get_settings()

    @property
    def store(self) -> IEntitlementStore:
        return self._store

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_or_create(self, user: AuthenticatedUser) -> UserEntitlement:
        """
        Load a user's entitlement, creating it on first sign-in.

        Loading grants any credit refill that has come due. The signup
        bonus stands in for the first month's free-tier refill.
        """
        existing = await self._store.get_user(user.id)
        if existing is not None:
            if self._refill_fields(existing):
                return await self.refill_credits(user.id)
            return existing

        day = today()
        entitlement = UserEntitlement(
            user_id=user.id,
            email=user.email,
            credits=self._settings.signup_bonus_credits,
            usage=fresh_usage(day),
            last_credit_reset=day,
        )
        created = await self._store.create_user(entitlement)
        if created.version == 0:
            logger.info(
                f"Created entitlement for {user.id} with {created.credits} signup credits"
            )
        return created

    async def get_entitlement(self, user_id: str) -> UserEntitlement:
        entitlement = await self._store.get_user(user_id)
        if entitlement is None:
            raise EntitlementNotFoundError(user_id)
        return entitlement

    async def get_config(self) -> AppConfig:
        config = await self._store.get_config()
        if config is None:
            raise ConfigUnavailableError()
        return config

    async def ensure_config(self) -> AppConfig:
        """Seed the default config if none is stored yet."""
        config = await self._store.get_config()
        if config is not None:
            return config
        logger.info("No app config stored, seeding defaults")
        return await self._store.set_config(default_app_config())

    async def update_config(self, config: AppConfig) -> AppConfig:
        return await self._store.set_config(config)

    async def check(self, user_id: str, feature: FeatureKey, amount: int = 1) -> PolicyDecision:
        """
        Evaluate the policy without changing anything.

        A missing config or entitlement is reported as a denial rather
        than raised, matching what the client-side gate would show.
        """
        config = await self._store.get_config()
        entitlement = await self._store.get_user(user_id)
        day = today()
        if entitlement is not None:
            entitlement = entitlement.model_copy(update=self._refill_fields(entitlement, day))
        return evaluate(config, entitlement, feature, amount, day)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def consume(
        self,
        user_id: str,
        feature: FeatureKey,
        amount: int = 1,
    ) -> ConsumptionResult:
        """
        Evaluate the policy and apply the consumption atomically.

        The decision is re-evaluated against every snapshot the loop reads,
        so a concurrent write that exhausts the quota turns a retry into a
        denial instead of an over-consumption.
        A credit refill that has come due lands in the same write.
        """
        config = await self.get_config()
        outcome: dict = {}

        async def build(entitlement: UserEntitlement) -> dict:
            if entitlement.is_blocked:
                raise AccountBlockedError(user_id)
            day = today()
            refill = self._refill_fields(entitlement, day)
            if refill:
                entitlement = entitlement.model_copy(update=refill)
            decision = evaluate(config, entitlement, feature, amount, day)
            if not decision.allowed:
                raise FeatureAccessDeniedError(decision)
            delta = compute_consumption(config, entitlement, feature, amount, day)
            outcome["decision"] = decision
            outcome["delta"] = delta
            return {**refill, **delta.to_fields()}

        updated = await self._write(user_id, build)
        result = ConsumptionResult(
            entitlement=updated,
            delta=outcome["delta"],
            decision=outcome["decision"],
        )
        await self._log_activity(updated, feature, amount)
        return result

    async def set_role(self, user_id: str, role: Optional[UserRole]) -> UserEntitlement:
        async def build(entitlement: UserEntitlement) -> dict:
            if entitlement.is_blocked:
                raise AccountBlockedError(user_id)
            return {"role": role}

        return await self._write(user_id, build)

    async def apply_subscription(
        self,
        user_id: str,
        tier: SubscriptionTier,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    ) -> UserEntitlement:
        async def build(entitlement: UserEntitlement) -> dict:
            return {"subscription_tier": tier, "subscription_status": status}

        updated = await self._write(user_id, build)
        logger.info(f"Subscription for {user_id} set to {tier.value} ({status.value})")
        return updated

    async def refill_credits(self, user_id: str) -> UserEntitlement:
        """Grant the periodic credit refill if one has come due."""

        async def build(entitlement: UserEntitlement) -> dict:
            return self._refill_fields(entitlement)

        updated = await self._write(user_id, build)
        logger.debug(f"Credit refill checked for {user_id}: {updated.credits} credits")
        return updated

    async def grant_credits(self, user_id: str, amount: int) -> UserEntitlement:
        """Add ``amount`` credits to the balance (negative amounts clamp at zero)."""

        async def build(entitlement: UserEntitlement) -> dict:
            return {"credits": max(0, entitlement.credits + amount)}

        return await self._write(user_id, build)

    async def admin_update(self, user_id: str, update: EntitlementUpdate) -> UserEntitlement:
        fields = update.to_fields()

        async def build(entitlement: UserEntitlement) -> dict:
            return fields

        try:
            updated = await self._write(user_id, build)
        except ValidationError as e:
            raise InvalidEntitlementUpdateError(user_id, str(e)) from e
        logger.info(f"Admin updated {user_id}: {sorted(fields)}")
        return updated

    async def list_users(self, limit: int = 100, offset: int = 0) -> list[UserEntitlement]:
        return await self._store.list_users(limit=limit, offset=offset)

    async def list_activity(
        self,
        limit: int = 50,
        user_id: Optional[str] = None,
    ) -> list[ActivityLogRecord]:
        return await self._store.list_activity(limit=limit, user_id=user_id)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _write(self, user_id: str, build: FieldBuilder) -> UserEntitlement:
        """
        Read, build and compare-and-swap until a write lands.

        An empty field set is a successful no-op returning the snapshot read.

        Raises:
            EntitlementNotFoundError: If the user has no entitlement
            ConcurrentModificationError: If every attempt lost the race
        """
        attempts = self._settings.cas_max_retries
        for attempt in range(1, attempts + 1):
            current = await self.get_entitlement(user_id)
            fields = await build(current)
            if not fields:
                return current

            updated = await self._store.compare_and_swap(user_id, current.version, fields)
            if updated is not None:
                return updated

            logger.warning(
                f"Version conflict writing {user_id} (attempt {attempt}/{attempts})"
            )

        raise ConcurrentModificationError(user_id, attempts)

    def _refill_fields(self, entitlement: UserEntitlement, on: Optional[dt.date] = None) -> dict:
        return credit_refill(
            entitlement,
            self._settings.paid_daily_credits,
            self._settings.free_monthly_credits,
            on,
        )

    async def _log_activity(self, entitlement: UserEntitlement, feature: FeatureKey, amount: int) -> None:
        if not self._settings.enable_activity_log:
            return
        record = ActivityLogRecord(
            user_id=entitlement.user_id,
            user_email=entitlement.email,
            feature=feature,
            amount=amount,
        )
        try:
            await self._store.append_activity(record)
        except Exception as e:
            logger.warning(f"Failed to append activity for {entitlement.user_id}: {e}")

