"""
Entitlement module interfaces.

Other modules should depend on these protocols, not the concrete
implementations. The billing module upgrades tiers through
IEntitlementService; the session layer reads snapshots through
IEntitlementStore subscriptions.
"""

from typing import Callable, Optional, Protocol, runtime_checkable

from shared.models import AuthenticatedUser

from .models import (
    ActivityLogRecord,
    AppConfig,
    ConsumptionResult,
    FeatureKey,
    PolicyDecision,
    SubscriptionStatus,
    SubscriptionTier,
    UserEntitlement,
    UserRole,
)


EntitlementListener = Callable[[UserEntitlement], None]
ConfigListener = Callable[[AppConfig], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class IEntitlementStore(Protocol):
    """
    Document store holding user entitlements, the app config singleton
    and the activity log.

    Every write to a user document bumps its ``version`` and notifies
    that user's subscribers with the new snapshot. Config writes notify
    config subscribers.
    """

    async def get_user(self, user_id: str) -> Optional[UserEntitlement]:
        """Point read of a user document. None if it does not exist."""
        ...

    async def create_user(self, entitlement: UserEntitlement) -> UserEntitlement:
        """
        Create a user document unless one already exists.

        Returns:
            The stored document (the existing one if already present)
        """
        ...

    async def update_user(self, user_id: str, fields: dict) -> UserEntitlement:
        """
        Merge ``fields`` into a user document unconditionally.

        Raises:
            EntitlementNotFoundError: If the document does not exist
        """
        ...

    async def compare_and_swap(
        self,
        user_id: str,
        expected_version: int,
        fields: dict,
    ) -> Optional[UserEntitlement]:
        """
        Merge ``fields`` only if the stored version equals ``expected_version``.

        Returns:
            The updated document, or None if the version did not match

        Raises:
            EntitlementNotFoundError: If the document does not exist
        """
        ...

    async def list_users(self, limit: int = 100, offset: int = 0) -> list[UserEntitlement]:
        """List user documents for the admin console."""
        ...

    async def get_config(self) -> Optional[AppConfig]:
        """Read the app config singleton. None if it was never written."""
        ...

    async def set_config(self, config: AppConfig) -> AppConfig:
        """Replace the app config singleton."""
        ...

    async def append_activity(self, record: ActivityLogRecord) -> None:
        """Append one activity record."""
        ...

    async def list_activity(
        self,
        limit: int = 50,
        user_id: Optional[str] = None,
    ) -> list[ActivityLogRecord]:
        """Most recent activity first, optionally for one user."""
        ...

    def subscribe_user(self, user_id: str, listener: EntitlementListener) -> Unsubscribe:
        """Receive every new snapshot of one user's document."""
        ...

    def subscribe_config(self, listener: ConfigListener) -> Unsubscribe:
        """Receive every new app config."""
        ...


@runtime_checkable
class IEntitlementService(Protocol):
    """
    Trusted entitlement operations.

    Clients send intents ("consume one unit of feature X") and get
    authoritative results back; the service evaluates the policy and
    applies the change atomically.
    """

    async def get_or_create(self, user: AuthenticatedUser) -> UserEntitlement:
        """Load a user's entitlement, creating it on first sign-in."""
        ...

    async def get_entitlement(self, user_id: str) -> UserEntitlement:
        """
        Load an existing entitlement.

        Raises:
            EntitlementNotFoundError: If the user has none
        """
        ...

    async def get_config(self) -> AppConfig:
        """
        Load the app config.

        Raises:
            ConfigUnavailableError: If none is stored
        """
        ...

    async def check(self, user_id: str, feature: FeatureKey, amount: int = 1) -> PolicyDecision:
        """Evaluate the policy without changing anything."""
        ...

    async def consume(self, user_id: str, feature: FeatureKey, amount: int = 1) -> ConsumptionResult:
        """
        Evaluate the policy and apply the consumption atomically.

        Raises:
            AccountBlockedError: If the account is blocked
            FeatureAccessDeniedError: If the policy denies the request
            ConcurrentModificationError: If concurrent writers keep winning
        """
        ...

    async def set_role(self, user_id: str, role: Optional[UserRole]) -> UserEntitlement:
        """Persist (or clear) the user's role."""
        ...

    async def apply_subscription(
        self,
        user_id: str,
        tier: SubscriptionTier,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    ) -> UserEntitlement:
        """Set tier and status, as a payment or admin action."""
        ...
