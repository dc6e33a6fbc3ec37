"""
Entitlements module.

Decides whether a user may use a feature, meters the use (credits or
daily counters) and keeps the entitlement document consistent between
the session and the store.

Public API:
- IEntitlementStore / IEntitlementService: Interfaces
- evaluate / can_use / compute_consumption: Pure usage policy
- EntitlementService: Trusted server-side consumption with compare-and-swap
- EntitlementSync / FeatureGate: Session-side optimistic usage
- Entitlement exceptions: FeatureAccessDeniedError, etc.
"""

from .interfaces import IEntitlementService, IEntitlementStore
from .models import (
    AccountStatus,
    ActivityLogRecord,
    AppConfig,
    ConsumptionResult,
    DenialReason,
    EntitlementDelta,
    EntitlementUpdate,
    EntitlementView,
    FeatureAccess,
    FeatureKey,
    PaymentGatewayConfig,
    PolicyDecision,
    RoleRequest,
    SubscriptionStatus,
    SubscriptionTier,
    UsageCounters,
    UsageLimits,
    UsageRequest,
    UserEntitlement,
    UserRole,
    default_app_config,
)
from .features import (
    ADMIN_ONLY_FEATURES,
    DEFAULT_TOOL,
    TOOL_REGISTRY,
    Tool,
    ToolSpec,
    admin_tools,
    feature_for_tool,
    tools_for_role,
)
from .policy import apply_delta, can_use, compute_consumption, evaluate, tier_at_least
from .refill import credit_refill, refill_due
from .rollover import current_counters, effective_count, rolled_over
from .exceptions import (
    AccountBlockedError,
    ConcurrentModificationError,
    ConfigUnavailableError,
    EntitlementError,
    EntitlementNotFoundError,
    FeatureAccessDeniedError,
    InvalidEntitlementUpdateError,
)
from .store import InMemoryEntitlementStore, SupabaseEntitlementStore
from .service import EntitlementService
from .sync import EntitlementSync
from .gate import FeatureGate, FeatureOutcome, FeatureStatus

__all__ = [
    # Interfaces
    "IEntitlementStore",
    "IEntitlementService",
    # Models
    "UserEntitlement",
    "UsageCounters",
    "AppConfig",
    "FeatureAccess",
    "UsageLimits",
    "PaymentGatewayConfig",
    "EntitlementDelta",
    "EntitlementUpdate",
    "EntitlementView",
    "UsageRequest",
    "RoleRequest",
    "ActivityLogRecord",
    "PolicyDecision",
    "ConsumptionResult",
    "DenialReason",
    "FeatureKey",
    "SubscriptionTier",
    "SubscriptionStatus",
    "AccountStatus",
    "UserRole",
    "default_app_config",
    # Features
    "Tool",
    "ToolSpec",
    "TOOL_REGISTRY",
    "ADMIN_ONLY_FEATURES",
    "DEFAULT_TOOL",
    "feature_for_tool",
    "tools_for_role",
    "admin_tools",
    # Policy
    "evaluate",
    "can_use",
    "compute_consumption",
    "apply_delta",
    "tier_at_least",
    "current_counters",
    "effective_count",
    "credit_refill",
    "refill_due",
    "rolled_over",
    # Stores and services
    "InMemoryEntitlementStore",
    "SupabaseEntitlementStore",
    "EntitlementService",
    "EntitlementSync",
    "FeatureGate",
    "FeatureOutcome",
    "FeatureStatus",
    # Exceptions
    "EntitlementError",
    "EntitlementNotFoundError",
    "ConfigUnavailableError",
    "AccountBlockedError",
    "FeatureAccessDeniedError",
    "InvalidEntitlementUpdateError",
    "ConcurrentModificationError",
]
