"""
Entitlement module data models.

These models define the per-user entitlement document, the global app
configuration singleton, and the records exchanged between the policy
engine, the stores and the sync layer.
"""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class SubscriptionTier(str, Enum):
    """User subscription tiers, ordered free < silver < gold."""

    FREE = "free"
    SILVER = "silver"
    GOLD = "gold"


class SubscriptionStatus(str, Enum):
    """Billing status of the subscription."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELED = "canceled"
    PAST_DUE = "past_due"


class AccountStatus(str, Enum):
    """Account-level status. Blocked accounts are treated as signed out."""

    ACTIVE = "active"
    BLOCKED = "blocked"


class UserRole(str, Enum):
    """Role a user picks after signing in."""

    STUDENT = "student"
    TEACHER = "teacher"


class FeatureKey(str, Enum):
    """
    Identifier of a gated capability.

    Values are the keys used in stored documents (usage counters,
    feature access, limits and credit costs).
    """

    QUIZ_QUESTIONS = "quizQuestions"
    TOPIC_SEARCHES = "topicSearches"
    HOMEWORK_HELPS = "homeworkHelps"
    PRESENTATIONS = "presentations"
    LESSON_PLANS = "lessonPlans"
    ACTIVITIES = "activities"
    SUMMARIES = "summaries"
    FACT_FINDER = "factFinder"
    REPORT_CARDS = "reportCards"
    VISUAL_ASSISTANT = "visualAssistant"
    ADMIN_PANEL = "adminPanel"


class UsageCounters(BaseModel):
    """
    Per-day usage counters.

    Counters are only meaningful when ``date`` is today; see rollover.py.
    """

    date: dt.date = Field(..., description="Day the counters belong to")
    counters: dict[FeatureKey, int] = Field(
        default_factory=dict,
        description="Uses per feature on that day",
    )

    model_config = {"frozen": True}


class UserEntitlement(BaseModel):
    """
    Entitlement document for one user.

    Owned by the user; mutated by consumption, payment webhooks,
    admin edits and (lazily) daily rollover.
    """

    user_id: str = Field(..., description="User ID")
    email: str = Field(default="", description="User email, copied for activity logs")
    subscription_tier: SubscriptionTier = Field(default=SubscriptionTier.FREE)
    subscription_status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE)
    credits: int = Field(default=0, ge=0, description="Credit balance, never negative")
    usage: UsageCounters = Field(..., description="Today's usage counters")
    role: Optional[UserRole] = Field(None, description="Persisted role, unset until chosen")
    is_admin: bool = Field(default=False)
    account_status: AccountStatus = Field(default=AccountStatus.ACTIVE)
    last_credit_reset: Optional[dt.date] = Field(None, description="Day credits were last refilled")
    version: int = Field(default=0, ge=0, description="Bumped on every write")
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))

    model_config = {"frozen": True}

    @property
    def is_blocked(self) -> bool:
        return self.account_status == AccountStatus.BLOCKED


class FeatureAccess(BaseModel):
    """Toggle and minimum tier for one feature."""

    enabled: bool = True
    min_tier: SubscriptionTier = SubscriptionTier.FREE


class UsageLimits(BaseModel):
    """
    Metering rules.

    A feature listed in ``credit_costs`` is credit-metered; otherwise a
    feature listed in ``free_tier_daily_limits`` is count-metered for the
    free tier only.
    """

    free_tier_daily_limits: dict[FeatureKey, int] = Field(default_factory=dict)
    credit_costs: dict[FeatureKey, int] = Field(default_factory=dict)

    @field_validator("free_tier_daily_limits", "credit_costs")
    @classmethod
    def _non_negative(cls, value: dict[FeatureKey, int]) -> dict[FeatureKey, int]:
        for feature, amount in value.items():
            if amount < 0:
                raise ValueError(f"{feature.value} must not be negative")
        return value


class PaymentGatewayConfig(BaseModel):
    """A payment gateway and whether checkout may use it."""

    provider: str
    enabled: bool = True


class AppConfig(BaseModel):
    """
    Global configuration singleton.

    Owned by admins, read by every client.
    """

    feature_access: dict[FeatureKey, FeatureAccess] = Field(default_factory=dict)
    usage_limits: UsageLimits = Field(default_factory=UsageLimits)
    ai_model_selection: dict[str, str] = Field(
        default_factory=dict,
        description="Logical model name -> concrete model id",
    )
    plan_prices: dict[SubscriptionTier, str] = Field(default_factory=dict)
    payment_gateways: list[PaymentGatewayConfig] = Field(default_factory=list)


class EntitlementDelta(BaseModel):
    """
    State change produced by consuming a feature.

    ``usage`` is always a complete rebuilt record, never a partial merge.
    """

    credits: Optional[int] = Field(None, ge=0)
    usage: Optional[UsageCounters] = None

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        return self.credits is None and self.usage is None

    def to_fields(self) -> dict:
        """Fields to write to the user document."""
        fields: dict = {}
        if self.credits is not None:
            fields["credits"] = self.credits
        if self.usage is not None:
            fields["usage"] = self.usage
        return fields


class ActivityLogRecord(BaseModel):
    """Append-only record of one feature use."""

    user_id: str
    user_email: str = ""
    action: str = Field(default="feature_used")
    feature: FeatureKey
    amount: int = 1
    timestamp: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))

    model_config = {"frozen": True}


class DenialReason(str, Enum):
    """Why the policy engine refused an action."""

    CONFIG_UNAVAILABLE = "config_unavailable"
    NOT_LOADED = "not_loaded"
    ACCOUNT_BLOCKED = "account_blocked"
    INVALID_AMOUNT = "invalid_amount"
    ADMIN_ONLY = "admin_only"
    FEATURE_DISABLED = "feature_disabled"
    TIER_TOO_LOW = "tier_too_low"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    DAILY_LIMIT_REACHED = "daily_limit_reached"


class PolicyDecision(BaseModel):
    """Result of evaluating the usage policy for one request."""

    allowed: bool
    feature: FeatureKey
    amount: int = 1
    reason: Optional[DenialReason] = None
    required_tier: Optional[SubscriptionTier] = None
    required_credits: Optional[int] = None
    remaining: Optional[int] = Field(
        None,
        description="Credits or daily uses left before this request",
    )

    model_config = {"frozen": True}


class ConsumptionResult(BaseModel):
    """Authoritative outcome of a server-side consumption."""

    entitlement: UserEntitlement
    delta: EntitlementDelta
    decision: PolicyDecision


# Defaults used when no config document exists yet.
DEFAULT_FREE_TIER_DAILY_LIMITS = {
    # Student
    FeatureKey.QUIZ_QUESTIONS: 100,
    FeatureKey.TOPIC_SEARCHES: 5,
    FeatureKey.HOMEWORK_HELPS: 5,
    # Teacher
    FeatureKey.PRESENTATIONS: 3,
    FeatureKey.LESSON_PLANS: 5,
    FeatureKey.ACTIVITIES: 3,
}

DEFAULT_CREDIT_COSTS = {
    FeatureKey.VISUAL_ASSISTANT: 10,
}

DEFAULT_AI_MODELS = {
    "lessonPlanner": "gemini-2.5-pro",
    "homeworkHelper": "gemini-2.5-flash-lite",
    "topicExplorer": "gemini-2.5-flash",
    "presentationGenerator": "gemini-2.5-pro",
    "quizGenerator": "gemini-2.5-flash",
    "summarizer": "gemini-2.5-flash",
    "factFinder": "gemini-2.5-flash",
    "activityGenerator": "gemini-2.5-flash-lite",
    "reportCardHelper": "gemini-2.5-flash",
    "visualAssistant": "gemini-2.5-flash",
}


def default_app_config() -> AppConfig:
    """Build the configuration a fresh deployment starts with."""
    return AppConfig(
        feature_access={
            feature: FeatureAccess()
            for feature in FeatureKey
            if feature != FeatureKey.ADMIN_PANEL
        },
        usage_limits=UsageLimits(
            free_tier_daily_limits=dict(DEFAULT_FREE_TIER_DAILY_LIMITS),
            credit_costs=dict(DEFAULT_CREDIT_COSTS),
        ),
        ai_model_selection=dict(DEFAULT_AI_MODELS),
        plan_prices={
            SubscriptionTier.SILVER: "₹499/mo",
            SubscriptionTier.GOLD: "₹999/mo",
        },
        payment_gateways=[
            PaymentGatewayConfig(provider="stripe", enabled=True),
            PaymentGatewayConfig(provider="cashfree", enabled=True),
        ],
    )


class EntitlementUpdate(BaseModel):
    """
    Admin edit of a user's entitlement. Unset fields are left alone.

    Only ``role`` may be set to null, which clears it.
    """

    subscription_tier: Optional[SubscriptionTier] = None
    subscription_status: Optional[SubscriptionStatus] = None
    credits: Optional[int] = Field(None, ge=0)
    role: Optional[UserRole] = None
    is_admin: Optional[bool] = None
    account_status: Optional[AccountStatus] = None

    @field_validator(
        "subscription_tier", "subscription_status", "credits", "is_admin", "account_status"
    )
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value

    def to_fields(self) -> dict:
        return self.model_dump(exclude_unset=True)


class UsageRequest(BaseModel):
    """Intent to use a feature ``amount`` times."""

    feature: FeatureKey
    amount: int = Field(default=1, description="Units requested; below 1 is denied")


class RoleRequest(BaseModel):
    """Persist (or clear, with null) the caller's role."""

    role: Optional[UserRole] = None


class EntitlementView(BaseModel):
    """An entitlement as the client sees it, with today's effective counters."""

    entitlement: UserEntitlement
    usage_today: dict[FeatureKey, int] = Field(default_factory=dict)
