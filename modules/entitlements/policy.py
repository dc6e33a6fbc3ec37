"""
Usage policy engine.

Pure decision logic: given an entitlement snapshot and the app config,
decide whether a feature may be used and compute the state change that
using it produces. Nothing here performs I/O or raises for missing data;
an absent config, snapshot or feature entry is a denial (fail closed).
"""

import datetime as dt
from typing import Optional

from .features import ADMIN_ONLY_FEATURES
from .models import (
    AppConfig,
    DenialReason,
    EntitlementDelta,
    FeatureKey,
    PolicyDecision,
    SubscriptionTier,
    UsageCounters,
    UserEntitlement,
)
from .rollover import effective_count, rolled_over, today as local_today


TIER_ORDER: dict[SubscriptionTier, int] = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.SILVER: 1,
    SubscriptionTier.GOLD: 2,
}


def tier_at_least(tier: SubscriptionTier, minimum: SubscriptionTier) -> bool:
    """Whether ``tier`` meets ``minimum`` in the free < silver < gold order."""
    return TIER_ORDER[tier] >= TIER_ORDER[minimum]


def _deny(
    feature: FeatureKey,
    amount: int,
    reason: DenialReason,
    **extra,
) -> PolicyDecision:
    return PolicyDecision(allowed=False, feature=feature, amount=amount, reason=reason, **extra)


def evaluate(
    config: Optional[AppConfig],
    entitlement: Optional[UserEntitlement],
    feature: FeatureKey,
    amount: int = 1,
    today: Optional[dt.date] = None,
) -> PolicyDecision:
    """
    Decide whether ``entitlement`` may use ``feature`` ``amount`` times.

    Checks run in order and the first failing one decides:
    loaded state, account status, amount, admin-only features, feature
    toggle, minimum tier, credit balance (credit-metered features) and
    finally the free tier's daily limit (count-metered features).
    Paid tiers with no credit cost are unlimited.

    Args:
        config: Global app config, or None if it has not loaded yet
        entitlement: The user's entitlement snapshot, or None if not loaded
        feature: Feature being requested
        amount: Units requested (e.g. number of quiz questions)
        today: Date to evaluate daily counters against (defaults to local today)

    Returns:
        PolicyDecision; ``reason`` is set when the request is denied
    """
    if config is None:
        return _deny(feature, amount, DenialReason.CONFIG_UNAVAILABLE)
    if entitlement is None:
        return _deny(feature, amount, DenialReason.NOT_LOADED)
    if entitlement.is_blocked:
        return _deny(feature, amount, DenialReason.ACCOUNT_BLOCKED)
    if amount < 1:
        return _deny(feature, amount, DenialReason.INVALID_AMOUNT)

    if feature in ADMIN_ONLY_FEATURES:
        if entitlement.is_admin:
            return PolicyDecision(allowed=True, feature=feature, amount=amount)
        return _deny(feature, amount, DenialReason.ADMIN_ONLY)

    access = config.feature_access.get(feature)
    if access is None or not access.enabled:
        return _deny(feature, amount, DenialReason.FEATURE_DISABLED)

    if not tier_at_least(entitlement.subscription_tier, access.min_tier):
        return _deny(
            feature,
            amount,
            DenialReason.TIER_TOO_LOW,
            required_tier=access.min_tier,
        )

    limits = config.usage_limits
    cost = limits.credit_costs.get(feature)
    if cost is not None:
        required = cost * amount
        if entitlement.credits < required:
            return _deny(
                feature,
                amount,
                DenialReason.INSUFFICIENT_CREDITS,
                required_credits=required,
                remaining=entitlement.credits,
            )
        return PolicyDecision(
            allowed=True,
            feature=feature,
            amount=amount,
            required_credits=required,
            remaining=entitlement.credits,
        )

    limit = limits.free_tier_daily_limits.get(feature)
    if entitlement.subscription_tier == SubscriptionTier.FREE and limit is not None:
        used = effective_count(entitlement.usage, feature, today or local_today())
        remaining = max(0, limit - used)
        if used + amount > limit:
            return _deny(
                feature,
                amount,
                DenialReason.DAILY_LIMIT_REACHED,
                remaining=remaining,
            )
        return PolicyDecision(allowed=True, feature=feature, amount=amount, remaining=remaining)

    return PolicyDecision(allowed=True, feature=feature, amount=amount)


def can_use(
    config: Optional[AppConfig],
    entitlement: Optional[UserEntitlement],
    feature: FeatureKey,
    amount: int = 1,
    today: Optional[dt.date] = None,
) -> bool:
    """Whether ``entitlement`` may use ``feature``. See evaluate()."""
    return evaluate(config, entitlement, feature, amount, today).allowed


def compute_consumption(
    config: Optional[AppConfig],
    entitlement: UserEntitlement,
    feature: FeatureKey,
    amount: int = 1,
    today: Optional[dt.date] = None,
) -> EntitlementDelta:
    """
    State change produced by using ``feature`` ``amount`` times.

    Does not check permission; callers evaluate the policy first.

    - Credit-metered: credits drop by ``cost * amount``, clamped at zero.
    - Count-metered on the free tier: the feature's counter for today goes
      up by ``amount``. Stale counters are rebuilt from zero, so the delta
      always carries a complete record stamped with today.
    - Anything else: an empty delta (activity is still logged).
    """
    if config is None:
        return EntitlementDelta()

    limits = config.usage_limits
    cost = limits.credit_costs.get(feature)
    if cost is not None:
        return EntitlementDelta(credits=max(0, entitlement.credits - cost * amount))

    if (
        entitlement.subscription_tier == SubscriptionTier.FREE
        and feature in limits.free_tier_daily_limits
    ):
        day = today or local_today()
        counters = dict(rolled_over(entitlement.usage, day).counters)
        counters[feature] = counters.get(feature, 0) + amount
        return EntitlementDelta(usage=UsageCounters(date=day, counters=counters))

    return EntitlementDelta()


def apply_delta(entitlement: UserEntitlement, delta: EntitlementDelta) -> UserEntitlement:
    """Return a copy of ``entitlement`` with ``delta`` applied and its version bumped."""
    update = delta.to_fields()
    update["version"] = entitlement.version + 1
    return entitlement.model_copy(update=update)
