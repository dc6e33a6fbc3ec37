"""
Periodic credit refill.

Paid tiers get a daily credit allowance and the free tier a monthly one.
Like usage rollover this is lazy: the allowance due since
``last_credit_reset`` is granted by the next load or consumption, which
also stamps the date. Missed periods do not accumulate.
"""

import datetime as dt
from typing import Mapping, Optional

from .models import SubscriptionTier, UserEntitlement
from .rollover import today


def refill_due(entitlement: UserEntitlement, on: Optional[dt.date] = None) -> bool:
    """Whether a refill period has started since the last one."""
    day = on or today()
    last = entitlement.last_credit_reset
    if last is None:
        return True
    if entitlement.subscription_tier == SubscriptionTier.FREE:
        return (last.year, last.month) != (day.year, day.month)
    return last != day


def credit_refill(
    entitlement: UserEntitlement,
    paid_daily_credits: Mapping[str, int],
    free_monthly_credits: int,
    on: Optional[dt.date] = None,
) -> dict:
    """
    Fields that grant the refill due on ``on``, or an empty dict.

    Blocked accounts are never refilled.
    """
    day = on or today()
    if entitlement.is_blocked or not refill_due(entitlement, day):
        return {}
    if entitlement.subscription_tier == SubscriptionTier.FREE:
        grant = free_monthly_credits
    else:
        grant = paid_daily_credits.get(entitlement.subscription_tier.value, 0)
    return {"credits": entitlement.credits + grant, "last_credit_reset": day}
