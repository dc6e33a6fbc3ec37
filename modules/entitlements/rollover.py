"""
Daily rollover of usage counters.

Rollover is lazy: nothing resets counters at midnight. Every read compares
the stored date with today's local date and treats stale counters as zero;
the next successful mutation persists a fresh record stamped with today.
"""

import datetime as dt
from typing import Optional

from .models import FeatureKey, UsageCounters


def today() -> dt.date:
    """Current date on the local clock (not server time)."""
    return dt.date.today()


def is_stale(usage: UsageCounters, on: Optional[dt.date] = None) -> bool:
    """Whether the counters belong to a day other than ``on``."""
    return usage.date != (on or today())


def current_counters(
    usage: UsageCounters,
    on: Optional[dt.date] = None,
) -> dict[FeatureKey, int]:
    """Counters as they apply on ``on``: the stored ones, or none if stale."""
    if is_stale(usage, on):
        return {}
    return dict(usage.counters)


def effective_count(
    usage: UsageCounters,
    feature: FeatureKey,
    on: Optional[dt.date] = None,
) -> int:
    """Uses of ``feature`` counted against ``on``."""
    return current_counters(usage, on).get(feature, 0)


def rolled_over(usage: UsageCounters, on: Optional[dt.date] = None) -> UsageCounters:
    """
    Counters re-based on ``on``.

    Returns ``usage`` unchanged when it is current, otherwise an empty
    record stamped with ``on``. Stale counts are discarded, never merged.
    """
    day = on or today()
    if usage.date == day:
        return usage
    return UsageCounters(date=day)


def fresh_usage(on: Optional[dt.date] = None) -> UsageCounters:
    """Zeroed counters for a new account."""
    return UsageCounters(date=on or today())
