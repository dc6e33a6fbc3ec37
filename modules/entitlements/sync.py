"""
Client-side usage application and sync.

EntitlementSync keeps the session's cached entitlement snapshot and app
config current from store notifications, answers can_use() locally and
applies consumption optimistically: the local snapshot changes at once,
persistence and the activity log follow as background tasks.
"""

import asyncio
import logging
from typing import Optional

from .interfaces import IEntitlementStore, Unsubscribe
from .models import (
    ActivityLogRecord,
    AppConfig,
    EntitlementDelta,
    FeatureKey,
    PolicyDecision,
    UserEntitlement,
)
from .policy import apply_delta, compute_consumption, evaluate
from .rollover import today

logger = logging.getLogger(__name__)


class EntitlementSync:
    """
    Cached entitlement state for one signed-in user.

    The snapshot and the config are independent resources: either may be
    missing, in which case every check fails closed.
    """

    def __init__(self, store: IEntitlementStore, log_activity: bool = True):
        self._store = store
        self._log_activity = log_activity
        self._entitlement: Optional[UserEntitlement] = None
        self._config: Optional[AppConfig] = None
        self._unsubscribers: list[Unsubscribe] = []
        self._pending: set[asyncio.Task] = set()

    @property
    def entitlement(self) -> Optional[UserEntitlement]:
        return self._entitlement

    @property
    def config(self) -> Optional[AppConfig]:
        return self._config

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def attach(self, user_id: str) -> None:
        """Start receiving snapshots for ``user_id`` and config updates."""
        self.detach()
        self._unsubscribers = [
            self._store.subscribe_user(user_id, self.receive_snapshot),
            self._store.subscribe_config(self.receive_config),
        ]

    def detach(self) -> None:
        """Stop receiving notifications and drop cached state."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._entitlement = None
        self._config = None

    def receive_snapshot(self, entitlement: UserEntitlement) -> None:
        """Replace the local snapshot. The incoming one always wins."""
        self._entitlement = entitlement

    def receive_config(self, config: AppConfig) -> None:
        self._config = config

    # -------------------------------------------------------------------------
    # Policy
    # -------------------------------------------------------------------------

    def evaluate(self, feature: FeatureKey, amount: int = 1) -> PolicyDecision:
        return evaluate(self._config, self._entitlement, feature, amount, today())

    def can_use(self, feature: FeatureKey, amount: int = 1) -> bool:
        return self.evaluate(feature, amount).allowed

    def consume(
        self,
        feature: FeatureKey,
        amount: int = 1,
        snapshot: Optional[UserEntitlement] = None,
    ) -> EntitlementDelta:
        """
        Record a use of ``feature`` after content was generated.

        Permission is not re-checked: callers evaluated it before the
        generation call. The delta is computed from ``snapshot`` (the one
        the check saw) when given, otherwise from the current snapshot.
        Must be called from a running event loop.

        Returns:
            The delta applied locally (possibly empty)
        """
        base = snapshot or self._entitlement
        if base is None:
            logger.warning(f"Consume of {feature.value} with no entitlement loaded, ignoring")
            return EntitlementDelta()

        day = today()
        delta = compute_consumption(self._config, base, feature, amount, day)
        if not delta.is_empty:
            self._entitlement = apply_delta(base, delta)
            self._schedule(self._persist(base.user_id, delta), f"persist {feature.value}")

        if self._log_activity:
            record = ActivityLogRecord(
                user_id=base.user_id,
                user_email=base.email,
                feature=feature,
                amount=amount,
            )
            self._schedule(self._append(record), f"activity {feature.value}")

        return delta

    async def drain(self) -> None:
        """Wait for in-flight background writes."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Background writes
    # -------------------------------------------------------------------------

    def _schedule(self, coro, label: str) -> None:
        task = asyncio.create_task(coro, name=label)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(self, user_id: str, delta: EntitlementDelta) -> None:
        try:
            await self._store.update_user(user_id, delta.to_fields())
        except Exception as e:
            logger.warning(f"Failed to persist usage for {user_id}: {e}")

    async def _append(self, record: ActivityLogRecord) -> None:
        try:
            await self._store.append_activity(record)
        except Exception as e:
            logger.warning(f"Failed to append activity for {record.user_id}: {e}")
