"""
Gated feature runner.

Ties the usage policy to a generation call: check the cached snapshot,
generate, then record the use. A denied request never reaches the
generation service; a failed generation never consumes.
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from modules.generation.exceptions import GenerationError, TransientServiceError

from .models import EntitlementDelta, FeatureKey, PolicyDecision
from .sync import EntitlementSync

logger = logging.getLogger(__name__)

TRY_AGAIN_MESSAGE = "The service is busy right now, please try again."
FAILED_MESSAGE = "Something went wrong while generating content, please try again."


class FeatureStatus(str, Enum):
    COMPLETED = "completed"
    UPGRADE_REQUIRED = "upgrade_required"
    FAILED = "failed"
    STALE = "stale"


class FeatureOutcome(BaseModel):
    """What the screen should show after a gated request."""

    status: FeatureStatus
    decision: PolicyDecision
    result: Any = None
    delta: Optional[EntitlementDelta] = None
    message: Optional[str] = None

    @property
    def upgrade_required(self) -> bool:
        return self.status == FeatureStatus.UPGRADE_REQUIRED


class FeatureGate:
    """Runs generation calls behind the usage policy of one session."""

    def __init__(self, sync: EntitlementSync):
        self._sync = sync

    async def run(
        self,
        feature: FeatureKey,
        generate: Callable[[], Awaitable[Any]],
        amount: int = 1,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> FeatureOutcome:
        """
        Check, generate and consume.

        Args:
            feature: Feature being used
            generate: Zero-argument coroutine factory performing the call
            amount: Units requested (e.g. number of quiz questions)
            is_current: Returns False once the requesting screen has been
                superseded; its result is then discarded. The use is still
                recorded since the content was generated.
        """
        snapshot = self._sync.entitlement
        decision = self._sync.evaluate(feature, amount)
        if not decision.allowed:
            logger.debug(f"{feature.value} denied: {decision.reason}")
            return FeatureOutcome(status=FeatureStatus.UPGRADE_REQUIRED, decision=decision)

        try:
            result = await generate()
        except TransientServiceError as e:
            logger.warning(f"{feature.value} generation unavailable: {e}")
            return FeatureOutcome(
                status=FeatureStatus.FAILED,
                decision=decision,
                message=TRY_AGAIN_MESSAGE,
            )
        except GenerationError as e:
            logger.error(f"{feature.value} generation failed: {e}")
            return FeatureOutcome(
                status=FeatureStatus.FAILED,
                decision=decision,
                message=FAILED_MESSAGE,
            )

        delta = self._sync.consume(feature, amount, snapshot=snapshot)

        if is_current is not None and not is_current():
            logger.debug(f"Discarding superseded {feature.value} result")
            return FeatureOutcome(status=FeatureStatus.STALE, decision=decision, delta=delta)

        return FeatureOutcome(
            status=FeatureStatus.COMPLETED,
            decision=decision,
            result=result,
            delta=delta,
        )
