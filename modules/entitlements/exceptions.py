"""
Entitlement module exceptions.

These exceptions are raised by the entitlement service and stores and can
be caught by API error handlers to return appropriate HTTP responses.
The policy engine itself never raises; denials are PolicyDecision values.
"""

from shared.exceptions import (
    AuthorizationError,
    ConflictError,
    EduSparkError,
    NotFoundError,
    ValidationError,
)

from .models import PolicyDecision


class EntitlementError(EduSparkError):
    """Base exception for entitlement-related errors."""

    pass


class EntitlementNotFoundError(NotFoundError):
    """Raised when a user has no entitlement document."""

    def __init__(self, user_id: str):
        super().__init__(
            f"Entitlement not found for user: {user_id}",
            code="ENTITLEMENT_NOT_FOUND",
            details={"user_id": user_id},
        )


class ConfigUnavailableError(EntitlementError):
    """Raised when the global app config has not been loaded or does not exist."""

    def __init__(self):
        super().__init__(
            "App configuration is not available",
            code="CONFIG_UNAVAILABLE",
        )


class AccountBlockedError(AuthorizationError):
    """
    Raised when a blocked account attempts any entitlement operation.

    Fatal for the session: the client signs the user out with a notice.
    """

    def __init__(self, user_id: str):
        super().__init__(
            "This account has been blocked",
            code="ACCOUNT_BLOCKED",
            details={"user_id": user_id},
        )


class FeatureAccessDeniedError(AuthorizationError):
    """
    Raised by the trusted service when the policy denies a consumption.

    Carries the decision so the API can render an upgrade prompt.
    """

    def __init__(self, decision: PolicyDecision):
        reason = decision.reason.value if decision.reason else "denied"
        super().__init__(
            f"Cannot use {decision.feature.value}: {reason}",
            code="FEATURE_ACCESS_DENIED",
            details=decision.model_dump(mode="json"),
        )
        self.decision = decision


class ConcurrentModificationError(ConflictError):
    """Raised when a compare-and-swap keeps losing to concurrent writers."""

    def __init__(self, user_id: str, attempts: int):
        super().__init__(
            f"Entitlement for {user_id} changed concurrently; gave up after {attempts} attempts",
            code="CONCURRENT_MODIFICATION",
            details={"user_id": user_id, "attempts": attempts},
        )



class InvalidEntitlementUpdateError(ValidationError):
    """Raised when an admin edit would leave the entitlement invalid."""

    def __init__(self, user_id: str, reason: str):
        super().__init__(
            f"Invalid update for {user_id}: {reason}",
            code="INVALID_ENTITLEMENT_UPDATE",
            details={"user_id": user_id, "reason": reason},
        )
