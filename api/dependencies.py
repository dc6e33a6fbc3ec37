"""
Dependency injection setup for FastAPI.

This module provides the "container" that wires together all module
implementations. Each module exposes its service through an interface,
and this file creates the concrete implementations.

The entitlement backend is chosen by ENTITLEMENT_BACKEND: "memory" for
development and tests, "supabase" for production.
"""

from typing import TYPE_CHECKING

from fastapi import Depends, HTTPException, status

from shared.config import get_settings
from shared.models import AuthenticatedUser

from .middleware.auth import get_current_user

# Type checking imports for interfaces (avoids circular imports)
if TYPE_CHECKING:
    from modules.billing.interfaces import IPaymentStore
    from modules.billing.service import PaymentWebhookService
    from modules.entitlements.interfaces import IEntitlementStore
    from modules.entitlements.models import UserEntitlement
    from modules.entitlements.service import EntitlementService
    from modules.generation.interfaces import IGenerationService


class ServiceContainer:
    """
    Container for all service instances.

    This class manages the lifecycle of service instances and their
    dependencies. Services are created lazily on first access.

    All services are cached as singletons within the container.
    Use reset() to clear all cached services for testing.
    """

    def __init__(self) -> None:
        self._entitlement_store: "IEntitlementStore | None" = None
        self._entitlement_service: "EntitlementService | None" = None
        self._payment_store: "IPaymentStore | None" = None
        self._payment_service: "PaymentWebhookService | None" = None
        self._generation_service: "IGenerationService | None" = None

    @property
    def entitlement_store(self) -> "IEntitlementStore":
        """Get the entitlement store for the configured backend."""
        if self._entitlement_store is None:
            settings = get_settings()
            if settings.entitlement_backend == "supabase":
                from modules.entitlements.store import SupabaseEntitlementStore
                from shared.database import get_supabase_client
                self._entitlement_store = SupabaseEntitlementStore(get_supabase_client())
            else:
                from modules.entitlements.store import InMemoryEntitlementStore
                self._entitlement_store = InMemoryEntitlementStore()
        return self._entitlement_store

    @property
    def entitlements(self) -> "EntitlementService":
        """Get the entitlement service instance."""
        if self._entitlement_service is None:
            from modules.entitlements.service import EntitlementService
            self._entitlement_service = EntitlementService(self.entitlement_store)
        return self._entitlement_service

    @property
    def payment_store(self) -> "IPaymentStore":
        """Get the payment store, sharing the entitlement store."""
        if self._payment_store is None:
            if get_settings().entitlement_backend == "supabase":
                from modules.billing.store import SupabasePaymentStore
                from shared.database import get_supabase_client
                self._payment_store = SupabasePaymentStore(
                    get_supabase_client(),
                    self.entitlement_store,
                )
            else:
                from modules.billing.store import InMemoryPaymentStore
                self._payment_store = InMemoryPaymentStore(self.entitlement_store)
        return self._payment_store

    @property
    def payments(self) -> "PaymentWebhookService":
        """Get the payment webhook service instance."""
        if self._payment_service is None:
            from modules.billing.service import PaymentWebhookService
            self._payment_service = PaymentWebhookService(self.payment_store)
        return self._payment_service

    @property
    def generation(self) -> "IGenerationService":
        """Get the content generation service instance."""
        if self._generation_service is None:
            from modules.generation.service import GeminiGenerationService
            self._generation_service = GeminiGenerationService()
        return self._generation_service

    def reset(self) -> None:
        """
        Reset all cached services.

        This is primarily for testing - allows tests to get fresh
        service instances with different mock dependencies.
        """
        self._entitlement_store = None
        self._entitlement_service = None
        self._payment_store = None
        self._payment_service = None
        self._generation_service = None


# Module-level container singleton
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Get the singleton service container."""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def reset_container() -> None:
    """
    Reset the service container.

    This clears the cached container, so the next call to get_container()
    will create a fresh container with new service instances.

    Primarily used for testing.
    """
    global _container
    _container = None


# FastAPI dependency functions
# These are the functions that should be used in route Depends() calls


def get_entitlement_service() -> "EntitlementService":
    """FastAPI dependency for entitlement service."""
    return get_container().entitlements


def get_payment_webhook_service() -> "PaymentWebhookService":
    """FastAPI dependency for payment webhook service."""
    return get_container().payments


def get_generation_service() -> "IGenerationService":
    """FastAPI dependency for content generation service."""
    return get_container().generation


async def get_current_entitlement(
    user: AuthenticatedUser = Depends(get_current_user),
    service: "EntitlementService" = Depends(get_entitlement_service),
) -> "UserEntitlement":
    """
    Dependency resolving the caller's entitlement, created on first use.

    Blocked accounts are rejected here so no entitlement route serves them.
    """
    entitlement = await service.get_or_create(user)
    if entitlement.is_blocked:
        from modules.entitlements.exceptions import AccountBlockedError
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=AccountBlockedError(user.id).to_dict(),
        )
    return entitlement


async def require_admin(
    entitlement: "UserEntitlement" = Depends(get_current_entitlement),
) -> "UserEntitlement":
    """Dependency that requires the caller to be an admin."""
    if not entitlement.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "ADMIN_REQUIRED", "message": "Admin access required", "details": {}},
        )
    return entitlement
