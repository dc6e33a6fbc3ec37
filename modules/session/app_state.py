"""
Application state container.

One AppState per signed-in session. The entitlement snapshot and the app
config are independent resources held by EntitlementSync; the session
machine decides what renders. Components receive the AppState instead
of reaching into a global context.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from modules.entitlements.gate import FeatureGate, FeatureOutcome
from modules.entitlements.interfaces import Unsubscribe
from modules.entitlements.models import AppConfig, FeatureKey, UserEntitlement, UserRole
from modules.entitlements.service import EntitlementService
from modules.entitlements.sync import EntitlementSync
from shared.models import AuthenticatedUser

from .machine import SessionMachine
from .models import AdminView, SessionState

logger = logging.getLogger(__name__)


class AppState:
    """
    Session-scoped state: who is signed in, what they may use, and
    which screen is showing.
    """

    def __init__(self, service: EntitlementService, log_activity: bool = True):
        self._service = service
        self.session = SessionMachine()
        self.sync = EntitlementSync(service.store, log_activity=log_activity)
        self.gate = FeatureGate(self.sync)
        self._user: Optional[AuthenticatedUser] = None
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def user(self) -> Optional[AuthenticatedUser]:
        return self._user

    @property
    def entitlement(self) -> Optional[UserEntitlement]:
        return self.sync.entitlement

    @property
    def config(self) -> Optional[AppConfig]:
        return self.sync.config

    @property
    def state(self) -> SessionState:
        return self.session.state

    # -------------------------------------------------------------------------
    # Sign-in and sign-out
    # -------------------------------------------------------------------------

    async def sign_in(self, user: Optional[AuthenticatedUser]) -> SessionState:
        """
        Resolve the identity provider's answer into a session state.

        A failed entitlement load leaves the session in AUTH_LOADING; a
        failed config load leaves the config unset so checks fail closed.
        """
        if self.session.state == SessionState.UNAUTHENTICATED:
            self.session.begin_sign_in()
        if user is None:
            self.session.identity_missing()
            return self.session.state

        self._user = user
        self.sync.attach(user.id)
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = self._service.store.subscribe_user(user.id, self._on_snapshot)

        try:
            config = await self._service.store.get_config()
        except Exception as e:
            logger.warning(f"App config failed to load, all features denied: {e}")
            config = None
        if config is not None:
            self.sync.receive_config(config)

        try:
            entitlement = await self._service.get_or_create(user)
        except Exception as e:
            self.session.entitlement_load_failed(e)
            return self.session.state

        self.sync.receive_snapshot(entitlement)
        self.session.identity_resolved(entitlement)
        if self.session.state == SessionState.UNAUTHENTICATED:
            self._detach()
        return self.session.state

    async def retry_load(self) -> SessionState:
        """Retry sign-in for a session stuck in AUTH_LOADING."""
        if self.session.state != SessionState.AUTH_LOADING or self._user is None:
            return self.session.state
        return await self.sign_in(self._user)

    async def sign_out(self) -> None:
        await self.sync.drain()
        self._detach()
        self.session.sign_out()

    # -------------------------------------------------------------------------
    # Roles and views
    # -------------------------------------------------------------------------

    async def select_role(self, role: UserRole) -> SessionState:
        persisted = self.session.select_role(role)
        await self._persist_role(persisted)
        return self.session.state

    async def change_role(self) -> SessionState:
        self.session.change_role()
        await self._persist_role(None)
        return self.session.state

    def select_admin_view(self, view: AdminView) -> SessionState:
        self.session.select_admin_view(view)
        return self.session.state

    def switch_admin_view(self) -> SessionState:
        self.session.switch_admin_view()
        return self.session.state

    # -------------------------------------------------------------------------
    # Features
    # -------------------------------------------------------------------------

    def can_use(self, feature: FeatureKey, amount: int = 1) -> bool:
        return self.sync.can_use(feature, amount)

    async def use_feature(
        self,
        feature: FeatureKey,
        generate: Callable[[], Awaitable[Any]],
        amount: int = 1,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> FeatureOutcome:
        return await self.gate.run(feature, generate, amount=amount, is_current=is_current)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _on_snapshot(self, entitlement: UserEntitlement) -> None:
        self.session.entitlement_updated(entitlement)
        if self.session.state == SessionState.UNAUTHENTICATED and self._user is not None:
            self._detach()

    async def _persist_role(self, role: Optional[UserRole]) -> None:
        try:
            await self._service.set_role(self._user.id, role)
        except Exception as e:
            logger.warning(f"Failed to persist role for {self._user.id}: {e}")

    def _detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.sync.detach()
        self._user = None
