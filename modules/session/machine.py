"""
Session and role state machine.

Tracks identity resolution, role selection and, for admins, view-mode
selection. Decides which screen renders and which tools the sidebar
lists. Holds no I/O; AppState feeds it events and persists the results.
"""

import logging
from typing import Optional

from modules.entitlements.features import DEFAULT_TOOL, Tool, admin_tools, tools_for_role
from modules.entitlements.models import UserEntitlement, UserRole

from .exceptions import InvalidTransitionError, ToolNotAvailableError
from .models import (
    ADMIN_STATES,
    BLOCKED_NOTICE,
    READY_STATES,
    AdminView,
    SessionState,
)

logger = logging.getLogger(__name__)

_READY_FOR_ROLE = {
    UserRole.STUDENT: SessionState.STUDENT_READY,
    UserRole.TEACHER: SessionState.TEACHER_READY,
}

_ACTING_AS = {
    AdminView.STUDENT: (SessionState.ADMIN_ACTING_AS_STUDENT, UserRole.STUDENT),
    AdminView.TEACHER: (SessionState.ADMIN_ACTING_AS_TEACHER, UserRole.TEACHER),
}

_EMULATION_STATES = frozenset({
    SessionState.ADMIN_ACTING_AS_STUDENT,
    SessionState.ADMIN_ACTING_AS_TEACHER,
})


class SessionMachine:
    """
    State machine for one browser session.

    The admin's role override lives only here: emulating a student or a
    teacher never writes the admin's persisted role or admin flag.
    """

    def __init__(self) -> None:
        self._state = SessionState.AUTH_LOADING
        self._entitlement: Optional[UserEntitlement] = None
        self._role_override: Optional[UserRole] = None
        self._view: Optional[AdminView] = None
        self._active_tool: Optional[Tool] = None
        self._notice: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def entitlement(self) -> Optional[UserEntitlement]:
        return self._entitlement

    @property
    def view(self) -> Optional[AdminView]:
        return self._view

    @property
    def active_tool(self) -> Optional[Tool]:
        return self._active_tool

    @property
    def notice(self) -> Optional[str]:
        """User-visible message left by a forced sign-out."""
        return self._notice

    @property
    def is_ready(self) -> bool:
        return self._state in READY_STATES or self._state in _EMULATION_STATES

    @property
    def is_admin_session(self) -> bool:
        return self._state in ADMIN_STATES

    @property
    def effective_role(self) -> Optional[UserRole]:
        """Role the screens render for: the emulated one, else the persisted one."""
        if self._state in _EMULATION_STATES:
            return self._role_override
        if self._state in READY_STATES and self._entitlement is not None:
            return self._entitlement.role
        return None

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def begin_sign_in(self) -> None:
        self._require("begin sign-in", SessionState.UNAUTHENTICATED)
        self._notice = None
        self._state = SessionState.AUTH_LOADING

    def identity_missing(self) -> None:
        self._require("resolve a missing identity", SessionState.AUTH_LOADING)
        self._state = SessionState.UNAUTHENTICATED

    def identity_resolved(self, entitlement: UserEntitlement) -> None:
        """Route a signed-in user by admin flag and persisted role."""
        self._require("resolve identity", SessionState.AUTH_LOADING)
        if entitlement.is_blocked:
            self._force_sign_out(entitlement.user_id)
            return

        self._entitlement = entitlement
        if entitlement.is_admin:
            self._state = SessionState.ADMIN_VIEW_UNSELECTED
        elif entitlement.role is not None:
            self._enter_ready(entitlement.role)
        else:
            self._state = SessionState.ROLE_UNSET

    def entitlement_load_failed(self, error: Optional[BaseException] = None) -> None:
        """Stay in AUTH_LOADING; never fall through to default entitlements."""
        self._require("fail an entitlement load", SessionState.AUTH_LOADING)
        logger.warning(f"Entitlement load failed, staying in {self._state.value}: {error}")

    def entitlement_updated(self, entitlement: UserEntitlement) -> None:
        """Apply a pushed snapshot. A blocked account is signed out from any state."""
        if entitlement.is_blocked:
            if self._state != SessionState.UNAUTHENTICATED:
                self._force_sign_out(entitlement.user_id)
            return
        if self._state in (SessionState.UNAUTHENTICATED, SessionState.AUTH_LOADING):
            return
        self._entitlement = entitlement

    def sign_out(self) -> None:
        """Return to UNAUTHENTICATED and drop every session-local override."""
        self._reset()
        self._notice = None

    # -------------------------------------------------------------------------
    # Roles and views
    # -------------------------------------------------------------------------

    def select_role(self, role: UserRole) -> UserRole:
        """
        Pick a role from the role selector.

        Returns:
            The role the caller should persist on the entitlement
        """
        self._require("select a role", SessionState.ROLE_UNSET)
        self._entitlement = self._entitlement.model_copy(update={"role": role})
        self._enter_ready(role)
        return role

    def change_role(self) -> None:
        """Go back to the role selector. The persisted role is cleared, not deleted."""
        self._require("change role", *READY_STATES)
        self._entitlement = self._entitlement.model_copy(update={"role": None})
        self._active_tool = None
        self._state = SessionState.ROLE_UNSET

    def select_admin_view(self, view: AdminView) -> None:
        self._require("select an admin view", SessionState.ADMIN_VIEW_UNSELECTED)
        self._view = view
        if view == AdminView.DASHBOARD:
            self._role_override = None
            self._active_tool = Tool.ADMIN_PANEL
            self._state = SessionState.ADMIN_DASHBOARD
            return
        state, role = _ACTING_AS[view]
        self._role_override = role
        self._active_tool = DEFAULT_TOOL[role]
        self._state = state

    def switch_admin_view(self) -> None:
        """Re-enter the admin view selector."""
        self._require(
            "switch admin view",
            SessionState.ADMIN_DASHBOARD,
            *_EMULATION_STATES,
        )
        self._role_override = None
        self._view = None
        self._active_tool = None
        self._state = SessionState.ADMIN_VIEW_UNSELECTED

    # -------------------------------------------------------------------------
    # Tools
    # -------------------------------------------------------------------------

    def available_tools(self) -> list[Tool]:
        if self._state == SessionState.ADMIN_DASHBOARD:
            return admin_tools()
        return tools_for_role(self.effective_role)

    def open_tool(self, tool: Tool) -> None:
        if tool not in self.available_tools():
            role = self.effective_role
            raise ToolNotAvailableError(tool.value, role.value if role else None)
        self._active_tool = tool

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require(self, event: str, *states: SessionState) -> None:
        if self._state not in states:
            raise InvalidTransitionError(event, self._state)

    def _enter_ready(self, role: UserRole) -> None:
        self._state = _READY_FOR_ROLE[role]
        self._active_tool = DEFAULT_TOOL[role]

    def _force_sign_out(self, user_id: str) -> None:
        logger.warning(f"Account {user_id} is blocked, signing out")
        self._reset()
        self._notice = BLOCKED_NOTICE

    def _reset(self) -> None:
        self._state = SessionState.UNAUTHENTICATED
        self._entitlement = None
        self._role_override = None
        self._view = None
        self._active_tool = None