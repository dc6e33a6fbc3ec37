"""Tests for the session and role state machine."""

import pytest

from modules.entitlements.features import Tool
from modules.entitlements.models import AccountStatus, UserRole
from modules.session.exceptions import InvalidTransitionError, ToolNotAvailableError
from modules.session.machine import SessionMachine
from modules.session.models import BLOCKED_NOTICE, AdminView, SessionState
from tests.conftest import make_entitlement


def resolved(entitlement) -> SessionMachine:
    machine = SessionMachine()
    machine.identity_resolved(entitlement)
    return machine


class TestIdentity:
    def test_starts_loading(self):
        assert SessionMachine().state == SessionState.AUTH_LOADING

    def test_missing_identity(self):
        machine = SessionMachine()
        machine.identity_missing()
        assert machine.state == SessionState.UNAUTHENTICATED

    def test_no_role_goes_to_role_selector(self):
        machine = resolved(make_entitlement())
        assert machine.state == SessionState.ROLE_UNSET
        assert machine.available_tools() == []

    @pytest.mark.parametrize("role, state, tool", [
        (UserRole.STUDENT, SessionState.STUDENT_READY, Tool.HOMEWORK_HELPER),
        (UserRole.TEACHER, SessionState.TEACHER_READY, Tool.LESSON_PLANNER),
    ])
    def test_persisted_role_goes_straight_to_ready(self, role, state, tool):
        machine = resolved(make_entitlement(role=role))
        assert machine.state == state
        assert machine.active_tool == tool
        assert machine.effective_role == role
        assert machine.is_ready

    def test_admin_goes_to_view_selector_even_with_role(self):
        machine = resolved(make_entitlement(is_admin=True, role=UserRole.TEACHER))
        assert machine.state == SessionState.ADMIN_VIEW_UNSELECTED
        assert machine.is_admin_session
        assert not machine.is_ready

    def test_blocked_account_is_signed_out_with_notice(self):
        machine = resolved(make_entitlement(account_status=AccountStatus.BLOCKED))
        assert machine.state == SessionState.UNAUTHENTICATED
        assert machine.notice == BLOCKED_NOTICE
        assert machine.entitlement is None

    def test_load_failure_stays_loading(self):
        machine = SessionMachine()
        machine.entitlement_load_failed(RuntimeError("timeout"))
        assert machine.state == SessionState.AUTH_LOADING

    def test_begin_sign_in_clears_notice(self):
        machine = resolved(make_entitlement(account_status=AccountStatus.BLOCKED))
        machine.begin_sign_in()
        assert machine.state == SessionState.AUTH_LOADING
        assert machine.notice is None

    def test_resolve_twice_is_invalid(self):
        machine = resolved(make_entitlement(role=UserRole.STUDENT))
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.identity_resolved(make_entitlement())
        assert exc_info.value.state == SessionState.STUDENT_READY


class TestEntitlementUpdates:
    @pytest.mark.parametrize("entitlement", [
        make_entitlement(role=UserRole.STUDENT),
        make_entitlement(),
        make_entitlement(is_admin=True),
    ])
    def test_block_signs_out_from_any_state(self, entitlement):
        machine = resolved(entitlement)
        machine.entitlement_updated(entitlement.model_copy(update={"account_status": AccountStatus.BLOCKED}))
        assert machine.state == SessionState.UNAUTHENTICATED
        assert machine.notice == BLOCKED_NOTICE

    def test_block_while_emulating_signs_out(self):
        admin = make_entitlement(is_admin=True)
        machine = resolved(admin)
        machine.select_admin_view(AdminView.STUDENT)

        machine.entitlement_updated(admin.model_copy(update={"account_status": AccountStatus.BLOCKED}))

        assert machine.state == SessionState.UNAUTHENTICATED
        assert machine.effective_role is None

    def test_update_replaces_entitlement(self):
        machine = resolved(make_entitlement(role=UserRole.STUDENT, credits=10))
        machine.entitlement_updated(make_entitlement(role=UserRole.STUDENT, credits=99))
        assert machine.entitlement.credits == 99

    def test_updates_ignored_while_loading(self):
        machine = SessionMachine()
        machine.entitlement_updated(make_entitlement(role=UserRole.STUDENT))
        assert machine.entitlement is None
        assert machine.state == SessionState.AUTH_LOADING


class TestRoles:
    def test_select_role(self):
        machine = resolved(make_entitlement())
        assert machine.select_role(UserRole.TEACHER) == UserRole.TEACHER
        assert machine.state == SessionState.TEACHER_READY
        assert machine.entitlement.role == UserRole.TEACHER

    def test_change_role_returns_to_selector(self):
        machine = resolved(make_entitlement(role=UserRole.STUDENT))
        machine.change_role()
        assert machine.state == SessionState.ROLE_UNSET
        assert machine.entitlement.role is None
        assert machine.active_tool is None

    def test_select_role_only_from_selector(self):
        machine = resolved(make_entitlement(role=UserRole.STUDENT))
        with pytest.raises(InvalidTransitionError):
            machine.select_role(UserRole.TEACHER)

    def test_admin_cannot_change_role(self):
        machine = resolved(make_entitlement(is_admin=True))
        with pytest.raises(InvalidTransitionError):
            machine.change_role()

    def test_sign_out_resets(self):
        machine = resolved(make_entitlement(role=UserRole.STUDENT))
        machine.sign_out()
        assert machine.state == SessionState.UNAUTHENTICATED
        assert machine.entitlement is None
        assert machine.active_tool is None
        assert machine.notice is None


class TestAdminViews:
    @pytest.fixture
    def admin(self):
        return make_entitlement(is_admin=True, role=UserRole.TEACHER)

    def test_dashboard(self, admin):
        machine = resolved(admin)
        machine.select_admin_view(AdminView.DASHBOARD)

        assert machine.state == SessionState.ADMIN_DASHBOARD
        assert machine.active_tool == Tool.ADMIN_PANEL
        assert Tool.ADMIN_PANEL in machine.available_tools()
        assert machine.effective_role is None

    @pytest.mark.parametrize("view, state, role, tool", [
        (AdminView.STUDENT, SessionState.ADMIN_ACTING_AS_STUDENT, UserRole.STUDENT, Tool.HOMEWORK_HELPER),
        (AdminView.TEACHER, SessionState.ADMIN_ACTING_AS_TEACHER, UserRole.TEACHER, Tool.LESSON_PLANNER),
    ])
    def test_acting_as(self, admin, view, state, role, tool):
        machine = resolved(admin)
        machine.select_admin_view(view)

        assert machine.state == state
        assert machine.effective_role == role
        assert machine.active_tool == tool
        assert machine.is_ready
        assert machine.is_admin_session
        assert Tool.ADMIN_PANEL not in machine.available_tools()

    def test_emulation_never_touches_entitlement(self, admin):
        machine = resolved(admin)
        machine.select_admin_view(AdminView.STUDENT)

        assert machine.entitlement.role == UserRole.TEACHER
        assert machine.entitlement.is_admin

    def test_switch_view_clears_override(self, admin):
        machine = resolved(admin)
        machine.select_admin_view(AdminView.STUDENT)
        machine.switch_admin_view()

        assert machine.state == SessionState.ADMIN_VIEW_UNSELECTED
        assert machine.effective_role is None
        assert machine.view is None
        machine.select_admin_view(AdminView.TEACHER)
        assert machine.effective_role == UserRole.TEACHER

    def test_sign_out_clears_override(self, admin):
        machine = resolved(admin)
        machine.select_admin_view(AdminView.TEACHER)
        machine.sign_out()

        machine.begin_sign_in()
        machine.identity_resolved(admin)
        assert machine.state == SessionState.ADMIN_VIEW_UNSELECTED
        assert machine.effective_role is None

    def test_non_admin_cannot_select_view(self):
        machine = resolved(make_entitlement(role=UserRole.STUDENT))
        with pytest.raises(InvalidTransitionError):
            machine.select_admin_view(AdminView.DASHBOARD)


class TestTools:
    def test_open_listed_tool(self):
        machine = resolved(make_entitlement(role=UserRole.STUDENT))
        machine.open_tool(Tool.QUIZ_GENERATOR)
        assert machine.active_tool == Tool.QUIZ_GENERATOR

    def test_open_tool_of_other_role(self):
        machine = resolved(make_entitlement(role=UserRole.STUDENT))
        with pytest.raises(ToolNotAvailableError):
            machine.open_tool(Tool.LESSON_PLANNER)

    def test_admin_panel_not_available_to_users(self):
        machine = resolved(make_entitlement(role=UserRole.TEACHER))
        with pytest.raises(ToolNotAvailableError):
            machine.open_tool(Tool.ADMIN_PANEL)
