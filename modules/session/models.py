"""
Session module data models.
"""

from enum import Enum


class SessionState(str, Enum):
    """Screens the session can be on, from identity resolution to ready."""

    AUTH_LOADING = "auth_loading"
    UNAUTHENTICATED = "unauthenticated"
    ROLE_UNSET = "role_unset"
    STUDENT_READY = "student_ready"
    TEACHER_READY = "teacher_ready"
    ADMIN_VIEW_UNSELECTED = "admin_view_unselected"
    ADMIN_DASHBOARD = "admin_dashboard"
    ADMIN_ACTING_AS_STUDENT = "admin_acting_as_student"
    ADMIN_ACTING_AS_TEACHER = "admin_acting_as_teacher"


class AdminView(str, Enum):
    """Views an admin can pick after signing in."""

    DASHBOARD = "dashboard"
    STUDENT = "student"
    TEACHER = "teacher"


READY_STATES = frozenset({SessionState.STUDENT_READY, SessionState.TEACHER_READY})

ADMIN_STATES = frozenset({
    SessionState.ADMIN_VIEW_UNSELECTED,
    SessionState.ADMIN_DASHBOARD,
    SessionState.ADMIN_ACTING_AS_STUDENT,
    SessionState.ADMIN_ACTING_AS_TEACHER,
})

BLOCKED_NOTICE = "Your account has been blocked. Please contact support."
