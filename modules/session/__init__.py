"""
Session module.

Session and role state machine plus the per-session AppState container
that wires it to entitlement sync and the feature gate.
"""

from .models import AdminView, SessionState, BLOCKED_NOTICE
from .machine import SessionMachine
from .app_state import AppState
from .exceptions import InvalidTransitionError, SessionError, ToolNotAvailableError

__all__ = [
    # Models
    "SessionState",
    "AdminView",
    "BLOCKED_NOTICE",
    # State
    "SessionMachine",
    "AppState",
    # Exceptions
    "SessionError",
    "InvalidTransitionError",
    "ToolNotAvailableError",
]
