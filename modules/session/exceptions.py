"""
Session module exceptions.
"""

from typing import Optional

from shared.exceptions import EduSparkError, ValidationError

from .models import SessionState


class SessionError(EduSparkError):
    """Base exception for session errors."""

    pass


class InvalidTransitionError(SessionError):
    """Raised when an event is not valid in the current state."""

    def __init__(self, event: str, state: SessionState):
        super().__init__(
            f"Cannot {event} while in {state.value}",
            code="INVALID_TRANSITION",
            details={"event": event, "state": state.value},
        )
        self.event = event
        self.state = state


class ToolNotAvailableError(ValidationError):
    """Raised when opening a tool the current view does not list."""

    def __init__(self, tool: str, role: Optional[str]):
        super().__init__(
            f"Tool {tool} is not available for {role or 'this view'}",
            code="TOOL_NOT_AVAILABLE",
            details={"tool": tool, "role": role},
        )
