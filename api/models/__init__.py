"""API models package."""

from .user import TokenPayload
from .errors import ErrorBody, ErrorResponse, error_responses

__all__ = [
    "TokenPayload",
    "ErrorBody",
    "ErrorResponse",
    "error_responses",
]
