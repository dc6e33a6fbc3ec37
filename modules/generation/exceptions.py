"""
Content generation exceptions.
"""

from shared.exceptions import ExternalServiceError


class GenerationError(ExternalServiceError):
    """Raised when the generation service fails or returns unusable output."""

    def __init__(self, message: str, code: str = "GENERATION_FAILED"):
        super().__init__(message, service="gemini", code=code)


class TransientServiceError(GenerationError):
    """
    Raised for overload and unavailability errors.

    Retried with backoff; surfaced to the user as "please try again".
    """

    def __init__(self, message: str):
        super().__init__(message, code="SERVICE_UNAVAILABLE")
