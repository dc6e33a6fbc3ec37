"""
Error response models.

Standardized error responses for the API. Domain errors are rendered from
EduSparkError.to_dict() as the ``detail`` of an HTTPException.
"""

from pydantic import BaseModel
from typing import Any, Optional


class ErrorBody(BaseModel):
    """Body produced by EduSparkError.to_dict()."""

    error: str
    message: str
    details: dict[str, Any] = {}


class ErrorResponse(BaseModel):
    """Standard error response format."""

    detail: ErrorBody


# Reusable OpenAPI ``responses`` entries
def error_responses(*status_codes: int, description: Optional[str] = None) -> dict[int, dict]:
    return {
        code: {"model": ErrorResponse, **({"description": description} if description else {})}
        for code in status_codes
    }
