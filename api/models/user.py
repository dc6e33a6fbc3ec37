"""
Token models for authentication.

The authenticated user itself is shared.models.AuthenticatedUser; this
module only describes the JWT claims it is built from.
"""

from pydantic import BaseModel
from typing import Optional


class TokenPayload(BaseModel):
    """JWT token payload structure."""
    sub: str  # User ID
    email: str
    email_confirmed_at: Optional[str] = None
    aud: str  # Audience
    exp: int  # Expiration timestamp
    iat: int  # Issued at timestamp
    user_metadata: dict = {}  # Provider profile (full_name, avatar_url, ...)
