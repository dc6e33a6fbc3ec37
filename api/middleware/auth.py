"""
JWT Authentication middleware.

Validates the identity provider's access tokens (HS256, signed with the
project's JWT secret) and turns their claims into an AuthenticatedUser.
Identity only: tier, credits, role and admin flag come from the user's
entitlement, never from the token.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from shared.config import get_settings
from shared.models import AuthenticatedUser

from ..models.user import TokenPayload

logger = logging.getLogger(__name__)

# Bearer token extractor
bearer_scheme = HTTPBearer(auto_error=False)


class AuthError(HTTPException):
    """401 with a plain-text detail and the Bearer challenge header."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


def decode_token(token: str) -> TokenPayload:
    """
    Verify a token's signature, expiry and audience and parse its claims.

    Raises:
        AuthError: If the secret is not configured, or the token is
            expired, forged, for another audience or missing claims
    """
    settings = get_settings()
    if not settings.supabase_jwt_secret:
        logger.error("SUPABASE_JWT_SECRET is not configured; rejecting all tokens")
        raise AuthError("Server authentication not configured")

    try:
        claims = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except JWTError as e:
        raise AuthError(f"Invalid token: {str(e)}")

    try:
        return TokenPayload.model_validate(claims)
    except ValidationError:
        raise AuthError("Invalid token: missing required claims")


def get_user_from_payload(payload: TokenPayload) -> AuthenticatedUser:
    """Build the request's user from verified claims."""
    metadata = payload.user_metadata
    return AuthenticatedUser(
        id=payload.sub,
        email=payload.email,
        email_verified=payload.email_confirmed_at is not None,
        name=metadata.get("full_name") or metadata.get("name"),
        last_sign_in=datetime.fromtimestamp(payload.iat, tz=timezone.utc),
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthenticatedUser:
    """
    Dependency that requires a signed-in caller.

    Routes that also need the caller's entitlement depend on
    api.dependencies.get_current_entitlement instead.
    """
    if credentials is None:
        raise AuthError("Missing authorization header")

    return get_user_from_payload(decode_token(credentials.credentials))
