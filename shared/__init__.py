"""
Shared infrastructure for the EduSpark backend.

This package contains cross-cutting concerns that are used by multiple modules:
- config: Centralized settings management
- database: Supabase client and Postgres connection factories
- exceptions: Base exception classes

Note: Business logic should NOT go here. This is for infrastructure only.
"""

from .config import Settings, get_settings
from .database import get_postgres_connection, get_supabase_client, reset_client_cache
from .exceptions import (
    EduSparkError,
    NotFoundError,
    ValidationError,
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
)
from .models import AuthenticatedUser

__all__ = [
    "Settings",
    "get_settings",
    "get_postgres_connection",
    "get_supabase_client",
    "reset_client_cache",
    "EduSparkError",
    "NotFoundError",
    "ValidationError",
    "AuthorizationError",
    "ConflictError",
    "ExternalServiceError",
    "AuthenticatedUser",
]
