"""
Shared test fixtures and utilities.

This module provides common test infrastructure used across all test modules.
"""

import datetime as dt
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt  # PyJWT
import pytest

from api.dependencies import reset_container
from modules.entitlements.models import (
    SubscriptionTier,
    UsageCounters,
    UserEntitlement,
    UserRole,
    default_app_config,
)
from modules.entitlements.service import EntitlementService
from modules.entitlements.store import InMemoryEntitlementStore
from shared.config import Settings, get_settings
from shared.models import AuthenticatedUser


# Test JWT secret (only for testing - matches test_auth.py)
TEST_JWT_SECRET = "test-secret-key-for-testing-only"


def create_test_token(
    user_id: str = "test-user-123",
    email: str = "test@example.com",
    expired: bool = False,
    email_verified: bool = True,
    name: Optional[str] = None,
) -> str:
    """
    Create a test JWT token for authentication.

    Args:
        user_id: User ID to include in the token
        email: Email to include in the token
        expired: If True, creates an expired token
        email_verified: Whether the email should be marked as verified
        name: Optional display name sent in user_metadata

    Returns:
        JWT token string
    """
    now = datetime.now(timezone.utc)
    exp = now - timedelta(hours=1) if expired else now + timedelta(hours=1)

    payload = {
        "sub": user_id,
        "email": email,
        "email_confirmed_at": now.isoformat() if email_verified else None,
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(exp.timestamp()),
        "iat": int(now.timestamp()),
        "user_metadata": {"full_name": name} if name else {},
    }
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


def make_user(user_id: str = "test-user-123", email: str = "test@example.com") -> AuthenticatedUser:
    return AuthenticatedUser(id=user_id, email=email, email_verified=True)


def make_entitlement(
    user_id: str = "test-user-123",
    tier: SubscriptionTier = SubscriptionTier.FREE,
    credits: int = 500,
    counters: Optional[dict] = None,
    on: Optional[dt.date] = None,
    **fields,
) -> UserEntitlement:
    """
    Entitlement snapshot with today's (or ``on``'s) counters.

    Credits count as refilled today unless ``last_credit_reset`` is given.
    """
    fields.setdefault("last_credit_reset", dt.date.today())
    return UserEntitlement(
        user_id=user_id,
        email=f"{user_id}@example.com",
        subscription_tier=tier,
        credits=credits,
        usage=UsageCounters(date=on or dt.date.today(), counters=counters or {}),
        **fields,
    )


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset the service container and settings cache around each test."""
    reset_container()
    get_settings.cache_clear()
    yield
    reset_container()
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with activity logging on and no external services."""
    return Settings(
        _env_file=None,
        entitlement_backend="memory",
        supabase_jwt_secret=TEST_JWT_SECRET,
    )


@pytest.fixture
def config():
    return default_app_config()


@pytest.fixture
def store(config) -> InMemoryEntitlementStore:
    """In-memory store seeded with the default app config."""
    return InMemoryEntitlementStore(config=config)


@pytest.fixture
def entitlement_service(store, settings) -> EntitlementService:
    return EntitlementService(store, settings)


@pytest.fixture
def test_user_id() -> str:
    """Provide a consistent test user ID."""
    return "test-user-123"


@pytest.fixture
def test_user_email() -> str:
    """Provide a consistent test user email."""
    return "test@example.com"


@pytest.fixture
def auth_token(test_user_id: str, test_user_email: str) -> str:
    """Create a valid auth token for testing."""
    return create_test_token(user_id=test_user_id, email=test_user_email)


@pytest.fixture
def auth_headers(auth_token: str) -> dict[str, str]:
    """Create authorization headers with a valid token."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def student_entitlement() -> UserEntitlement:
    return make_entitlement(role=UserRole.STUDENT)
