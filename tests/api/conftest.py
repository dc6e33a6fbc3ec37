"""Fixtures for API route tests."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from api.app import app
from api.dependencies import get_entitlement_service
from api.middleware.auth import get_current_user
from tests.conftest import make_user


@pytest.fixture
def caller():
    """The authenticated user the client sends requests as."""
    return make_user()


@pytest.fixture
def client(entitlement_service, caller):
    """
    Test client signed in as ``caller`` against the in-memory store.

    Token decoding is covered by test_auth.py; here the current user
    dependency is replaced directly.
    """
    app.dependency_overrides[get_current_user] = lambda: caller
    app.dependency_overrides[get_entitlement_service] = lambda: entitlement_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def seed(store, entitlement):
    """Store an entitlement from a synchronous test."""
    return asyncio.run(store.create_user(entitlement))
