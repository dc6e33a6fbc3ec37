"""Tests for entitlement API endpoints."""

import asyncio
import datetime as dt

from fastapi.testclient import TestClient

from api.app import app
from api.dependencies import get_entitlement_service
from modules.entitlements.models import (
    AccountStatus,
    FeatureKey,
    SubscriptionTier,
    UserRole,
)
from modules.entitlements.service import EntitlementService
from modules.entitlements.store import InMemoryEntitlementStore
from tests.api.conftest import seed
from tests.conftest import make_entitlement


class TestGetMe:
    """Tests for GET /api/entitlements/me."""

    def test_requires_authentication(self):
        response = TestClient(app).get("/api/entitlements/me")
        assert response.status_code == 401

    def test_first_request_creates_entitlement(self, client):
        response = client.get("/api/entitlements/me")

        assert response.status_code == 200
        entitlement = response.json()["entitlement"]
        assert entitlement["subscription_tier"] == "free"
        assert entitlement["credits"] == 500
        assert entitlement["role"] is None
        assert response.json()["usage_today"] == {}

    def test_stale_counters_read_as_empty(self, client, store):
        yesterday = dt.date.today() - dt.timedelta(days=1)
        seed(store, make_entitlement(counters={FeatureKey.TOPIC_SEARCHES: 5}, on=yesterday))

        response = client.get("/api/entitlements/me")

        assert response.json()["usage_today"] == {}
        assert response.json()["entitlement"]["usage"]["counters"] == {"topicSearches": 5}

    def test_blocked_account_is_rejected(self, client, store):
        seed(store, make_entitlement(account_status=AccountStatus.BLOCKED))

        response = client.get("/api/entitlements/me")

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "ACCOUNT_BLOCKED"


class TestConfig:
    def test_returns_config(self, client):
        response = client.get("/api/entitlements/config")

        assert response.status_code == 200
        limits = response.json()["usage_limits"]["free_tier_daily_limits"]
        assert limits["topicSearches"] == 5

    def test_missing_config(self, client, settings):
        empty = EntitlementService(InMemoryEntitlementStore(), settings)
        app.dependency_overrides[get_entitlement_service] = lambda: empty

        response = client.get("/api/entitlements/config")

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "CONFIG_UNAVAILABLE"


class TestCheck:
    def test_allowed(self, client):
        response = client.post("/api/entitlements/check", json={"feature": "summaries"})

        assert response.status_code == 200
        assert response.json()["allowed"] is True

    def test_denial_is_a_decision_not_an_error(self, client, store):
        seed(store, make_entitlement(counters={FeatureKey.TOPIC_SEARCHES: 5}))

        response = client.post("/api/entitlements/check", json={"feature": "topicSearches"})

        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is False
        assert data["reason"] == "daily_limit_reached"

    def test_check_does_not_consume(self, client, store):
        client.post("/api/entitlements/check", json={"feature": "homeworkHelps"})

        stored = asyncio.run(store.get_user("test-user-123"))
        assert stored.usage.counters == {}
        assert stored.version == 0

    def test_unknown_feature(self, client):
        response = client.post("/api/entitlements/check", json={"feature": "teleport"})
        assert response.status_code == 422


class TestConsume:
    def test_free_tier_increments_counter(self, client):
        response = client.post("/api/entitlements/consume", json={"feature": "homeworkHelps"})

        assert response.status_code == 200
        data = response.json()
        assert data["entitlement"]["usage"]["counters"] == {"homeworkHelps": 1}
        assert data["entitlement"]["version"] == 1
        assert data["decision"]["allowed"] is True

    def test_credit_feature_debits_balance(self, client):
        response = client.post("/api/entitlements/consume", json={"feature": "visualAssistant"})

        assert response.status_code == 200
        assert response.json()["entitlement"]["credits"] == 490

    def test_paid_tier_does_not_meter(self, client, store):
        seed(store, make_entitlement(tier=SubscriptionTier.GOLD))

        response = client.post(
            "/api/entitlements/consume",
            json={"feature": "quizQuestions", "amount": 500},
        )

        assert response.status_code == 200
        assert response.json()["entitlement"]["usage"]["counters"] == {}

    def test_over_limit_returns_decision(self, client, store):
        seed(store, make_entitlement(counters={FeatureKey.QUIZ_QUESTIONS: 95}))

        response = client.post(
            "/api/entitlements/consume",
            json={"feature": "quizQuestions", "amount": 10},
        )

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["error"] == "FEATURE_ACCESS_DENIED"
        assert detail["details"]["reason"] == "daily_limit_reached"
        assert detail["details"]["remaining"] == 5
        stored = asyncio.run(store.get_user("test-user-123"))
        assert stored.usage.counters == {FeatureKey.QUIZ_QUESTIONS: 95}

    def test_insufficient_credits(self, client, store):
        seed(store, make_entitlement(credits=5))

        response = client.post("/api/entitlements/consume", json={"feature": "visualAssistant"})

        assert response.status_code == 403
        assert response.json()["detail"]["details"]["reason"] == "insufficient_credits"

    def test_admin_panel_is_admin_only(self, client):
        response = client.post("/api/entitlements/consume", json={"feature": "adminPanel"})

        assert response.status_code == 403
        assert response.json()["detail"]["details"]["reason"] == "admin_only"

    def test_consumption_is_logged(self, client, store):
        client.post("/api/entitlements/consume", json={"feature": "summaries"})

        records = asyncio.run(store.list_activity(user_id="test-user-123"))
        assert records[0].feature == FeatureKey.SUMMARIES
        assert records[0].user_email == "test@example.com"


class TestRole:
    def test_set_role(self, client):
        response = client.put("/api/entitlements/role", json={"role": "teacher"})

        assert response.status_code == 200
        assert response.json()["role"] == "teacher"

    def test_clear_role(self, client, store):
        seed(store, make_entitlement(role=UserRole.STUDENT))

        response = client.put("/api/entitlements/role", json={"role": None})

        assert response.status_code == 200
        assert response.json()["role"] is None

    def test_invalid_role(self, client):
        response = client.put("/api/entitlements/role", json={"role": "principal"})
        assert response.status_code == 422
