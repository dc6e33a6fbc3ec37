"""Tests for the payment webhook service."""

import base64
import hashlib
import hmac
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe

from modules.billing.exceptions import (
    BillingError,
    InvalidPayloadError,
    InvalidTierError,
    PaymentFailedError,
    PaymentStoreError,
    WebhookVerificationError,
)
from modules.billing.models import CheckoutRequest, WebhookOutcome
from modules.billing.service import PaymentWebhookService
from modules.billing.store import InMemoryPaymentStore
from modules.entitlements.models import SubscriptionStatus, SubscriptionTier
from tests.conftest import make_entitlement

CASHFREE_SECRET = "cf-webhook-secret"
TIMESTAMP = "1718000000"


@pytest.fixture
def billing_settings(settings):
    return settings.model_copy(update={
        "stripe_secret_key": "sk_test_123",
        "stripe_webhook_secret": "whsec_test",
        "stripe_price_tiers": {"price_silver": "silver", "price_gold": "gold"},
        "cashfree_webhook_secret": CASHFREE_SECRET,
        "cashfree_amount_tiers": {499: "silver", 999: "gold"},
    })


@pytest.fixture
def payment_store(store):
    return InMemoryPaymentStore(store)


@pytest.fixture
def service(payment_store, billing_settings):
    return PaymentWebhookService(payment_store, billing_settings)


def stripe_event(session_id="cs_test_1", user_id="u1", event_type="checkout.session.completed"):
    return json.dumps({
        "id": "evt_1",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "client_reference_id": user_id,
                "amount_total": 49900,
                "currency": "inr",
            }
        },
    }).encode()


def cashfree_event(order_id="order_1", user_id="u1", amount=499, status="PAID", event_type="PAYMENT_SUCCESS_WEBHOOK"):
    return json.dumps({
        "type": event_type,
        "data": {
            "order": {
                "order_id": order_id,
                "order_amount": amount,
                "order_currency": "INR",
                "order_status": status,
            },
            "customer": {"customer_id": user_id},
        },
    }).encode()


def cashfree_signature(payload: bytes, timestamp: str = TIMESTAMP, secret: str = CASHFREE_SECRET) -> str:
    digest = hmac.new(secret.encode(), timestamp.encode() + payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


class TestStripeWebhook:
    @pytest.fixture(autouse=True)
    def verified(self):
        with patch("modules.billing.service.stripe.Webhook.construct_event") as construct:
            yield construct

    @pytest.fixture(autouse=True)
    def price(self):
        with patch.object(PaymentWebhookService, "_stripe_price_id", return_value="price_gold") as price:
            yield price

    @pytest.mark.asyncio
    async def test_checkout_completed_upgrades_user(self, service, store):
        await store.create_user(make_entitlement("u1"))

        result = await service.handle_stripe(stripe_event(), "t=1,v1=sig")

        assert result.outcome == WebhookOutcome.APPLIED
        assert result.tier == SubscriptionTier.GOLD
        user = await store.get_user("u1")
        assert user.subscription_tier == SubscriptionTier.GOLD
        assert user.subscription_status == SubscriptionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_verifies_against_raw_body(self, service, store, verified):
        await store.create_user(make_entitlement("u1"))
        payload = stripe_event()

        await service.handle_stripe(payload, "t=1,v1=sig")

        verified.assert_called_once_with(payload, "t=1,v1=sig", "whsec_test")

    @pytest.mark.asyncio
    async def test_replay_is_acknowledged_without_change(self, service, store):
        await store.create_user(make_entitlement("u1"))
        await service.handle_stripe(stripe_event(), "sig")
        version = (await store.get_user("u1")).version

        result = await service.handle_stripe(stripe_event(), "sig")

        assert result.outcome == WebhookOutcome.DUPLICATE
        assert (await store.get_user("u1")).version == version

    @pytest.mark.asyncio
    async def test_invalid_signature(self, service, store, verified):
        await store.create_user(make_entitlement("u1"))
        verified.side_effect = stripe.SignatureVerificationError("bad signature", "sig")

        with pytest.raises(WebhookVerificationError):
            await service.handle_stripe(stripe_event(), "sig")

        assert (await store.get_user("u1")).subscription_tier == SubscriptionTier.FREE

    @pytest.mark.asyncio
    async def test_missing_signature_header(self, service, verified):
        with pytest.raises(WebhookVerificationError):
            await service.handle_stripe(stripe_event(), None)
        verified.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_secret_rejects(self, payment_store, billing_settings):
        service = PaymentWebhookService(
            payment_store,
            billing_settings.model_copy(update={"stripe_webhook_secret": ""}),
        )
        with pytest.raises(WebhookVerificationError):
            await service.handle_stripe(stripe_event(), "sig")

    @pytest.mark.asyncio
    async def test_other_event_types_are_ignored(self, service, price):
        result = await service.handle_stripe(stripe_event(event_type="invoice.paid"), "sig")

        assert result.outcome == WebhookOutcome.IGNORED
        price.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_price_is_ignored(self, service, store, price):
        await store.create_user(make_entitlement("u1"))
        price.return_value = "price_unknown"

        result = await service.handle_stripe(stripe_event(), "sig")

        assert result.outcome == WebhookOutcome.IGNORED
        assert result.reason == "unrecognised_price"
        assert (await store.get_user("u1")).subscription_tier == SubscriptionTier.FREE

    @pytest.mark.asyncio
    async def test_missing_user_reference_is_ignored(self, service):
        result = await service.handle_stripe(stripe_event(user_id=None), "sig")
        assert result.outcome == WebhookOutcome.IGNORED
        assert result.reason == "missing_user"

    @pytest.mark.asyncio
    async def test_unknown_user_is_ignored(self, service):
        result = await service.handle_stripe(stripe_event(user_id="ghost"), "sig")
        assert result.outcome == WebhookOutcome.IGNORED
        assert result.reason == "unknown_user"

    @pytest.mark.asyncio
    async def test_store_failure_asks_provider_to_retry(self, billing_settings):
        store = MagicMock()
        store.apply_payment = AsyncMock(side_effect=RuntimeError("db down"))
        service = PaymentWebhookService(store, billing_settings)

        with pytest.raises(PaymentStoreError):
            await service.handle_stripe(stripe_event(), "sig")

    @pytest.mark.asyncio
    async def test_array_body_is_invalid_payload(self, service, price):
        with pytest.raises(InvalidPayloadError):
            await service.handle_stripe(b"[1, 2]", "sig")
        price.assert_not_called()

    @pytest.mark.asyncio
    async def test_session_that_is_not_an_object(self, service):
        payload = json.dumps({"type": "checkout.session.completed", "data": {"object": "cs_1"}}).encode()
        with pytest.raises(InvalidPayloadError):
            await service.handle_stripe(payload, "sig")


class TestStripeCheckout:
    @pytest.mark.asyncio
    async def test_creates_subscription_session(self, service):
        session = MagicMock(id="cs_new", url="https://checkout.stripe.com/c/cs_new")
        with patch("modules.billing.service.stripe.checkout.Session.create", return_value=session) as create:
            result = await service.create_checkout_session(
                "u1",
                CheckoutRequest(tier=SubscriptionTier.SILVER, app_url="https://app.example.com"),
            )

        assert result.session_id == "cs_new"
        kwargs = create.call_args.kwargs
        assert kwargs["line_items"] == [{"price": "price_silver", "quantity": 1}]
        assert kwargs["client_reference_id"] == "u1"
        assert kwargs["mode"] == "subscription"

    @pytest.mark.asyncio
    async def test_free_tier_cannot_be_bought(self, service):
        with pytest.raises(InvalidTierError):
            await service.create_checkout_session(
                "u1",
                CheckoutRequest(tier=SubscriptionTier.FREE, app_url="https://app.example.com"),
            )

    @pytest.mark.asyncio
    async def test_stripe_error(self, service):
        with patch(
            "modules.billing.service.stripe.checkout.Session.create",
            side_effect=stripe.StripeError("card declined"),
        ):
            with pytest.raises(PaymentFailedError) as exc_info:
                await service.create_checkout_session(
                    "u1",
                    CheckoutRequest(tier=SubscriptionTier.GOLD, app_url="https://app.example.com"),
                )

        assert "card declined" in exc_info.value.details["stripe_error"]


class TestCashfreeWebhook:
    @pytest.mark.asyncio
    async def test_paid_order_upgrades_by_amount(self, service, store):
        await store.create_user(make_entitlement("u1"))
        payload = cashfree_event(amount=999)

        result = await service.handle_cashfree(payload, cashfree_signature(payload), TIMESTAMP)

        assert result.outcome == WebhookOutcome.APPLIED
        assert (await store.get_user("u1")).subscription_tier == SubscriptionTier.GOLD

    @pytest.mark.asyncio
    async def test_decimal_amount_matches(self, service, store):
        await store.create_user(make_entitlement("u1"))
        payload = cashfree_event(amount=499.00)

        result = await service.handle_cashfree(payload, cashfree_signature(payload), TIMESTAMP)

        assert result.tier == SubscriptionTier.SILVER

    @pytest.mark.asyncio
    async def test_replay_is_duplicate(self, service, store):
        await store.create_user(make_entitlement("u1"))
        payload = cashfree_event()
        signature = cashfree_signature(payload)

        first = await service.handle_cashfree(payload, signature, TIMESTAMP)
        second = await service.handle_cashfree(payload, signature, TIMESTAMP)

        assert first.outcome == WebhookOutcome.APPLIED
        assert second.outcome == WebhookOutcome.DUPLICATE

    @pytest.mark.asyncio
    async def test_tampered_body_is_rejected(self, service, store):
        await store.create_user(make_entitlement("u1"))
        signature = cashfree_signature(cashfree_event(amount=499))

        with pytest.raises(WebhookVerificationError):
            await service.handle_cashfree(cashfree_event(amount=999), signature, TIMESTAMP)

        assert (await store.get_user("u1")).subscription_tier == SubscriptionTier.FREE

    @pytest.mark.asyncio
    async def test_missing_headers_are_rejected(self, service):
        payload = cashfree_event()
        with pytest.raises(WebhookVerificationError):
            await service.handle_cashfree(payload, None, TIMESTAMP)
        with pytest.raises(WebhookVerificationError):
            await service.handle_cashfree(payload, cashfree_signature(payload), None)

    @pytest.mark.asyncio
    async def test_test_event_skips_verification(self, service):
        payload = json.dumps({"type": "TEST_WEBHOOK", "data": {}}).encode()

        result = await service.handle_cashfree(payload, None, None)

        assert result.outcome == WebhookOutcome.TEST

    @pytest.mark.asyncio
    async def test_unpaid_order_is_ignored(self, service, store):
        await store.create_user(make_entitlement("u1"))
        payload = cashfree_event(status="ACTIVE")

        result = await service.handle_cashfree(payload, cashfree_signature(payload), TIMESTAMP)

        assert result.outcome == WebhookOutcome.IGNORED
        assert (await store.get_user("u1")).subscription_tier == SubscriptionTier.FREE

    @pytest.mark.asyncio
    async def test_unmapped_amount_is_ignored(self, service, store):
        await store.create_user(make_entitlement("u1"))
        payload = cashfree_event(amount=123)

        result = await service.handle_cashfree(payload, cashfree_signature(payload), TIMESTAMP)

        assert result.outcome == WebhookOutcome.IGNORED
        assert result.reason == "unrecognised_amount"

    @pytest.mark.asyncio
    async def test_non_json_body(self, service):
        payload = b"not json"
        with pytest.raises(InvalidPayloadError):
            await service.handle_cashfree(payload, cashfree_signature(payload), TIMESTAMP)

    @pytest.mark.asyncio
    async def test_misshapen_order_section(self, service):
        payload = json.dumps({"type": "PAYMENT_SUCCESS_WEBHOOK", "data": {"order": ["PAID"]}}).encode()
        with pytest.raises(InvalidPayloadError) as exc_info:
            await service.handle_cashfree(payload, cashfree_signature(payload), TIMESTAMP)
        assert exc_info.value.details["reason"] == "data.order is not a JSON object"

    def test_invalid_payload_is_a_billing_error(self):
        assert issubclass(InvalidPayloadError, BillingError)
