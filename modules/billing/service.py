"""
Payment webhook service.

Verifies Stripe and Cashfree webhook deliveries against the raw request
body, maps the purchase to a subscription tier and applies it through
an IPaymentStore. The provider's transaction id makes every delivery
idempotent: replays are acknowledged without touching the entitlement.
"""

import base64
import hashlib
import hmac
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import stripe

from modules.entitlements.exceptions import EntitlementNotFoundError
from modules.entitlements.models import SubscriptionTier
from shared.config import Settings, get_settings

from .exceptions import (
    BillingError,
    DuplicateTransactionError,
    InvalidPayloadError,
    InvalidTierError,
    PaymentFailedError,
    PaymentStoreError,
    WebhookVerificationError,
)
from .interfaces import IPaymentStore
from .models import (
    CheckoutRequest,
    CheckoutSession,
    PaymentProvider,
    PaymentRecord,
    WebhookOutcome,
    WebhookResult,
)

logger = logging.getLogger(__name__)

STRIPE_CHECKOUT_COMPLETED = "checkout.session.completed"
CASHFREE_TEST = "TEST_WEBHOOK"
CASHFREE_PAYMENT_SUCCESS = "PAYMENT_SUCCESS_WEBHOOK"
CASHFREE_PAID = "PAID"


def _to_tier(value: Optional[str]) -> Optional[SubscriptionTier]:
    try:
        return SubscriptionTier(value) if value else None
    except ValueError:
        return None


def _whole_amount(value: Any) -> Optional[int]:
    """Order amount as an integer, or None if it is not a whole number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    if amount != amount.to_integral_value():
        return None
    return int(amount)


def _section(value: Any, provider: str, path: str) -> dict:
    """A nested JSON object of a webhook body; absent sections read as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidPayloadError(provider, f"{path} is not a JSON object")
    return value


def _parse_json(payload: bytes) -> Optional[dict]:
    try:
        event = json.loads(payload)
    except (ValueError, UnicodeDecodeError):
        return None
    return event if isinstance(event, dict) else None


class PaymentWebhookService:
    """
    Handles payment provider webhooks and Stripe checkout creation.

    Price and amount tables come from settings (STRIPE_PRICE_TIERS,
    CASHFREE_AMOUNT_TIERS).
    """

    def __init__(self, store: IPaymentStore, settings: Optional[Settings] = None):
        self._store = store
        self._settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Stripe
    # -------------------------------------------------------------------------

    async def handle_stripe(self, payload: bytes, sig_header: Optional[str]) -> WebhookResult:
        """
        Handle a Stripe webhook delivery.

        Only ``checkout.session.completed`` changes anything. The user is
        the session's ``client_reference_id``; the tier comes from the
        price of its first line item.

        Raises:
            WebhookVerificationError: Signature missing or invalid
            InvalidPayloadError: Verified body is not the documented JSON shape
            PaymentFailedError: Line items could not be read from Stripe
            PaymentStoreError: The upgrade could not be written
        """
        self._verify_stripe(payload, sig_header)
        event = _parse_json(payload)
        if event is None:
            raise InvalidPayloadError("stripe", "body is not a JSON object")

        event_type = event.get("type")
        if event_type != STRIPE_CHECKOUT_COMPLETED:
            logger.debug(f"Ignoring Stripe event {event_type}")
            return WebhookResult(outcome=WebhookOutcome.IGNORED, event_type=event_type)

        data = _section(event.get("data"), "stripe", "data")
        session = _section(data.get("object"), "stripe", "data.object")
        session_id = session.get("id")
        user_id = session.get("client_reference_id")
        price_id = self._stripe_price_id(session_id) if session_id else None
        tier = _to_tier(self._settings.stripe_price_tiers.get(price_id)) if price_id else None

        if not session_id or not user_id or tier is None:
            logger.warning(
                f"Could not determine tier for Stripe session {session_id} "
                f"(user={user_id}, price={price_id})"
            )
            return WebhookResult(
                outcome=WebhookOutcome.IGNORED,
                event_type=event_type,
                transaction_id=session_id,
                user_id=user_id,
                reason="unrecognised_price" if user_id else "missing_user",
            )

        record = PaymentRecord(
            transaction_id=session_id,
            provider=PaymentProvider.STRIPE,
            user_id=user_id,
            tier=tier,
            amount=_whole_amount(session.get("amount_total")),
            currency=session.get("currency"),
        )
        return await self._apply(record, event_type)

    def _verify_stripe(self, payload: bytes, sig_header: Optional[str]) -> None:
        secret = self._settings.stripe_webhook_secret
        if not secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured")
            raise WebhookVerificationError("stripe", "webhook secret not configured")
        if not sig_header:
            raise WebhookVerificationError("stripe", "missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload, sig_header, secret)
        except ValueError as e:
            raise WebhookVerificationError("stripe", f"invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            logger.error(f"Stripe webhook signature verification failed: {e}")
            raise WebhookVerificationError("stripe", str(e)) from e

    def _stripe_price_id(self, session_id: str) -> Optional[str]:
        """Price ID of the checkout session's first line item."""
        try:
            line_items = stripe.checkout.Session.list_line_items(
                session_id,
                limit=1,
                api_key=self._settings.stripe_secret_key,
            )
        except stripe.StripeError as e:
            raise PaymentFailedError(
                f"Could not read line items for session {session_id}",
                stripe_error=str(e),
            ) from e
        if not line_items.data:
            return None
        price = line_items.data[0].price
        return price.id if price else None

    async def create_checkout_session(self, user_id: str, request: CheckoutRequest) -> CheckoutSession:
        """
        Start a Stripe subscription checkout for ``request.tier``.

        The user id travels as ``client_reference_id`` and comes back in
        the ``checkout.session.completed`` webhook.
        """
        price_id = next(
            (price for price, tier in self._settings.stripe_price_tiers.items() if tier == request.tier.value),
            None,
        )
        if price_id is None:
            raise InvalidTierError(request.tier.value)
        if not self._settings.stripe_secret_key:
            raise PaymentFailedError("Stripe is not configured")

        try:
            session = stripe.checkout.Session.create(
                api_key=self._settings.stripe_secret_key,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=request.app_url,
                cancel_url=request.app_url,
                client_reference_id=user_id,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed for {user_id}: {e}")
            raise PaymentFailedError(
                "Stripe checkout session creation failed",
                stripe_error=str(e),
            ) from e

        return CheckoutSession(session_id=session.id, url=session.url)

    # -------------------------------------------------------------------------
    # Cashfree
    # -------------------------------------------------------------------------

    async def handle_cashfree(
        self,
        payload: bytes,
        signature: Optional[str],
        timestamp: Optional[str],
    ) -> WebhookResult:
        """
        Handle a Cashfree webhook delivery.

        Dashboard test events are acknowledged before verification. A
        ``PAYMENT_SUCCESS_WEBHOOK`` with order status ``PAID`` upgrades
        ``customer_id`` to the tier matching the order amount.

        Raises:
            WebhookVerificationError: Signature missing or invalid
            InvalidPayloadError: Verified body is not a JSON object
            PaymentStoreError: The upgrade could not be written
        """
        event = _parse_json(payload)
        if event is not None and event.get("type") == CASHFREE_TEST:
            logger.info("Received Cashfree test webhook")
            return WebhookResult(outcome=WebhookOutcome.TEST, event_type=CASHFREE_TEST)

        self._verify_cashfree(payload, signature, timestamp)
        if event is None:
            raise InvalidPayloadError("cashfree", "body is not a JSON object")

        event_type = event.get("type")
        data = _section(event.get("data"), "cashfree", "data")
        order = _section(data.get("order"), "cashfree", "data.order")
        if event_type != CASHFREE_PAYMENT_SUCCESS or order.get("order_status") != CASHFREE_PAID:
            logger.debug(f"Ignoring Cashfree event {event_type}")
            return WebhookResult(outcome=WebhookOutcome.IGNORED, event_type=event_type)

        order_id = order.get("order_id")
        user_id = _section(data.get("customer"), "cashfree", "data.customer").get("customer_id")
        amount = _whole_amount(order.get("order_amount"))
        tier = _to_tier(self._settings.cashfree_amount_tiers.get(amount)) if amount is not None else None

        if not order_id or not user_id or tier is None:
            logger.warning(
                f"Could not determine tier for Cashfree order {order_id} "
                f"(user={user_id}, amount={order.get('order_amount')})"
            )
            return WebhookResult(
                outcome=WebhookOutcome.IGNORED,
                event_type=event_type,
                transaction_id=order_id,
                user_id=user_id,
                reason="unrecognised_amount" if user_id else "missing_user",
            )

        record = PaymentRecord(
            transaction_id=str(order_id),
            provider=PaymentProvider.CASHFREE,
            user_id=user_id,
            tier=tier,
            amount=amount,
            currency=order.get("order_currency"),
        )
        return await self._apply(record, event_type)

    def _verify_cashfree(
        self,
        payload: bytes,
        signature: Optional[str],
        timestamp: Optional[str],
    ) -> None:
        """Signature is base64(HMAC-SHA256(secret, timestamp + raw body))."""
        secret = self._settings.cashfree_webhook_secret
        if not secret:
            logger.error("CASHFREE_WEBHOOK_SECRET is not configured")
            raise WebhookVerificationError("cashfree", "webhook secret not configured")
        if not signature or not timestamp:
            raise WebhookVerificationError("cashfree", "missing signature or timestamp header")

        digest = hmac.new(
            secret.encode("utf-8"),
            timestamp.encode("utf-8") + payload,
            hashlib.sha256,
        ).digest()
        expected = base64.b64encode(digest).decode("ascii")
        if not hmac.compare_digest(expected, signature):
            logger.error("Cashfree webhook signature verification failed")
            raise WebhookVerificationError("cashfree", "signature mismatch")

    # -------------------------------------------------------------------------
    # Shared
    # -------------------------------------------------------------------------

    async def _apply(self, record: PaymentRecord, event_type: Optional[str]) -> WebhookResult:
        result = WebhookResult(
            outcome=WebhookOutcome.APPLIED,
            event_type=event_type,
            transaction_id=record.transaction_id,
            user_id=record.user_id,
            tier=record.tier,
        )
        try:
            await self._store.apply_payment(record)
        except DuplicateTransactionError:
            logger.info(f"Duplicate {record.provider.value} transaction {record.transaction_id}, skipping")
            return result.model_copy(update={"outcome": WebhookOutcome.DUPLICATE})
        except EntitlementNotFoundError:
            logger.warning(
                f"{record.provider.value} payment {record.transaction_id} for unknown user {record.user_id}"
            )
            return result.model_copy(
                update={"outcome": WebhookOutcome.IGNORED, "reason": "unknown_user"}
            )
        except BillingError:
            raise
        except Exception as e:
            logger.error(f"Failed to apply payment {record.transaction_id}: {e}")
            raise PaymentStoreError(record.transaction_id, str(e)) from e

        logger.info(f"Upgraded user {record.user_id} to {record.tier.value} tier")
        return result
