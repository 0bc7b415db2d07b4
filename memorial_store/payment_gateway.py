"""Payment gateway port and adapters.

``StripeGateway`` creates hosted checkout sessions and verifies webhook
signatures with the stripe SDK. ``FakePaymentGateway`` stands in during
development and tests, only when selected with PAYMENT_GATEWAY=fake or
installed with set_gateway().
"""
import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Union

import stripe

from memorial_store.config import Config
from memorial_store.exceptions import PaymentConfigurationError, PaymentError, WebhookSignatureError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    """Hosted payment page created for an order."""

    session_id: str
    url: str


def to_minor_units(amount: Decimal) -> int:
    """Dollars to cents, rounded half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def success_url_for(success_url: str, order_id: str) -> str:
    return f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}&order_id={order_id}"


def cancel_url_for(cancel_url: str, order_id: str) -> str:
    return f"{cancel_url}?order_id={order_id}"


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_checkout_session(
        self,
        order_id: str,
        email: str,
        order_total: Decimal,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        """Create a hosted checkout session for an order total."""
        ...

    @abstractmethod
    def construct_event(self, payload: Union[bytes, str], signature: str) -> Dict[str, Any]:
        """Verify a webhook payload and return the event it carries."""
        ...


class StripeGateway(PaymentGateway):
    """Stripe Checkout adapter."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: Optional[str],
        api_version: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version or Config.STRIPE_API_VERSION
        self.currency = currency or Config.CHECKOUT_CURRENCY

    def create_checkout_session(
        self,
        order_id: str,
        email: str,
        order_total: Decimal,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                stripe_version=self.api_version,
                payment_method_types=["card"],
                customer_email=email,
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": {
                                "name": Config.CHECKOUT_PRODUCT_NAME,
                                "description": f"Order #{order_id}",
                            },
                            "unit_amount": to_minor_units(order_total),
                        },
                        "quantity": 1,
                    }
                ],
                mode="payment",
                success_url=success_url_for(success_url, order_id),
                cancel_url=cancel_url_for(cancel_url, order_id),
                metadata={"order_id": order_id},
            )
        except stripe.StripeError as e:
            raise PaymentError(e.user_message or str(e))
        return CheckoutSession(session_id=session.id, url=session.url)

    def construct_event(self, payload: Union[bytes, str], signature: str) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        try:
            stripe.WebhookSignature.verify_header(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Webhook signature verification failed: {e}")
        try:
            return json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid webhook payload: {e}")


class FakePaymentGateway(PaymentGateway):
    """Configurable fake payment gateway for development and testing."""

    SIGNATURE = "test-signature"

    def __init__(self, base_url: str = "https://checkout.example.test/pay") -> None:
        self.base_url = base_url
        self.should_succeed: bool = True
        self.failure_reason: str = "Payment provider unavailable"
        self.calls: List[Dict[str, Any]] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Payment provider unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_checkout_session(
        self,
        order_id: str,
        email: str,
        order_total: Decimal,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        self.calls.append({
            "method": "create_checkout_session",
            "order_id": order_id,
            "email": email,
            "unit_amount": to_minor_units(order_total),
            "success_url": success_url_for(success_url, order_id),
            "cancel_url": cancel_url_for(cancel_url, order_id),
        })
        if not self.should_succeed:
            raise PaymentError(self.failure_reason)
        session_id = f"cs_test_{uuid.uuid4().hex[:12]}"
        return CheckoutSession(session_id=session_id, url=f"{self.base_url}/{session_id}")

    def construct_event(self, payload: Union[bytes, str], signature: str) -> Dict[str, Any]:
        if signature != self.SIGNATURE:
            raise WebhookSignatureError("Webhook signature verification failed")
        try:
            return json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid webhook payload: {e}")


_current_gateway: Optional[PaymentGateway] = None


def get_gateway() -> PaymentGateway:
    """
    Return the current payment gateway.

    Stripe unless PAYMENT_GATEWAY=fake selects the fake gateway.

    Raises:
        PaymentConfigurationError: If Stripe is selected without a secret key
            or PAYMENT_GATEWAY names an unknown gateway
    """
    global _current_gateway
    if _current_gateway is None:
        if Config.PAYMENT_GATEWAY == "fake":
            logger.warning("PAYMENT_GATEWAY=fake, checkout sessions and webhooks are simulated")
            _current_gateway = FakePaymentGateway()
        elif Config.PAYMENT_GATEWAY != "stripe":
            raise PaymentConfigurationError(f"Unknown payment gateway: {Config.PAYMENT_GATEWAY}")
        elif not Config.STRIPE_SECRET_KEY:
            raise PaymentConfigurationError("STRIPE_SECRET_KEY is not configured")
        else:
            _current_gateway = StripeGateway(Config.STRIPE_SECRET_KEY, Config.STRIPE_WEBHOOK_SECRET)
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
