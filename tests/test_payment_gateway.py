"""Tests for the payment gateway adapters."""
import json
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from memorial_store.config import Config
from memorial_store.exceptions import PaymentConfigurationError, PaymentError, WebhookSignatureError
from memorial_store.payment_gateway import (
    FakePaymentGateway,
    StripeGateway,
    get_gateway,
    reset_gateway,
    set_gateway,
    to_minor_units,
)


@pytest.fixture
def stripe_gateway():
    return StripeGateway("sk_test_123", "whsec_123", api_version="2025-06-30.basil", currency="usd")


class TestMinorUnits:
    @pytest.mark.parametrize("amount, cents", [
        (Decimal("40"), 4000),
        (Decimal("19.99"), 1999),
        (Decimal("0.005"), 1),
    ])
    def test_rounds_half_up(self, amount, cents):
        assert to_minor_units(amount) == cents


class TestStripeGateway:
    def test_creates_single_line_item_session(self, stripe_gateway):
        created = SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/pay/cs_test_1")
        with patch.object(stripe.checkout.Session, "create", return_value=created) as create:
            session = stripe_gateway.create_checkout_session(
                order_id="order-1",
                email="jane@example.com",
                order_total=Decimal("42.50"),
                success_url="https://shop.example.test/success",
                cancel_url="https://shop.example.test/cancel"
            )

        assert session.session_id == "cs_test_1"
        assert session.url == created.url
        kwargs = create.call_args.kwargs
        assert kwargs["api_key"] == "sk_test_123"
        assert kwargs["customer_email"] == "jane@example.com"
        assert kwargs["metadata"] == {"order_id": "order-1"}
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 4250
        assert kwargs["line_items"][0]["price_data"]["product_data"]["description"] == "Order #order-1"
        assert kwargs["success_url"] == (
            "https://shop.example.test/success?session_id={CHECKOUT_SESSION_ID}&order_id=order-1"
        )
        assert kwargs["cancel_url"] == "https://shop.example.test/cancel?order_id=order-1"

    def test_provider_error_becomes_payment_error(self, stripe_gateway):
        with patch.object(stripe.checkout.Session, "create", side_effect=stripe.StripeError("Invalid API Key")):
            with pytest.raises(PaymentError, match="Invalid API Key"):
                stripe_gateway.create_checkout_session(
                    "order-1", "jane@example.com", Decimal("1"), "https://a.test", "https://b.test"
                )

    def test_verified_event_is_parsed(self, stripe_gateway):
        payload = json.dumps({"id": "evt_1", "type": "checkout.session.completed"}).encode()
        with patch.object(stripe.WebhookSignature, "verify_header", return_value=True) as verify:
            event = stripe_gateway.construct_event(payload, "t=1,v1=abc")

        assert event["type"] == "checkout.session.completed"
        verify.assert_called_once_with(payload.decode(), "t=1,v1=abc", "whsec_123")

    def test_bad_signature_rejected(self, stripe_gateway):
        error = stripe.SignatureVerificationError("No signatures found", "t=1,v1=abc")
        with patch.object(stripe.WebhookSignature, "verify_header", side_effect=error):
            with pytest.raises(WebhookSignatureError):
                stripe_gateway.construct_event(b"{}", "t=1,v1=abc")

    def test_missing_webhook_secret_rejected(self):
        gateway = StripeGateway("sk_test_123", None)

        with pytest.raises(WebhookSignatureError):
            gateway.construct_event(b"{}", "t=1,v1=abc")


class TestFakeGateway:
    def test_records_calls_and_fails_on_demand(self):
        gateway = FakePaymentGateway()
        gateway.create_checkout_session("order-1", "a@example.com", Decimal("5"), "https://s", "https://c")
        gateway.configure(should_succeed=False, failure_reason="down")

        with pytest.raises(PaymentError, match="down"):
            gateway.create_checkout_session("order-2", "a@example.com", Decimal("5"), "https://s", "https://c")

        assert [call["order_id"] for call in gateway.calls] == ["order-1", "order-2"]

    def test_gateway_override(self):
        fake = FakePaymentGateway()
        set_gateway(fake)
        try:
            assert get_gateway() is fake
        finally:
            reset_gateway()


class TestGatewaySelection:
    @pytest.fixture(autouse=True)
    def clean_gateway(self):
        reset_gateway()
        yield
        reset_gateway()

    def test_missing_stripe_key_raises(self):
        with patch.object(Config, "PAYMENT_GATEWAY", "stripe"), \
                patch.object(Config, "STRIPE_SECRET_KEY", None):
            with pytest.raises(PaymentConfigurationError):
                get_gateway()

    def test_stripe_key_selects_stripe(self):
        with patch.object(Config, "PAYMENT_GATEWAY", "stripe"), \
                patch.object(Config, "STRIPE_SECRET_KEY", "sk_test_123"), \
                patch.object(Config, "STRIPE_WEBHOOK_SECRET", "whsec_123"):
            gateway = get_gateway()

        assert isinstance(gateway, StripeGateway)
        assert gateway.webhook_secret == "whsec_123"

    def test_fake_only_when_selected(self):
        with patch.object(Config, "PAYMENT_GATEWAY", "fake"), \
                patch.object(Config, "STRIPE_SECRET_KEY", None):
            assert isinstance(get_gateway(), FakePaymentGateway)

    def test_unknown_gateway_name_raises(self):
        with patch.object(Config, "PAYMENT_GATEWAY", "paypal"):
            with pytest.raises(PaymentConfigurationError, match="paypal"):
                get_gateway()
