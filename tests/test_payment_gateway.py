from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from backend.app.services import payment_gateway
from backend.app.services.payment_gateway import (
    ChargeResult,
    PaymentGateway,
    PaymentGatewayError,
    StripePaymentGateway,
    get_payment_gateway,
    to_minor_units,
)


class FakePaymentIntents:
    def __init__(self, status="succeeded", error=None):
        self.status = status
        self.error = error
        self.params = None

    def create(self, params=None):
        self.params = params
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            id="pi_test_1",
            status=self.status,
            payment_method=SimpleNamespace(id="pm_default", type="sepa_debit"),
        )


class FakeCustomers:
    def retrieve(self, customer_ref):
        return SimpleNamespace(invoice_settings=SimpleNamespace(default_payment_method="pm_default"))


class FakeStripeClient:
    def __init__(self, payment_intents):
        self.customers = FakeCustomers()
        self.payment_intents = payment_intents


def _gateway(payment_intents):
    gateway = StripePaymentGateway("sk_test_dummy", timeout_seconds=5)
    gateway.client = FakeStripeClient(payment_intents)
    return gateway


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("84.00")) == 8400
    assert to_minor_units(Decimal("10.005")) == 1001
    assert to_minor_units(28) == 2800


def test_charge_result_succeeded():
    assert ChargeResult(status="succeeded").succeeded
    assert not ChargeResult(status="failed").succeeded


def test_successful_off_session_charge():
    intents = FakePaymentIntents()
    gateway = _gateway(intents)

    result = gateway.charge_off_session("cus_123", Decimal("56.00"), "eur", {"billing_id": "1"})

    assert result.succeeded
    assert result.reference == "pi_test_1"
    assert result.payment_method == "sepa_debit"
    assert intents.params["amount"] == 5600
    assert intents.params["customer"] == "cus_123"
    assert intents.params["payment_method"] == "pm_default"
    assert intents.params["off_session"] is True
    assert intents.params["confirm"] is True
    assert intents.params["metadata"] == {"billing_id": "1"}
    assert intents.params["expand"] == ["payment_method"]


def test_stripe_error_becomes_gateway_error():
    gateway = _gateway(FakePaymentIntents(error=stripe.StripeError("card declined")))

    with pytest.raises(PaymentGatewayError) as exc_info:
        gateway.charge_off_session("cus_123", Decimal("56.00"), "eur", {})

    assert "card declined" in str(exc_info.value)


def test_unconfirmed_intent_is_a_failure():
    gateway = _gateway(FakePaymentIntents(status="requires_action"))

    with pytest.raises(PaymentGatewayError):
        gateway.charge_off_session("cus_123", Decimal("56.00"), "eur", {})


def test_no_gateway_without_secret_key(monkeypatch):
    settings = SimpleNamespace(stripe_secret_key=None, payment_timeout_seconds=5)
    monkeypatch.setattr(payment_gateway, "get_settings", lambda: settings)

    assert get_payment_gateway() is None


def test_stripe_gateway_when_key_configured(monkeypatch):
    settings = SimpleNamespace(stripe_secret_key="sk_test_dummy", payment_timeout_seconds=5)
    monkeypatch.setattr(payment_gateway, "get_settings", lambda: settings)

    assert isinstance(get_payment_gateway(), StripePaymentGateway)


def test_client_is_built_with_request_timeout(monkeypatch):
    built = {}

    class RecordingRequestsClient:
        def __init__(self, timeout):
            built["timeout"] = timeout

    class RecordingStripeClient:
        def __init__(self, api_key, http_client=None):
            built["api_key"] = api_key
            built["http_client"] = http_client

    monkeypatch.setattr(stripe, "RequestsClient", RecordingRequestsClient)
    monkeypatch.setattr(stripe, "StripeClient", RecordingStripeClient)

    gateway = StripePaymentGateway("sk_test_dummy", timeout_seconds=5)

    assert gateway.timeout_seconds == 5
    assert built["timeout"] == 5
    assert built["api_key"] == "sk_test_dummy"
    assert isinstance(built["http_client"], RecordingRequestsClient)


def test_connection_timeout_becomes_gateway_error():
    gateway = _gateway(FakePaymentIntents(error=stripe.APIConnectionError("Request to Stripe timed out")))

    with pytest.raises(PaymentGatewayError, match="timed out"):
        gateway.charge_off_session("cus_123", Decimal("56.00"), "eur", {})


def test_gateway_base_class_is_abstract():
    with pytest.raises(TypeError):
        PaymentGateway()
