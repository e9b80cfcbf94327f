from decimal import Decimal

import pytest
import stripe

from helpers import intent_event
from storefront.domain.errors import GatewayError, SignatureError
from storefront.payments.fake_gateway import FakeGateway
from storefront.payments.port import Declined, GatewayUnavailable, IntentStateConflict, RequiresAction, Succeeded
from storefront.payments.stripe_gateway import StripeGateway, from_minor_units, to_minor_units


class StripeCalls:
    def __init__(self):
        self.calls = []

    def record(self, name, result=None, error=None):
        def _call(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            if error is not None:
                raise error
            return result

        return _call


@pytest.fixture
def api(monkeypatch):
    calls = StripeCalls()
    monkeypatch.setattr(
        stripe.PaymentIntent,
        "create",
        calls.record("create", {"id": "pi_1", "client_secret": "pi_1_secret", "status": "requires_payment_method"}),
    )
    return calls


@pytest.fixture
def adapter():
    return StripeGateway(api_key="sk_test_x", webhook_secret="whsec_test", currency="inr", min_amount=Decimal("50"))


def test_minor_units():
    assert to_minor_units(Decimal("10.005")) == 1001
    assert from_minor_units(5000) == Decimal("50.00")
    assert from_minor_units(None) == Decimal("0.00")


def test_create_clamps_to_minimum_and_uses_automatic_methods(adapter, api):
    handle = adapter.create_intent(Decimal("30.00"), {"order_id": "7", "user_id": "1"})

    _, _, params = api.calls[0]
    assert params["amount"] == 5000
    assert params["currency"] == "inr"
    assert params["automatic_payment_methods"] == {"enabled": True}
    assert params["metadata"] == {"order_id": "7", "user_id": "1"}
    assert params["api_key"] == "sk_test_x"
    assert handle.amount == Decimal("50")
    assert handle.client_secret == "pi_1_secret"


def test_create_never_lowers_amount(adapter, api):
    adapter.create_intent(Decimal("123.45"), {"order_id": "7"})
    assert api.calls[0][2]["amount"] == 12345


def test_method_restricted_create(api):
    adapter = StripeGateway(api_key="sk", webhook_secret="wh", payment_method="upi")
    adapter.create_intent(Decimal("100"), {"order_id": "1"})
    params = api.calls[0][2]
    assert params["payment_method_types"] == ["upi"]
    assert "automatic_payment_methods" not in params


def test_create_failure_is_gateway_error(adapter, monkeypatch):
    monkeypatch.setattr(
        stripe.PaymentIntent, "create", StripeCalls().record("create", error=stripe.InvalidRequestError("bad", "amount"))
    )
    with pytest.raises(GatewayError):
        adapter.create_intent(Decimal("100"), {"order_id": "1"})


@pytest.mark.parametrize(
    "status,expected",
    [("succeeded", Succeeded), ("requires_action", RequiresAction), ("requires_payment_method", Declined)],
)
def test_confirm_maps_status(adapter, monkeypatch, status, expected):
    intent = {"id": "pi_1", "status": status, "client_secret": "sec"}
    monkeypatch.setattr(stripe.PaymentIntent, "confirm", StripeCalls().record("confirm", intent))
    assert isinstance(adapter.confirm_intent("pi_1", "pm_card_visa"), expected)


def test_confirm_without_method_only_retrieves(adapter, monkeypatch):
    calls = StripeCalls()
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", calls.record("retrieve", {"id": "pi_1", "status": "succeeded"}))
    monkeypatch.setattr(stripe.PaymentIntent, "confirm", calls.record("confirm", error=AssertionError("no confirm")))

    assert isinstance(adapter.confirm_intent("pi_1"), Succeeded)
    assert [c[0] for c in calls.calls] == ["retrieve"]


def test_card_error_is_decline(adapter, monkeypatch):
    error = stripe.CardError("Your card was declined.", "payment_method", "card_declined")
    monkeypatch.setattr(stripe.PaymentIntent, "confirm", StripeCalls().record("confirm", error=error))

    outcome = adapter.confirm_intent("pi_1", "pm_card_chargeDeclined")

    assert isinstance(outcome, Declined)
    assert outcome.intent_id == "pi_1"


def test_unexpected_state_raises_conflict(adapter, monkeypatch):
    error = stripe.InvalidRequestError("already succeeded", None, code="payment_intent_unexpected_state")
    monkeypatch.setattr(stripe.PaymentIntent, "confirm", StripeCalls().record("confirm", error=error))

    with pytest.raises(IntentStateConflict) as exc:
        adapter.confirm_intent("pi_1", "pm_card_visa")
    assert exc.value.intent_id == "pi_1"


def test_connection_error_is_unavailable(adapter, monkeypatch):
    calls = StripeCalls()
    monkeypatch.setattr(
        stripe.PaymentIntent, "confirm", calls.record("confirm", error=stripe.APIConnectionError("network down"))
    )

    assert isinstance(adapter.confirm_intent("pi_1", "pm_card_visa"), GatewayUnavailable)
    # gateway_retry: 3 proby zanim poddamy sie
    assert len(calls.calls) == 3


def test_refund_amount_in_minor_units(adapter, monkeypatch):
    calls = StripeCalls()
    monkeypatch.setattr(stripe.Refund, "create", calls.record("refund", {"id": "re_1", "status": "succeeded", "amount": 4000}))

    result = adapter.refund("pi_1", Decimal("40.00"))

    assert calls.calls[0][2]["payment_intent"] == "pi_1"
    assert calls.calls[0][2]["amount"] == 4000
    assert (result.refund_id, result.amount) == ("re_1", Decimal("40.00"))


def test_webhook_signature_verified_before_parsing(adapter):
    payload = intent_event("payment_intent.succeeded", "pi_1", 7)
    signer = FakeGateway(webhook_secret="whsec_test")

    event = adapter.verify_and_parse_webhook(payload, signer.sign(payload))

    assert event.type == "payment_intent.succeeded"
    assert event.intent_id == "pi_1"
    assert event.metadata == {"order_id": "7"}

    with pytest.raises(SignatureError):
        adapter.verify_and_parse_webhook(payload, FakeGateway(webhook_secret="whsec_other").sign(payload))
    with pytest.raises(SignatureError):
        adapter.verify_and_parse_webhook(payload, "")


def test_webhook_rejected_without_configured_secret():
    adapter = StripeGateway(api_key="sk", webhook_secret=None)
    adapter.webhook_secret = ""
    with pytest.raises(SignatureError):
        adapter.verify_and_parse_webhook(b"{}", "t=1,v1=abc")
