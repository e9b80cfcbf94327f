# storefront/payments/fake_gateway.py
# bramka w pamieci (dev/testy), webhooki podpisane jak w Stripe: t=<ts>,v1=<hmac-sha256>
import hashlib
import hmac
import time
from decimal import Decimal
from uuid import uuid4

import stripe

from storefront.domain.errors import GatewayError, SignatureError
from storefront.payments.port import (
    ConfirmOutcome,
    Declined,
    GatewayUnavailable,
    IntentDetails,
    IntentHandle,
    IntentStateConflict,
    PaymentGateway,
    RefundResult,
    RequiresAction,
    Succeeded,
    WebhookEvent,
)
from storefront.payments.stripe_gateway import clamp_to_minimum, parse_event

FAKE_WEBHOOK_SECRET = "whsec_fake"


class FakeGateway(PaymentGateway):
    """Intenty w dict, zapis kazdego wywolania, wynik nastepnego confirmu ustawiany z testu."""

    def __init__(
        self,
        webhook_secret: str = FAKE_WEBHOOK_SECRET,
        payment_method: str | None = None,
        currency: str = "inr",
        min_amount: Decimal = Decimal("50"),
    ) -> None:
        self.webhook_secret = webhook_secret
        self.payment_method = payment_method
        self.currency = currency
        self.min_amount = Decimal(min_amount)

        self.intents: dict[str, dict] = {}
        self.refunds: list[RefundResult] = []
        self.calls: list[dict] = []

        # succeeded | requires_action | declined | unavailable
        self.confirm_outcome: str = "succeeded"
        self.fail_create: bool = False
        self.fail_refund: bool = False
        # False -> konflikt bez zalaczonego intentu (wymusza retrieve)
        self.attach_intent_on_conflict: bool = True

    def configure(self, confirm_outcome: str = "succeeded", fail_create: bool = False, fail_refund: bool = False) -> None:
        self.confirm_outcome = confirm_outcome
        self.fail_create = fail_create
        self.fail_refund = fail_refund

    def count(self, method: str) -> int:
        return sum(1 for c in self.calls if c["method"] == method)

    def _details(self, intent_id: str) -> IntentDetails:
        intent = self.intents[intent_id]
        return IntentDetails(
            intent_id=intent_id,
            status=intent["status"],
            amount=intent["amount"],
            currency=self.currency,
            metadata=dict(intent["metadata"]),
            payment_method=intent.get("payment_method"),
            description=f"Payment for order {intent['metadata'].get('order_id')}",
        )

    def create_intent(self, amount: Decimal, metadata: dict[str, str]) -> IntentHandle:
        self.calls.append({"method": "create_intent", "amount": amount, "metadata": dict(metadata)})
        if self.fail_create:
            raise GatewayError("Failed to create payment intent")

        charged = clamp_to_minimum(Decimal(amount), self.min_amount)
        intent_id = f"pi_fake_{uuid4().hex[:16]}"
        self.intents[intent_id] = {
            "status": "requires_payment_method",
            "amount": charged,
            "metadata": {str(k): str(v) for k, v in metadata.items()},
            "client_secret": f"{intent_id}_secret_{uuid4().hex[:8]}",
            "payment_method": self.payment_method,
        }
        return IntentHandle(
            intent_id=intent_id,
            client_secret=self.intents[intent_id]["client_secret"],
            amount=charged,
            currency=self.currency,
            payment_method=self.payment_method,
        )

    def mark_succeeded(self, intent_id: str) -> None:
        #klient dokonczyl platnosc po stronie procesora
        self.intents[intent_id]["status"] = "succeeded"

    def confirm_intent(self, intent_id: str, method_id: str | None = None) -> ConfirmOutcome:
        self.calls.append({"method": "confirm_intent", "intent_id": intent_id, "method_id": method_id})
        if intent_id not in self.intents:
            raise GatewayError(f"No such payment intent: {intent_id}")

        intent = self.intents[intent_id]
        if intent["status"] == "succeeded":
            details = self._details(intent_id) if self.attach_intent_on_conflict else None
            raise IntentStateConflict(intent_id, details)

        if self.confirm_outcome == "unavailable":
            return GatewayUnavailable(reason="processor unreachable")
        if self.confirm_outcome == "requires_action":
            intent["status"] = "requires_action"
            return RequiresAction(intent_id=intent_id, client_secret=intent["client_secret"])
        if self.confirm_outcome == "declined":
            intent["status"] = "requires_payment_method"
            return Declined(intent_id=intent_id, reason="Your card was declined.", status=intent["status"])

        intent["status"] = "succeeded"
        return Succeeded(intent_id=intent_id)

    def retrieve_intent(self, intent_id: str) -> IntentDetails:
        self.calls.append({"method": "retrieve_intent", "intent_id": intent_id})
        if intent_id not in self.intents:
            raise GatewayError(f"No such payment intent: {intent_id}")
        return self._details(intent_id)

    def refund(self, intent_id: str, amount: Decimal | None = None) -> RefundResult:
        self.calls.append({"method": "refund", "intent_id": intent_id, "amount": amount})
        if self.fail_refund or intent_id not in self.intents:
            raise GatewayError("Failed to process refund")

        refunded = Decimal(amount) if amount is not None else self.intents[intent_id]["amount"]
        result = RefundResult(refund_id=f"re_fake_{uuid4().hex[:12]}", status="succeeded", amount=refunded)
        self.refunds.append(result)
        return result

    def sign(self, payload: bytes | str, timestamp: int | None = None, secret: str | None = None) -> str:
        #naglowek Stripe-Signature dla payloadu
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        ts = int(timestamp if timestamp is not None else time.time())
        mac = hmac.new(
            (secret or self.webhook_secret).encode("utf-8"),
            f"{ts}.{body}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return f"t={ts},v1={mac}"

    def verify_and_parse_webhook(self, raw_payload: bytes, signature: str) -> WebhookEvent:
        self.calls.append({"method": "verify_and_parse_webhook"})
        if not signature:
            raise SignatureError("Missing webhook signature")
        body = raw_payload.decode("utf-8") if isinstance(raw_payload, bytes) else raw_payload
        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, tolerance=300)
        except stripe.SignatureVerificationError as e:
            raise SignatureError("Webhook signature verification failed") from e

        return parse_event(body)
