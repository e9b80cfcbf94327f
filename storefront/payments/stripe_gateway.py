# storefront/payments/stripe_gateway.py
import json
from decimal import Decimal, ROUND_HALF_UP

import stripe

from storefront.domain.errors import GatewayError, SignatureError, ValidationError
from storefront.payments.port import (
    ConfirmOutcome,
    Declined,
    GatewayUnavailable,
    IntentStateConflict,
    IntentDetails,
    IntentHandle,
    PaymentGateway,
    RefundResult,
    RequiresAction,
    Succeeded,
    WebhookEvent,
)
from storefront.utils.logging import get_logger
from storefront.utils.retry import gateway_retry
from storefront.utils.settings import (
    APP_URL,
    PAYMENT_CURRENCY,
    PAYMENT_MIN_AMOUNT,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
)

logger = get_logger(__name__)

_CENT = Decimal("0.01")


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int | None) -> Decimal:
    return (Decimal(amount or 0) / 100).quantize(_CENT)


def clamp_to_minimum(amount: Decimal, minimum: Decimal) -> Decimal:
    #procesor ma minimalna kwote - podbijamy w gore, nigdy w dol
    return amount if amount >= minimum else minimum


def intent_details(intent) -> IntentDetails:
    metadata = intent.get("metadata") or {}
    return IntentDetails(
        intent_id=intent["id"],
        status=intent["status"],
        amount=from_minor_units(intent.get("amount")),
        currency=intent.get("currency") or "",
        metadata={str(k): str(v) for k, v in dict(metadata).items()},
        payment_method=intent.get("payment_method"),
        customer=intent.get("customer"),
        description=intent.get("description"),
        created=intent.get("created"),
    )


def outcome_for(intent) -> ConfirmOutcome:
    status = intent["status"]
    if status == "succeeded":
        return Succeeded(intent_id=intent["id"])
    if status == "requires_action":
        return RequiresAction(intent_id=intent["id"], client_secret=intent.get("client_secret"))
    last_error = intent.get("last_payment_error") or {}
    reason = last_error.get("message") if last_error else None
    return Declined(intent_id=intent["id"], reason=reason or f"Payment status: {status}", status=status)


def parse_event(raw_payload: bytes | str) -> WebhookEvent:
    #tylko payload po weryfikacji podpisu
    try:
        data = json.loads(raw_payload)
        obj = data["data"]["object"]
        return WebhookEvent(
            event_id=str(data.get("id", "")),
            type=str(data["type"]),
            intent_id=obj.get("id"),
            metadata={str(k): str(v) for k, v in (obj.get("metadata") or {}).items()},
            payload=data,
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise ValidationError(f"Malformed webhook payload: {e}") from e


class StripeGateway(PaymentGateway):
    """
    Adapter na Stripe PaymentIntents.

    payment_method=None -> intent wielometodowy (automatic_payment_methods)
    payment_method="upi" -> intent ograniczony do jednej metody
    """

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        payment_method: str | None = None,
        currency: str = PAYMENT_CURRENCY,
        min_amount: Decimal = Decimal(PAYMENT_MIN_AMOUNT),
        return_url: str | None = None,
    ):
        self.api_key = api_key or STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or STRIPE_WEBHOOK_SECRET
        self.payment_method = payment_method
        self.currency = currency
        self.min_amount = Decimal(min_amount)
        self.return_url = return_url or f"{APP_URL.rstrip('/')}/payment/success"

    @gateway_retry()
    def _create(self, **params):
        return stripe.PaymentIntent.create(api_key=self.api_key, **params)

    @gateway_retry()
    def _confirm(self, intent_id: str, **params):
        return stripe.PaymentIntent.confirm(intent_id, api_key=self.api_key, **params)

    @gateway_retry()
    def _retrieve(self, intent_id: str):
        return stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key)

    @gateway_retry()
    def _refund(self, **params):
        return stripe.Refund.create(api_key=self.api_key, **params)

    def create_intent(self, amount: Decimal, metadata: dict[str, str]) -> IntentHandle:
        charged = clamp_to_minimum(Decimal(amount), self.min_amount)
        params = {
            "amount": to_minor_units(charged),
            "currency": self.currency,
            "metadata": metadata,
            "description": f"Payment for order {metadata.get('order_id')}",
        }
        if self.payment_method:
            params["payment_method_types"] = [self.payment_method]
        else:
            params["automatic_payment_methods"] = {"enabled": True}

        logger.info(
            f"Stripe create intent amount={charged} {self.currency} "
            f"method={self.payment_method or 'automatic'} order={metadata.get('order_id')}"
        )
        try:
            intent = self._create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe payment intent creation error: {e}")
            raise GatewayError("Failed to create payment intent") from e

        return IntentHandle(
            intent_id=intent["id"],
            client_secret=intent.get("client_secret"),
            amount=charged,
            currency=self.currency,
            payment_method=self.payment_method,
        )

    def confirm_intent(self, intent_id: str, method_id: str | None = None) -> ConfirmOutcome:
        try:
            if method_id:
                intent = self._confirm(intent_id, payment_method=method_id, return_url=self.return_url)
            else:
                #bez metody tylko sprawdzamy stan intentu
                intent = self._retrieve(intent_id)
        except stripe.CardError as e:
            logger.info(f"Stripe declined intent {intent_id}: {e.user_message}")
            return Declined(intent_id=intent_id, reason=e.user_message or "Card declined", status="requires_payment_method")
        except stripe.InvalidRequestError as e:
            if e.code == "payment_intent_unexpected_state":
                attached = getattr(e.error, "payment_intent", None) if e.error else None
                details = intent_details(attached) if attached is not None else None
                raise IntentStateConflict(intent_id, details) from e
            logger.error(f"Stripe payment confirmation error: {e}")
            raise GatewayError("Failed to confirm payment") from e
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            logger.error(f"Stripe unavailable while confirming {intent_id}: {e}")
            return GatewayUnavailable(reason=str(e))
        except stripe.StripeError as e:
            logger.error(f"Stripe payment confirmation error: {e}")
            raise GatewayError("Failed to confirm payment") from e

        return outcome_for(intent)

    def retrieve_intent(self, intent_id: str) -> IntentDetails:
        try:
            return intent_details(self._retrieve(intent_id))
        except stripe.StripeError as e:
            logger.error(f"Get payment details error: {e}")
            raise GatewayError("Failed to retrieve payment details") from e

    def refund(self, intent_id: str, amount: Decimal | None = None) -> RefundResult:
        params = {"payment_intent": intent_id}
        if amount is not None:
            params["amount"] = to_minor_units(Decimal(amount))
        try:
            refund = self._refund(**params)
        except stripe.StripeError as e:
            logger.error(f"Refund error: {e}")
            raise GatewayError("Failed to process refund") from e

        return RefundResult(
            refund_id=refund["id"],
            status=refund["status"],
            amount=from_minor_units(refund.get("amount")),
        )

    def verify_and_parse_webhook(self, raw_payload: bytes, signature: str) -> WebhookEvent:
        if not signature or not self.webhook_secret:
            raise SignatureError("Missing webhook signature or secret")
        try:
            stripe.Webhook.construct_event(raw_payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature invalid: {e}")
            raise SignatureError("Webhook signature verification failed") from e
        except ValueError as e:
            raise ValidationError(f"Malformed webhook payload: {e}") from e

        return parse_event(raw_payload)
