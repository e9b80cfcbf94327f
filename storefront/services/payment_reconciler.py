# storefront/services/payment_reconciler.py
from dataclasses import dataclass
from decimal import Decimal

from storefront.data.models.order import OrderModel
from storefront.domain.errors import (
    ConflictError,
    GatewayError,
    InvalidTransitionError,
    ValidationError,
)
from storefront.domain.status import OrderStatus
from storefront.payments.port import (
    ConfirmOutcome,
    GatewayUnavailable,
    IntentDetails,
    IntentStateConflict,
    PaymentGateway,
    RefundResult,
    Succeeded,
    WebhookEvent,
    outcome_from_details,
)
from storefront.services.order_fulfillment import OrderFulfillment, money
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"

# status >= confirmed - platnosc juz rozliczona
_PAID = frozenset({OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.DELIVERED})


@dataclass(frozen=True)
class ConfirmResult:
    order: OrderModel
    outcome: ConfirmOutcome
    already_confirmed: bool = False

    @property
    def confirmed(self) -> bool:
        return isinstance(self.outcome, Succeeded)


@dataclass(frozen=True)
class WebhookOutcome:
    event_type: str
    order_id: int | None
    action: str  # confirmed, cancelled, noop, paid_after_cancel, intent_mismatch, unknown_order, ignored


@dataclass(frozen=True)
class RefundOutcome:
    order: OrderModel
    refund: RefundResult


class PaymentReconciler:
    """
    Idempotentne potwierdzanie zamowien z dwoch sciezek naraz:
    - klient po zakonczeniu platnosci (confirm_order)
    - webhook od procesora (handle_webhook), moze przyjsc przed, po,
      rownolegle i wiecej niz raz

    Zadnego locka w pamieci - koordynacja tylko przez warunkowy zapis
    statusu w OrderFulfillment.transition (pending -> confirmed).
    Przegrany wyscig = ktos juz potwierdzil = sukces.
    """

    def __init__(self, fulfillment: OrderFulfillment, gateway: PaymentGateway):
        self.fulfillment = fulfillment
        self.orders = fulfillment.orders
        self.gateway = gateway

    # =====================================================
    # CLIENT PATH
    # =====================================================
    def confirm_order(self, order_id: int, intent_id: str, method_id: str | None = None) -> ConfirmResult:
        order = self.fulfillment.get_order(order_id)
        status = OrderStatus(order.status)

        if status in _PAID:
            logger.info(f"Order {order_id} is already {status.value}, skipping processor call")
            return ConfirmResult(order=order, outcome=Succeeded(order.payment_ref or intent_id), already_confirmed=True)
        if status != OrderStatus.PENDING:
            raise InvalidTransitionError(status.value, OrderStatus.CONFIRMED.value)
        if not order.payment_intent_id:
            #intent nie powstal przy create_order - najpierw open_payment
            raise ValidationError(f"Order {order_id} has no payment intent, open a payment first")
        if order.payment_intent_id != intent_id:
            raise ValidationError(f"Payment intent {intent_id} does not belong to order {order_id}")

        try:
            outcome = self.gateway.confirm_intent(intent_id, method_id)
        except IntentStateConflict as conflict:
            #intent juz po confirmie - liczy sie stan u procesora
            details = conflict.intent or self.gateway.retrieve_intent(intent_id)
            self._check_owner(details, order_id)
            logger.info(f"Intent {intent_id} not confirmable, processor status={details.status}")
            outcome = outcome_from_details(details)

        if isinstance(outcome, GatewayUnavailable):
            raise GatewayError(f"Payment processor unavailable: {outcome.reason}", order_id=order_id)

        if isinstance(outcome, Succeeded):
            return self._mark_paid(order_id, outcome.intent_id)

        #requires_action / declined - zamowienie zostaje pending
        logger.info(f"Order {order_id} payment not completed: {type(outcome).__name__}")
        return ConfirmResult(order=self.orders.reload(order_id), outcome=outcome)

    @staticmethod
    def _check_owner(details: IntentDetails, order_id: int) -> None:
        owner = details.metadata.get("order_id")
        if owner != str(order_id):
            logger.error(f"Intent {details.intent_id} belongs to order {owner}, not {order_id}")
            raise ValidationError(f"Payment intent {details.intent_id} does not belong to order {order_id}")

    def _mark_paid(self, order_id: int, intent_id: str) -> ConfirmResult:
        if self.fulfillment.transition(
            order_id, OrderStatus.PENDING, OrderStatus.CONFIRMED, payment_ref=intent_id
        ):
            return ConfirmResult(order=self.orders.reload(order_id), outcome=Succeeded(intent_id))

        latest = self.orders.reload(order_id)
        if OrderStatus(latest.status) in _PAID:
            logger.info(f"Order {order_id} confirmed concurrently (webhook won), treating as success")
            return ConfirmResult(order=latest, outcome=Succeeded(intent_id), already_confirmed=True)

        logger.error(f"Payment {intent_id} succeeded but order {order_id} is {latest.status}")
        raise InvalidTransitionError(latest.status, OrderStatus.CONFIRMED.value)

    # =====================================================
    # WEBHOOK PATH
    # =====================================================
    def handle_webhook(self, raw_payload: bytes, signature: str) -> WebhookOutcome:
        # SignatureError / ValidationError leca dalej, zadnych zmian stanu
        event = self.gateway.verify_and_parse_webhook(raw_payload, signature)
        logger.info(f"Webhook: {event.type} ({event.event_id})")

        if event.type == PAYMENT_SUCCEEDED:
            return self._on_succeeded(event)
        if event.type == PAYMENT_FAILED:
            return self._on_failed(event)

        logger.info(f"Unhandled event: {event.type}")
        return WebhookOutcome(event_type=event.type, order_id=None, action="ignored")

    def _locate(self, event: WebhookEvent) -> OrderModel | None:
        raw_id = event.metadata.get("order_id")
        if raw_id:
            try:
                order = self.orders.reload(int(raw_id))
            except ValueError:
                logger.warning(f"Webhook {event.event_id} has non-numeric order_id {raw_id!r}")
                order = None
            if order:
                return order
        if event.intent_id:
            return self.orders.get_by_payment_intent(event.intent_id)
        return None

    def _on_succeeded(self, event: WebhookEvent) -> WebhookOutcome:
        order = self._locate(event)
        if not order:
            logger.warning(f"No order for succeeded intent {event.intent_id}")
            return WebhookOutcome(event.type, None, "unknown_order")

        if order.payment_intent_id and event.intent_id and order.payment_intent_id != event.intent_id:
            logger.error(
                f"Succeeded intent {event.intent_id} is not the intent of order {order.id} "
                f"({order.payment_intent_id}), needs refund"
            )
            return WebhookOutcome(event.type, order.id, "intent_mismatch")

        if order.status == OrderStatus.PENDING.value and self.fulfillment.transition(
            order.id, OrderStatus.PENDING, OrderStatus.CONFIRMED, payment_ref=event.intent_id
        ):
            return WebhookOutcome(event.type, order.id, "confirmed")

        latest = self.orders.reload(order.id)
        if latest.status == OrderStatus.CANCELLED.value:
            #pieniadze pobrane na anulowane zamowienie - do zwrotu recznie
            logger.error(f"Payment {event.intent_id} succeeded for cancelled order {order.id}, needs refund")
            return WebhookOutcome(event.type, order.id, "paid_after_cancel")

        logger.info(f"Order {order.id} already {latest.status}, duplicate success event ignored")
        return WebhookOutcome(event.type, order.id, "noop")

    def _on_failed(self, event: WebhookEvent) -> WebhookOutcome:
        order = self._locate(event)
        if not order:
            logger.warning(f"No order for failed intent {event.intent_id}")
            return WebhookOutcome(event.type, None, "unknown_order")

        #spozniony albo zdublowany fail nie moze anulowac potwierdzonego zamowienia
        if order.status != OrderStatus.PENDING.value:
            logger.info(f"Order {order.id} is {order.status}, failure event ignored")
            return WebhookOutcome(event.type, order.id, "noop")

        if self.fulfillment.transition(order.id, OrderStatus.PENDING, OrderStatus.CANCELLED):
            return WebhookOutcome(event.type, order.id, "cancelled")
        return WebhookOutcome(event.type, order.id, "noop")

    # =====================================================
    # REFUND / DETAILS
    # =====================================================
    def refund_payment(self, order_id: int, amount: Decimal | None = None) -> RefundOutcome:
        order = self.fulfillment.get_order(order_id)
        if not order.payment_ref:
            raise ValidationError("No payment found for this order")

        current = OrderStatus(order.status)
        if current == OrderStatus.REFUNDED:
            raise InvalidTransitionError(current.value, OrderStatus.REFUNDED.value)

        if amount is not None:
            amount = money(amount)
            if amount <= 0 or amount > money(order.final_amount):
                raise ValidationError(f"Refund amount must be between 0.01 and {order.final_amount}")

        refund = self.gateway.refund(order.payment_ref, amount)
        logger.info(f"Refund {refund.refund_id} for order {order_id}: {refund.amount} ({refund.status})")

        fields = {"refund_ref": refund.refund_id, "refunded_amount": refund.amount}
        if not self.fulfillment.transition(order_id, current, OrderStatus.REFUNDED, **fields):
            #status zmienil sie miedzy odczytem a zapisem - jedna proba z aktualnego
            latest = OrderStatus(self.orders.reload(order_id).status)
            if latest == OrderStatus.REFUNDED or not self.fulfillment.transition(
                order_id, latest, OrderStatus.REFUNDED, **fields
            ):
                logger.error(f"Refund {refund.refund_id} issued but order {order_id} could not be marked refunded")
                raise ConflictError(f"Order {order_id} changed during refund {refund.refund_id}")

        # pozycje zamowienia zostaja bez zmian - to historia zakupu
        return RefundOutcome(order=self.orders.reload(order_id), refund=refund)

    def get_payment_details(self, order_id: int, user_id: int | None = None) -> tuple[OrderModel, IntentDetails]:
        order = self.fulfillment.get_order(order_id, user_id)
        intent_id = order.payment_ref or order.payment_intent_id
        if not intent_id:
            raise ValidationError("No payment found for this order")
        return order, self.gateway.retrieve_intent(intent_id)
