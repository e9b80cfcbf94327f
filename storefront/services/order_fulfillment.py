# storefront/services/order_fulfillment.py
import math
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_line_item import OrderLineItemModel
from storefront.domain.errors import (
    ConflictError,
    EmptyCartError,
    GatewayError,
    InvalidTransitionError,
    NotFoundError,
    OutOfStockError,
    ValidationError,
)
from storefront.domain.status import NOTIFICATION_TEMPLATES, OrderStatus, can_transition
from storefront.payments import get_gateway
from storefront.payments.port import IntentHandle, PaymentGateway
from storefront.repos.cart_repo import CartRepo
from storefront.repos.discount_repo import DiscountRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.notification_service import NotificationSender
from storefront.services.price_book import PriceBook, PriceQuote
from storefront.utils.clock import Clock, utcnow
from storefront.utils.logging import get_logger
from storefront.utils.settings import LOYALTY_DISCOUNT_PERCENT, LOYALTY_THRESHOLD

logger = get_logger(__name__)

_CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(value).quantize(_CENT)


@dataclass(frozen=True)
class OrderItem:
    product_id: int
    quantity: int


@dataclass
class PlacedOrder:
    order: OrderModel
    line_items: list[OrderLineItemModel]
    intent: IntentHandle


@dataclass
class OrderPage:
    orders: list[OrderModel]
    total_pages: int
    current_page: int
    total_orders: int


@dataclass(frozen=True)
class _PricedLine:
    product_id: int
    quantity: int
    quote: PriceQuote

    @property
    def total(self) -> Decimal:
        return money(self.quote.unit_price * self.quantity)


class OrderFulfillment:
    """
    Serwis odpowiedzialny za domene zamowien.

    create_order zamienia koszyk (albo jawna liste pozycji) w niezmienne
    zamowienie: zamowienie + pozycje + warunkowe zdjecie stanu + czyszczenie
    koszyka + zuzycie tokenu rabatowego to jedna transakcja.
    transition() to jedyny zapis statusu (compare-and-set), korzysta z niego
    tez PaymentReconciler.
    """

    def __init__(
        self,
        db: Session,
        notifier: NotificationSender,
        gateway_for: Callable[[str | None], PaymentGateway] = get_gateway,
        clock: Clock = utcnow,
        price_book: PriceBook | None = None,
        loyalty_percent: int = LOYALTY_DISCOUNT_PERCENT,
        loyalty_threshold: int = LOYALTY_THRESHOLD,
    ):
        self.db = db
        self.orders = OrderRepo(db)
        self.products = ProductRepo(db)
        self.carts = CartRepo(db)
        self.discounts = DiscountRepo(db)
        self.users = UserRepo(db)
        self.price_book = price_book or PriceBook(db)
        self.notifier = notifier
        self.gateway_for = gateway_for
        self.clock = clock
        self.loyalty_percent = Decimal(loyalty_percent)
        self.loyalty_threshold = Decimal(loyalty_threshold)

    # =====================================================
    # CREATE
    # =====================================================
    def create_order(
        self,
        user_id: int,
        explicit_items: Iterable[OrderItem] | None = None,
        payment_method: str | None = None,
        shipping_address: str | None = None,
        billing_address: str | None = None,
    ) -> PlacedOrder:
        user = self.users.get_user(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        items = self._source_items(user_id, explicit_items)
        addresses = {"shipping_address": shipping_address, "billing_address": billing_address}

        try:
            order, line_items = self._place(user_id, bool(user.discount_eligible), items, addresses)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Order {order.id} created for user {user_id}: total={order.total_amount} "
            f"discount={order.discount_amount} final={order.final_amount}"
        )

        intent = self._open_intent(order, payment_method)
        return PlacedOrder(order=order, line_items=line_items, intent=intent)

    def open_payment(self, order_id: int, user_id: int | None = None, payment_method: str | None = None) -> IntentHandle:
        """
        Ponowne otwarcie platnosci dla zamowienia, ktorego intent nie powstal
        przy create_order (GatewayError.order_id). Stan i koszyk juz zdjete,
        wiec tylko pending bez intentu.
        """
        order = self.get_order(order_id, user_id)
        if order.status != OrderStatus.PENDING.value:
            raise ValidationError(f"Order {order_id} is {order.status}, payment can be opened only for pending orders")
        if order.payment_intent_id:
            raise ConflictError(f"Order {order_id} already has payment intent {order.payment_intent_id}")
        return self._open_intent(order, payment_method)

    def _source_items(self, user_id: int, explicit_items: Iterable[OrderItem] | None) -> list[OrderItem]:
        if explicit_items is not None:
            source = list(explicit_items)
        else:
            source = [
                OrderItem(product_id=e.product_id, quantity=e.quantity)
                for e in self.carts.list_active(user_id, self.clock())
            ]

        if not source:
            raise EmptyCartError("Cart is empty")

        #ten sam produkt dwa razy -> jedna pozycja, jeden warunkowy decrement
        merged: OrderedDict[int, int] = OrderedDict()
        for item in source:
            if item.quantity <= 0:
                raise ValidationError(f"Quantity for product {item.product_id} must be greater than 0")
            merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
        return [OrderItem(product_id=p, quantity=q) for p, q in merged.items()]

    def _place(self, user_id: int, discount_eligible: bool, items: list[OrderItem], addresses: dict):
        now = self.clock()

        priced: list[_PricedLine] = []
        # blokady wierszy zawsze w tej samej kolejnosci
        for item in sorted(items, key=lambda i: i.product_id):
            product = self.products.get_product(item.product_id)
            if not product or not product.is_active:
                raise NotFoundError(f"Product {item.product_id} not available")

            quote = self.price_book.quote(item.product_id, item.quantity)

            stock = self.products.read_stock(item.product_id, for_update=True)
            if stock < item.quantity:
                raise OutOfStockError(item.product_id, item.quantity, stock)

            priced.append(_PricedLine(item.product_id, item.quantity, quote))

        total = money(sum((line.total for line in priced), Decimal("0")))

        token = self.discounts.get_valid_token(user_id, now)
        discount = Decimal("0.00")
        if token:
            discount += money(total * Decimal(token.percent) / 100)
        if discount_eligible:
            discount += money(total * self.loyalty_percent / 100)
        discount = money(discount)

        final = total - discount
        if final < 0:
            #bez clampowania - ujemna kwota to blad konfiguracji rabatow
            raise ValidationError(f"Combined discounts {discount} exceed order total {total}")

        order = OrderModel(
            user_id=user_id,
            total_amount=total,
            discount_amount=discount,
            final_amount=money(final),
            status=OrderStatus.PENDING.value,
            **addresses,
            created_at=now,
            updated_at=now,
        )
        line_items = [
            OrderLineItemModel(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.quote.unit_price,
                total_price=line.total,
                price_tier_id=line.quote.tier_id,
            )
            for line in priced
        ]
        self.orders.add_order(order, line_items)

        for line in priced:
            if not self.products.decrement_stock(line.product_id, line.quantity):
                raise ConflictError(f"Stock for product {line.product_id} changed concurrently, retry the order")

        cleared = self.carts.clear_active(user_id)

        if token and not self.discounts.consume(token.id):
            raise ConflictError("Discount token was already used by another order")

        logger.info(f"Order for user {user_id}: {len(priced)} lines, cleared {cleared} cart entries")
        return order, line_items

    def _open_intent(self, order: OrderModel, payment_method: str | None) -> IntentHandle:
        gateway = self.gateway_for(payment_method)
        metadata = {"order_id": str(order.id), "user_id": str(order.user_id)}
        try:
            intent = gateway.create_intent(money(order.final_amount), metadata)
        except GatewayError as e:
            #zamowienie zostaje pending, bez intentu - open_payment ponawia
            logger.error(f"Payment intent for order {order.id} failed: {e}")
            raise GatewayError(f"Failed to create payment intent for order {order.id}", order_id=order.id) from e

        try:
            attached = self.orders.attach_intent(order.id, intent.intent_id)
            if attached:
                self.db.commit()
            else:
                self.db.rollback()
        except Exception:
            self.db.rollback()
            raise
        if not attached:
            logger.warning(f"Order {order.id} changed before intent {intent.intent_id} was attached, intent left unused")
            raise ConflictError(f"Order {order.id} is no longer awaiting payment")

        order.payment_intent_id = intent.intent_id
        logger.info(f"Payment intent {intent.intent_id} opened for order {order.id}: {intent.amount} {intent.currency}")
        return intent

    # =====================================================
    # STATUS
    # =====================================================
    def update_order_status(self, order_id: int, new_status: str, actor_id: int | None = None) -> OrderModel:
        try:
            target = OrderStatus(new_status)
        except ValueError as e:
            raise ValidationError(f"Unknown order status: {new_status}") from e

        order = self.orders.reload(order_id)
        if not order:
            raise NotFoundError("Order not found")

        current = OrderStatus(order.status)
        if not can_transition(current, target):
            raise InvalidTransitionError(current.value, target.value)

        if not self.transition(order_id, current, target, actor_id=actor_id):
            latest = self.orders.reload(order_id)
            raise ConflictError(
                f"Order {order_id} changed concurrently ({current.value} -> {latest.status}), retry"
            )

        return self.orders.reload(order_id)

    def transition(
        self,
        order_id: int,
        from_status: OrderStatus,
        to_status: OrderStatus,
        actor_id: int | None = None,
        **fields,
    ) -> bool:
        """
        Warunkowy zapis statusu: UPDATE ... WHERE status = from_status.
        False = inny writer zmienil status pierwszy (nic nie zapisano).
        Skutki wejscia w status (lojalnosc) ida w tej samej transakcji,
        powiadomienie dopiero po commicie i nigdy nie cofa zmiany.
        """
        try:
            if not self.orders.compare_and_set_status(order_id, from_status.value, to_status.value, **fields):
                self.db.rollback()
                logger.warning(f"Order {order_id} is no longer {from_status.value}, {to_status.value} not applied")
                return False

            order = self.orders.reload(order_id)
            if to_status == OrderStatus.CONFIRMED:
                self._credit_loyalty(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        by = f" by {actor_id}" if actor_id is not None else ""
        logger.info(f"Order {order_id}: {from_status.value} -> {to_status.value}{by}")
        self._notify(order, from_status, to_status)
        return True

    def _credit_loyalty(self, order: OrderModel) -> None:
        amount = money(order.final_amount)
        self.users.credit_purchases(order.user_id, amount)
        if self.users.grant_discount_eligibility(order.user_id, self.loyalty_threshold):
            logger.info(f"User {order.user_id} crossed {self.loyalty_threshold} in purchases, loyalty discount enabled")

    def _notify(self, order: OrderModel, previous: OrderStatus, status: OrderStatus) -> None:
        user = self.users.get_user(order.user_id)
        if not user or not user.email:
            logger.info(f"User {order.user_id} has no email, skipping {status.value} notification")
            return

        template = NOTIFICATION_TEMPLATES.get(status, "order_status_update")
        payload = {
            "order_id": order.id,
            "status": status.value,
            "previous_status": previous.value,
            "final_amount": str(order.final_amount),
        }
        try:
            self.notifier.send(user.email, template, payload)
            logger.info(f"Email ({status.value}) queued for {user.email}, order {order.id}")
        except Exception as e:
            #powiadomienie nigdy nie cofa zmiany statusu
            logger.error(f"Email sending failed for order {order.id}: {e}")

    # =====================================================
    # QUERY
    # =====================================================
    def get_order(self, order_id: int, user_id: int | None = None) -> OrderModel:
        order = self.orders.reload(order_id)
        if not order or (user_id is not None and order.user_id != user_id):
            raise NotFoundError("Order not found")
        return order

    def get_line_items(self, order_id: int) -> list[OrderLineItemModel]:
        return self.orders.get_line_items(order_id)

    def list_user_orders(self, user_id: int, page: int = 1, limit: int = 10) -> OrderPage:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        total = self.orders.count_user_orders(user_id)
        orders = self.orders.page_user_orders(user_id, offset=(page - 1) * limit, limit=limit)
        return OrderPage(
            orders=orders,
            total_pages=math.ceil(total / limit),
            current_page=page,
            total_orders=total,
        )
