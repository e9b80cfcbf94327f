from datetime import timedelta
from decimal import Decimal

import pytest

from helpers import ALICE, BOB, BULK, CAROL, GADGET, PREMIUM, RETIRED, WIDGET, fresh, run_together, stock_of, user_row
from storefront.data.models import OrderModel, PriceTierModel, UserModel
from storefront.domain.errors import (
    ConflictError,
    EmptyCartError,
    GatewayError,
    InvalidTransitionError,
    NotFoundError,
    OutOfStockError,
    ValidationError,
)
from storefront.domain.status import OrderStatus
from storefront.repos.discount_repo import DiscountRepo
from storefront.services.order_fulfillment import OrderItem


def test_cart_checkout_scenario(cart, fulfillment, db, gateway):
    cart.add_item(ALICE, WIDGET, 3)

    placed = fulfillment.create_order(ALICE)

    order = placed.order
    assert order.total_amount == Decimal("30.00")
    assert order.discount_amount == Decimal("0.00")
    assert order.final_amount == Decimal("30.00")
    assert order.status == OrderStatus.PENDING.value

    lines = fulfillment.get_line_items(order.id)
    assert len(lines) == 1
    assert (lines[0].quantity, lines[0].unit_price, lines[0].total_price) == (3, Decimal("10.00"), Decimal("30.00"))

    assert tuple(stock_of(db, WIDGET)) == (7, 3)
    assert cart.list_active(ALICE) == []

    # procesor ma minimum 50 - kwota podbita w gore, zamowienie bez zmian
    assert placed.intent.amount == Decimal("50")
    assert fulfillment.get_order(order.id).payment_intent_id == placed.intent.intent_id
    assert gateway.calls[0]["metadata"] == {"order_id": str(order.id), "user_id": str(ALICE)}


def test_explicit_items_are_merged_and_priced_by_band(fulfillment, db):
    placed = fulfillment.create_order(
        ALICE, [OrderItem(BULK, 6), OrderItem(WIDGET, 1), OrderItem(BULK, 6)]
    )

    lines = {line.product_id: line for line in placed.line_items}
    assert lines[BULK].quantity == 12
    assert lines[BULK].unit_price == Decimal("4.00")
    assert placed.order.total_amount == Decimal("58.00")
    assert stock_of(db, BULK).current_stock == 88


def test_explicit_items_leave_active_cart_cleared(cart, fulfillment):
    cart.add_item(ALICE, BULK, 1)
    fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)])
    assert cart.list_active(ALICE) == []


def test_empty_cart_rejected(fulfillment):
    with pytest.raises(EmptyCartError):
        fulfillment.create_order(ALICE)


def test_expired_cart_entries_do_not_count(cart, fulfillment, clock):
    cart.add_item(ALICE, WIDGET, 1)
    clock.advance(seconds=300)
    with pytest.raises(EmptyCartError):
        fulfillment.create_order(ALICE)


def test_unknown_user_and_product(fulfillment):
    with pytest.raises(NotFoundError):
        fulfillment.create_order(404, [OrderItem(WIDGET, 1)])
    with pytest.raises(NotFoundError):
        fulfillment.create_order(ALICE, [OrderItem(RETIRED, 1)])


def test_out_of_stock_rolls_back_everything(cart, fulfillment, db):
    cart.add_item(ALICE, WIDGET, 1)

    with pytest.raises(OutOfStockError):
        fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1), OrderItem(GADGET, 2)])

    assert stock_of(db, WIDGET).current_stock == 10
    assert fresh(db, OrderModel) == []
    assert len(cart.list_active(ALICE)) == 1


def test_last_unit_sequential(make_fulfillment, session_factory, seed):
    first = make_fulfillment(session_factory())
    second = make_fulfillment(session_factory())

    first.create_order(ALICE, [OrderItem(GADGET, 1)])
    with pytest.raises(OutOfStockError):
        second.create_order(BOB, [OrderItem(GADGET, 1)])

    assert stock_of(session_factory(), GADGET).current_stock == 0


def test_last_unit_race_conditional_decrement(make_fulfillment, session_factory, seed, monkeypatch):
    """A widzi 1 sztuke, B kupuje ja zanim A zapisze - warunkowy decrement A nie przechodzi."""
    loser = make_fulfillment(session_factory())
    winner = make_fulfillment(session_factory())

    original = loser.products.read_stock
    raced = []

    def read_then_lose_race(product_id, for_update=False):
        stock = original(product_id, for_update=for_update)
        if not raced:
            raced.append(winner.create_order(BOB, [OrderItem(GADGET, 1)]))
        return stock

    monkeypatch.setattr(loser.products, "read_stock", read_then_lose_race)

    with pytest.raises(ConflictError):
        loser.create_order(ALICE, [OrderItem(GADGET, 1)])

    check = session_factory()
    assert tuple(stock_of(check, GADGET)) == (0, 1)
    orders = fresh(check, OrderModel)
    assert [o.user_id for o in orders] == [BOB]


def test_concurrent_orders_for_last_unit(make_fulfillment, session_factory, seed):
    alice = make_fulfillment(session_factory())
    bob = make_fulfillment(session_factory())

    results = run_together(
        lambda: alice.create_order(ALICE, [OrderItem(GADGET, 1)]),
        lambda: bob.create_order(BOB, [OrderItem(GADGET, 1)]),
    )

    placed = [r for r in results if not isinstance(r, Exception)]
    lost = [r for r in results if isinstance(r, Exception)]
    assert len(placed) == 1
    assert len(lost) == 1 and isinstance(lost[0], (OutOfStockError, ConflictError))

    check = session_factory()
    assert tuple(stock_of(check, GADGET)) == (0, 1)
    assert [o.id for o in fresh(check, OrderModel)] == [placed[0].order.id]


def test_abandoned_token_discount_consumed_once(fulfillment, db, clock):
    DiscountRepo(db).issue(ALICE, 10, clock.now + timedelta(hours=1))
    db.commit()

    first = fulfillment.create_order(ALICE, [OrderItem(PREMIUM, 1)]).order
    second = fulfillment.create_order(ALICE, [OrderItem(PREMIUM, 1)]).order

    assert (first.discount_amount, first.final_amount) == (Decimal("10.00"), Decimal("90.00"))
    assert second.discount_amount == Decimal("0.00")


def test_expired_token_ignored(fulfillment, db, clock):
    DiscountRepo(db).issue(ALICE, 10, clock.now - timedelta(seconds=1))
    db.commit()
    assert fulfillment.create_order(ALICE, [OrderItem(PREMIUM, 1)]).order.discount_amount == Decimal("0.00")


def test_discounts_are_additive(fulfillment, db, clock):
    db.get(UserModel, ALICE).discount_eligible = True
    DiscountRepo(db).issue(ALICE, 10, clock.now + timedelta(hours=1))
    db.commit()

    order = fulfillment.create_order(ALICE, [OrderItem(PREMIUM, 2)]).order

    assert order.total_amount == Decimal("200.00")
    assert order.discount_amount == Decimal("30.00")
    assert order.final_amount == order.total_amount - order.discount_amount


def test_stacked_discounts_above_total_rejected(make_fulfillment, db, clock):
    fulfillment = make_fulfillment(db, loyalty_percent=95)
    db.get(UserModel, ALICE).discount_eligible = True
    DiscountRepo(db).issue(ALICE, 10, clock.now + timedelta(hours=1))
    db.commit()

    with pytest.raises(ValidationError):
        fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)])

    assert stock_of(db, WIDGET).current_stock == 10
    assert fresh(db, OrderModel) == []


def test_gateway_failure_keeps_pending_order(fulfillment, gateway, db):
    gateway.configure(fail_create=True)

    with pytest.raises(GatewayError) as exc:
        fulfillment.create_order(ALICE, [OrderItem(WIDGET, 2)])

    order = fulfillment.get_order(exc.value.order_id)
    assert order.status == OrderStatus.PENDING.value
    assert order.payment_intent_id is None
    assert stock_of(db, WIDGET).current_stock == 8


def test_open_payment_after_gateway_failure(fulfillment, gateway, db):
    gateway.configure(fail_create=True)
    with pytest.raises(GatewayError) as exc:
        fulfillment.create_order(ALICE, [OrderItem(WIDGET, 2)])
    order_id = exc.value.order_id

    gateway.configure(fail_create=False)
    intent = fulfillment.open_payment(order_id, ALICE)

    order = fulfillment.get_order(order_id)
    assert order.payment_intent_id == intent.intent_id
    assert gateway.intents[intent.intent_id]["metadata"]["order_id"] == str(order_id)
    assert intent.amount == Decimal("50")
    assert stock_of(db, WIDGET).current_stock == 8

    with pytest.raises(ConflictError):
        fulfillment.open_payment(order_id, ALICE)


def test_open_payment_only_for_own_pending_order(fulfillment, gateway):
    gateway.configure(fail_create=True)
    with pytest.raises(GatewayError) as exc:
        fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)])
    order_id = exc.value.order_id
    gateway.configure(fail_create=False)

    with pytest.raises(NotFoundError):
        fulfillment.open_payment(order_id, BOB)

    fulfillment.update_order_status(order_id, "cancelled")
    with pytest.raises(ValidationError):
        fulfillment.open_payment(order_id, ALICE)
    assert gateway.count("create_intent") == 1


def test_addresses_are_stored_on_order(fulfillment):
    placed = fulfillment.create_order(
        ALICE,
        [OrderItem(WIDGET, 1)],
        shipping_address="ul. Dluga 1, Gdansk",
        billing_address="ul. Krotka 2, Sopot",
    )

    order = fulfillment.get_order(placed.order.id)
    assert order.shipping_address == "ul. Dluga 1, Gdansk"
    assert order.billing_address == "ul. Krotka 2, Sopot"
    assert fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)]).order.shipping_address is None


def _confirmed_order(fulfillment, items):
    order = fulfillment.create_order(ALICE, items).order
    assert fulfillment.transition(order.id, OrderStatus.PENDING, OrderStatus.CONFIRMED)
    return order


def test_status_lifecycle_sends_notifications(fulfillment, notifier):
    order = _confirmed_order(fulfillment, [OrderItem(WIDGET, 1)])

    fulfillment.update_order_status(order.id, "shipped", actor_id=9)
    updated = fulfillment.update_order_status(order.id, "delivered", actor_id=9)

    assert updated.status == "delivered"
    assert notifier.templates() == ["order_confirmed", "order_shipped", "order_delivered"]
    assert notifier.sent[0]["to"] == "alice@example.com"
    assert notifier.sent[1]["payload"]["previous_status"] == "confirmed"


@pytest.mark.parametrize("target", ["shipped", "delivered", "refunded", "pending"])
def test_invalid_transitions_from_pending(fulfillment, target):
    order = fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)]).order
    with pytest.raises(InvalidTransitionError):
        fulfillment.update_order_status(order.id, target)
    assert fulfillment.get_order(order.id).status == "pending"


def test_cancelled_is_terminal(fulfillment):
    order = fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)]).order
    fulfillment.update_order_status(order.id, "cancelled")
    with pytest.raises(InvalidTransitionError):
        fulfillment.update_order_status(order.id, "confirmed")


def test_unknown_status_and_order(fulfillment):
    order = fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)]).order
    with pytest.raises(ValidationError):
        fulfillment.update_order_status(order.id, "lost")
    with pytest.raises(NotFoundError):
        fulfillment.update_order_status(999, "confirmed")


def test_stale_transition_is_refused(fulfillment):
    order = fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)]).order
    assert fulfillment.transition(order.id, OrderStatus.PENDING, OrderStatus.CANCELLED)
    assert not fulfillment.transition(order.id, OrderStatus.PENDING, OrderStatus.CONFIRMED)
    assert fulfillment.get_order(order.id).status == "cancelled"


def test_notification_failure_does_not_undo_transition(make_fulfillment, db, failing_notifier):
    fulfillment = make_fulfillment(db, notifier=failing_notifier)
    order = fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)]).order

    assert fulfillment.transition(order.id, OrderStatus.PENDING, OrderStatus.CONFIRMED)

    assert failing_notifier.attempts == 1
    assert fulfillment.get_order(order.id).status == "confirmed"


def test_user_without_email_gets_no_notification(fulfillment, notifier):
    order = fulfillment.create_order(CAROL, [OrderItem(WIDGET, 1)]).order
    fulfillment.update_order_status(order.id, "confirmed")
    assert notifier.sent == []


def test_loyalty_credit_and_threshold(fulfillment, db):
    db.get(UserModel, ALICE).total_purchases = Decimal("950.00")
    db.commit()

    order = _confirmed_order(fulfillment, [OrderItem(PREMIUM, 1)])

    assert order.final_amount == Decimal("100.00")
    total, eligible = user_row(db, ALICE)
    assert total == Decimal("1050.00")
    assert eligible is True

    # kolejne zamowienie dostaje 5%
    next_order = fulfillment.create_order(ALICE, [OrderItem(PREMIUM, 1)]).order
    assert next_order.discount_amount == Decimal("5.00")


def test_cancelled_order_is_not_credited(fulfillment, db):
    order = fulfillment.create_order(ALICE, [OrderItem(PREMIUM, 1)]).order
    fulfillment.update_order_status(order.id, "cancelled")
    assert user_row(db, ALICE).total_purchases == Decimal("0.00")


def test_list_user_orders_pages(fulfillment):
    for _ in range(3):
        fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)])
    fulfillment.create_order(BOB, [OrderItem(WIDGET, 1)])

    page = fulfillment.list_user_orders(ALICE, page=1, limit=2)

    assert page.total_orders == 3
    assert page.total_pages == 2
    assert all(o.user_id == ALICE for o in page.orders)
    with pytest.raises(NotFoundError):
        fulfillment.get_order(page.orders[0].id, user_id=BOB)


def test_order_snapshot_not_repriced(fulfillment, db):
    order = fulfillment.create_order(ALICE, [OrderItem(WIDGET, 1)]).order
    db.query(PriceTierModel).filter_by(product_id=WIDGET).update({"price": Decimal("12.00")})
    db.commit()

    assert fulfillment.get_line_items(order.id)[0].unit_price == Decimal("10.00")
