# storefront/repos/order_repo.py
from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_line_item import OrderLineItemModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel, items: list[OrderLineItemModel]) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        for item in items:
            item.order_id = order.id
            self.db.add(item)
        self.db.flush()
        return order

    def reload(self, order_id: int) -> OrderModel | None:
        #populate_existing - nadpisz stan z identity map tym co jest w bazie
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_payment_intent(self, intent_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.payment_intent_id == intent_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_line_items(self, order_id: int) -> list[OrderLineItemModel]:
        return list(
            self.db.execute(
                select(OrderLineItemModel)
                .where(OrderLineItemModel.order_id == order_id)
                .order_by(OrderLineItemModel.id)
            ).scalars().all()
        )

    def count_user_orders(self, user_id: int) -> int:
        return self.db.execute(
            select(func.count(OrderModel.id)).where(OrderModel.user_id == user_id)
        ).scalar_one()

    def page_user_orders(self, user_id: int, offset: int, limit: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
                .offset(offset)
                .limit(limit)
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def compare_and_set_status(self, order_id: int, expected: str, new: str, **fields) -> int:
        """
        UPDATE orders SET status = :new WHERE id = :id AND status = :expected
        Jedyny zapis statusu - rowcount 0 = inny writer byl pierwszy.
        """
        res = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == expected)
            .values(status=new, **fields)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def attach_intent(self, order_id: int, intent_id: str) -> int:
        #tylko pending bez intentu - drugi rownolegly open_payment dostaje 0
        res = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.status == "pending",
                OrderModel.payment_intent_id.is_(None),
            )
            .values(payment_intent_id=intent_id)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
