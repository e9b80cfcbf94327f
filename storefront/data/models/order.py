from decimal import Decimal
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, Text, DateTime, Numeric, CheckConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    total_amount = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    final_amount = Column(Numeric(12, 2), nullable=False)

    # pending, confirmed, shipped, delivered, cancelled, refunded
    status = Column(String, nullable=False, default="pending", index=True)

    payment_intent_id = Column(String, nullable=True, index=True)
    payment_ref = Column(String, nullable=True)
    refund_ref = Column(String, nullable=True)
    refunded_amount = Column(Numeric(12, 2), nullable=True)

    shipping_address = Column(Text, nullable=True)
    billing_address = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    line_items = relationship("OrderLineItemModel", back_populates="order", order_by="OrderLineItemModel.id")

    __table_args__ = (
        CheckConstraint("final_amount >= 0", name="ck_orders_final_non_negative"),
        CheckConstraint("discount_amount <= total_amount", name="ck_orders_discount_le_total"),
    )
