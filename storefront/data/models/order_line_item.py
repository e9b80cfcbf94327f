from sqlalchemy import Column, Integer, ForeignKey, Numeric
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class OrderLineItemModel(Base):
    """Snapshot ceny z chwili zakupu, nigdy nie przeliczany."""

    __tablename__ = "order_line_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    price_tier_id = Column(Integer, ForeignKey("price_tiers.id"), nullable=True)

    order = relationship("OrderModel", back_populates="line_items")
