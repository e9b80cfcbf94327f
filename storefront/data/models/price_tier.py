from sqlalchemy import Column, Integer, ForeignKey, Numeric, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class PriceTierModel(Base):
    """Cena za sztuke dla przedzialu ilosci [batch_start, batch_end]."""

    __tablename__ = "price_tiers"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    batch_start = Column(Integer, nullable=False, default=1)
    batch_end = Column(Integer, nullable=True)  # None = bez gornej granicy
    price = Column(Numeric(10, 2), nullable=False)
    cost_price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    product = relationship("ProductModel", back_populates="tiers")

    __table_args__ = (
        # margin_percent dzieli przez cost_price
        CheckConstraint("cost_price > 0", name="ck_price_tiers_cost_positive"),
        CheckConstraint("price > cost_price", name="ck_price_tiers_price_above_cost"),
        CheckConstraint(
            "batch_end IS NULL OR batch_end > batch_start",
            name="ck_price_tiers_batch_range",
        ),
    )

    def contains(self, quantity: int) -> bool:
        if self.batch_end is not None:
            return self.batch_start <= quantity <= self.batch_end
        return quantity >= self.batch_start
