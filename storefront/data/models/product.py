from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    current_stock = Column(Integer, nullable=False, default=0)
    total_sold = Column(Integer, nullable=False, default=0)

    tiers = relationship("PriceTierModel", back_populates="product", order_by="PriceTierModel.id")

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
    )
