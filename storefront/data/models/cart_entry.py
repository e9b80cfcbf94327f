#storefront/data/models/cart_entry.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Boolean, Index, false

from storefront.data.database import Base


class CartEntryModel(Base):
    __tablename__ = "cart_entries"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)
    added_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    notified = Column(Boolean, nullable=False, default=False)
    abandoned = Column(Boolean, nullable=False, default=False, index=True)

    __table_args__ = (
        #unikalnosc (user, product) tylko wsrod nieporzuconych wpisow
        Index(
            "u_cart_entries_user_product_active",
            "user_id",
            "product_id",
            unique=True,
            postgresql_where=(abandoned == false()),
            sqlite_where=(abandoned == false()),
        ),
    )
