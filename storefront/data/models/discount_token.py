from sqlalchemy import Column, Integer, ForeignKey, DateTime

from storefront.data.database import Base


class DiscountTokenModel(Base):
    """Jednorazowy rabat za porzucony koszyk, zuzywany przez nastepne zamowienie."""

    __tablename__ = "discount_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    percent = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
