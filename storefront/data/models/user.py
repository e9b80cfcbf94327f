from decimal import Decimal

from sqlalchemy import Column, Integer, String, Boolean, Numeric
from storefront.data.database import Base


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(String, nullable=False, default="user")  # user, admin

    #lojalnosc - suma potwierdzonych zamowien, flaga jednokierunkowa
    total_purchases = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    discount_eligible = Column(Boolean, nullable=False, default=False)
