from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session
from storefront.data.models.user import UserModel


class UserRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int) -> UserModel | None:
        #populate_existing - flagi zmieniane UPDATE-em poza ORM
        return self.db.get(UserModel, user_id, populate_existing=True)

    def credit_purchases(self, user_id: int, amount: Decimal) -> int:
        #UPDATE users SET total_purchases = total_purchases + :amount - atomowo w bazie
        res = self.db.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(total_purchases=UserModel.total_purchases + amount)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def grant_discount_eligibility(self, user_id: int, threshold: Decimal) -> int:
        #flaga jednokierunkowa, ustawiana tylko raz
        res = self.db.execute(
            update(UserModel)
            .where(
                UserModel.id == user_id,
                UserModel.total_purchases > threshold,
                UserModel.discount_eligible.is_(False),
            )
            .values(discount_eligible=True)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
