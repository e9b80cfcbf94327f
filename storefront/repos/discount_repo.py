# storefront/repos/discount_repo.py
from datetime import datetime

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from storefront.data.models.discount_token import DiscountTokenModel


class DiscountRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_valid_token(self, user_id: int, now: datetime) -> DiscountTokenModel | None:
        return self.db.execute(
            select(DiscountTokenModel).where(
                DiscountTokenModel.user_id == user_id,
                DiscountTokenModel.expires_at > now,
            )
        ).scalar_one_or_none()

    def issue(self, user_id: int, percent: int, expires_at: datetime) -> DiscountTokenModel:
        #jeden token na usera - ponowne wydanie odswieza TTL
        token = self.db.execute(
            select(DiscountTokenModel).where(DiscountTokenModel.user_id == user_id)
        ).scalar_one_or_none()
        if token is None:
            token = DiscountTokenModel(user_id=user_id, percent=percent, expires_at=expires_at)
            self.db.add(token)
        else:
            token.percent = percent
            token.expires_at = expires_at
        self.db.flush()
        return token

    def consume(self, token_id: int) -> int:
        res = self.db.execute(
            delete(DiscountTokenModel)
            .where(DiscountTokenModel.id == token_id)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
