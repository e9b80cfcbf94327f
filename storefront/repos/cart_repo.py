# storefront/repos/cart_repo.py
from datetime import datetime

from sqlalchemy import select, update, delete, func
from sqlalchemy.orm import Session

from storefront.data.models.cart_entry import CartEntryModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_entry(self, entry_id: int) -> CartEntryModel | None:
        return self.db.get(CartEntryModel, entry_id, populate_existing=True)

    def get_active_entry(self, user_id: int, product_id: int) -> CartEntryModel | None:
        return self.db.execute(
            select(CartEntryModel).where(
                CartEntryModel.user_id == user_id,
                CartEntryModel.product_id == product_id,
                CartEntryModel.abandoned.is_(False),
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_abandoned_entry(self, user_id: int, product_id: int) -> CartEntryModel | None:
        return self.db.execute(
            select(CartEntryModel)
            .where(
                CartEntryModel.user_id == user_id,
                CartEntryModel.product_id == product_id,
                CartEntryModel.abandoned.is_(True),
            )
            .order_by(CartEntryModel.id)
            .limit(1)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def increment_active(self, entry_id: int, quantity: int, expires_at: datetime) -> int:
        #quantity = quantity + q w bazie, bez read-modify-write w pythonie
        res = self.db.execute(
            update(CartEntryModel)
            .where(CartEntryModel.id == entry_id, CartEntryModel.abandoned.is_(False))
            .values(
                quantity=CartEntryModel.quantity + quantity,
                expires_at=expires_at,
                notified=False,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def resurrect(self, entry_id: int, quantity: int, expires_at: datetime) -> int:
        res = self.db.execute(
            update(CartEntryModel)
            .where(CartEntryModel.id == entry_id, CartEntryModel.abandoned.is_(True))
            .values(quantity=quantity, expires_at=expires_at, notified=False, abandoned=False)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def delete_ids(self, entry_ids: list[int]) -> int:
        if not entry_ids:
            return 0
        res = self.db.execute(
            delete(CartEntryModel)
            .where(CartEntryModel.id.in_(entry_ids))
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def add_entry(self, entry: CartEntryModel) -> CartEntryModel:
        self.db.add(entry)
        self.db.flush()
        return entry

    def delete_entry(self, entry: CartEntryModel) -> None:
        self.db.delete(entry)
        self.db.flush()

    def list_active(self, user_id: int, now: datetime) -> list[CartEntryModel]:
        return list(
            self.db.execute(
                select(CartEntryModel)
                .where(
                    CartEntryModel.user_id == user_id,
                    CartEntryModel.abandoned.is_(False),
                    CartEntryModel.expires_at > now,
                )
                .order_by(CartEntryModel.id)
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def list_abandoned(self, user_id: int) -> list[CartEntryModel]:
        return list(
            self.db.execute(
                select(CartEntryModel)
                .where(CartEntryModel.user_id == user_id, CartEntryModel.abandoned.is_(True))
                .order_by(CartEntryModel.id)
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def count_all_abandoned(self) -> int:
        return self.db.execute(
            select(func.count(CartEntryModel.id)).where(CartEntryModel.abandoned.is_(True))
        ).scalar_one()

    def page_all_abandoned(self, offset: int, limit: int) -> list[CartEntryModel]:
        return list(
            self.db.execute(
                select(CartEntryModel)
                .where(CartEntryModel.abandoned.is_(True))
                .order_by(CartEntryModel.expires_at.asc(), CartEntryModel.id)
                .offset(offset)
                .limit(limit)
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def list_expired_unnotified(self, now: datetime) -> list[CartEntryModel]:
        return list(
            self.db.execute(
                select(CartEntryModel)
                .where(
                    CartEntryModel.expires_at < now,
                    CartEntryModel.notified.is_(False),
                    CartEntryModel.abandoned.is_(False),
                )
                .order_by(CartEntryModel.user_id, CartEntryModel.id)
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def mark_abandoned(self, entry_ids: list[int], now: datetime) -> list[int]:
        """
        abandoned=true, notified=true tylko dla wpisow nadal wygaslych.
        Wpis odswiezony przez usera w trakcie sweepu zostaje aktywny.
        Zwraca id faktycznie oznaczonych.
        """
        marked = []
        for entry_id in entry_ids:
            res = self.db.execute(
                update(CartEntryModel)
                .where(
                    CartEntryModel.id == entry_id,
                    CartEntryModel.abandoned.is_(False),
                    CartEntryModel.notified.is_(False),
                    CartEntryModel.expires_at < now,
                )
                .values(abandoned=True, notified=True)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount:
                marked.append(entry_id)
        return marked

    def reactivate(self, entry_ids: list[int], expires_at: datetime) -> int:
        if not entry_ids:
            return 0
        res = self.db.execute(
            update(CartEntryModel)
            .where(CartEntryModel.id.in_(entry_ids), CartEntryModel.abandoned.is_(True))
            .values(abandoned=False, notified=False, expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def clear_active(self, user_id: int) -> int:
        #caly aktywny koszyk usera, nie tylko zamawiane pozycje
        res = self.db.execute(
            delete(CartEntryModel)
            .where(CartEntryModel.user_id == user_id, CartEntryModel.abandoned.is_(False))
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def purge_abandoned(self, older_than: datetime) -> int:
        res = self.db.execute(
            delete(CartEntryModel)
            .where(CartEntryModel.abandoned.is_(True), CartEntryModel.expires_at < older_than)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
