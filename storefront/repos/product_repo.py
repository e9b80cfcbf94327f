# storefront/repos/product_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel
from storefront.data.models.price_tier import PriceTierModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def read_stock(self, product_id: int, for_update: bool = False) -> int | None:
        #swiezy odczyt z bazy, bez cache sesji
        stmt = select(ProductModel.current_stock).where(ProductModel.id == product_id)
        if for_update:
            #postgres: blokada wiersza do konca transakcji, sqlite ignoruje
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_active_tiers(self, product_id: int) -> list[PriceTierModel]:
        return list(
            self.db.execute(
                select(PriceTierModel)
                .where(PriceTierModel.product_id == product_id, PriceTierModel.is_active.is_(True))
                .order_by(PriceTierModel.id)
            ).scalars().all()
        )

    def decrement_stock(self, product_id: int, quantity: int) -> int:
        """
        Warunkowy decrement: current_stock -= q tylko jesli wynik >= 0.
        Zwraca rowcount, 0 = ktos wykupil stan w miedzyczasie.
        """
        res = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.current_stock >= quantity)
            .values(
                current_stock=ProductModel.current_stock - quantity,
                total_sold=ProductModel.total_sold + quantity,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
