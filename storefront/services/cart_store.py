# storefront/services/cart_store.py
import math
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.cart_entry import CartEntryModel
from storefront.domain.errors import ConflictError, NotFoundError, OutOfStockError, ValidationError
from storefront.repos.cart_repo import CartRepo
from storefront.repos.discount_repo import DiscountRepo
from storefront.repos.product_repo import ProductRepo
from storefront.utils.clock import Clock, utcnow
from storefront.utils.logging import get_logger
from storefront.utils.retry import conflict_retry
from storefront.utils.settings import (
    ABANDONED_DISCOUNT_PERCENT,
    ABANDONED_DISCOUNT_TTL_SECONDS,
    CART_TTL_SECONDS,
)

logger = get_logger(__name__)


@dataclass
class CartPage:
    entries: list[CartEntryModel]
    total_pages: int
    current_page: int
    total_entries: int


@dataclass(frozen=True)
class WinBack:
    percent: int
    restored: int


class CartStore:
    """
    Koszyk = wpisy (user, product) z TTL.
    commands (add, update, remove, restore) modyfikuja stan i commituja,
    query (list_*) tylko odczyt.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        ttl_seconds: int = CART_TTL_SECONDS,
    ):
        self.db = db
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)
        self.discounts = DiscountRepo(db)
        self.clock = clock
        self.ttl_seconds = ttl_seconds

    def _expiry(self):
        return self.clock() + timedelta(seconds=self.ttl_seconds)

    def _check_available(self, product_id: int, quantity: int) -> None:
        product = self.products.get_product(product_id)
        if not product or not product.is_active:
            raise NotFoundError(f"Product {product_id} not available")

        #miekki check - przy zamowieniu i tak sprawdzamy jeszcze raz
        stock = self.products.read_stock(product_id)
        if stock < quantity:
            raise OutOfStockError(product_id, quantity, stock)

    def _owned_entry(self, user_id: int, entry_id: int) -> CartEntryModel:
        entry = self.repo.get_entry(entry_id)
        if not entry or entry.user_id != user_id or entry.abandoned:
            raise NotFoundError("Cart item not found")
        return entry

    #query
    def list_active(self, user_id: int) -> list[CartEntryModel]:
        return self.repo.list_active(user_id, self.clock())

    def list_abandoned(self, user_id: int) -> list[CartEntryModel]:
        return self.repo.list_abandoned(user_id)

    def list_all_abandoned(self, page: int = 1, limit: int = 10) -> CartPage:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        total = self.repo.count_all_abandoned()
        entries = self.repo.page_all_abandoned(offset=(page - 1) * limit, limit=limit)
        return CartPage(
            entries=entries,
            total_pages=math.ceil(total / limit),
            current_page=page,
            total_entries=total,
        )

    #commands
    def add_item(self, user_id: int, product_id: int, quantity: int) -> CartEntryModel:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        self._check_available(product_id, quantity)

        try:
            entry_id = self._upsert(user_id, product_id, quantity)
        except IntegrityError as e:
            raise ConflictError(f"Could not add product {product_id} to cart, try again") from e

        return self.repo.get_entry(entry_id)

    @conflict_retry()
    def _upsert(self, user_id: int, product_id: int, quantity: int) -> int:
        """
        Jeden przebieg upsertu w osobnej transakcji.
        Wyscig na insert konczy sie IntegrityError na indeksie unikalnym,
        wtedy rollback i conflict_retry powtarza caly przebieg.
        """
        expires = self._expiry()
        try:
            active = self.repo.get_active_entry(user_id, product_id)
            if active:
                if not self.repo.increment_active(active.id, quantity, expires):
                    raise ConflictError("Cart entry changed concurrently")
                entry_id = active.id
                logger.info(f"Product {product_id} already in cart of user {user_id}, quantity +{quantity}")
            else:
                abandoned = self.repo.get_abandoned_entry(user_id, product_id)
                if abandoned:
                    #powrot z porzuconego koszyka
                    if not self.repo.resurrect(abandoned.id, quantity, expires):
                        raise ConflictError("Cart entry changed concurrently")
                    entry_id = abandoned.id
                    logger.info(f"Restored abandoned cart entry {entry_id} for user {user_id}")
                else:
                    created = self.repo.add_entry(
                        CartEntryModel(
                            user_id=user_id,
                            product_id=product_id,
                            quantity=quantity,
                            added_at=self.clock(),
                            expires_at=expires,
                            notified=False,
                            abandoned=False,
                        )
                    )
                    entry_id = created.id
                    logger.info(f"Added product {product_id} to cart of user {user_id}")

            self.repo.commit()
            return entry_id
        except (IntegrityError, ConflictError) as e:
            self.repo.rollback()
            logger.warning(f"Cart upsert conflict for user {user_id} product {product_id}: {e}")
            raise
        except Exception:
            self.repo.rollback()
            raise

    def update_quantity(self, user_id: int, entry_id: int, quantity: int) -> CartEntryModel:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        entry = self._owned_entry(user_id, entry_id)
        self._check_available(entry.product_id, quantity)

        entry.quantity = quantity
        entry.expires_at = self._expiry()
        entry.notified = False
        entry.abandoned = False
        self.repo.commit()

        logger.info(f"Cart entry {entry_id} quantity set to {quantity}")
        return self.repo.get_entry(entry_id)

    def remove(self, user_id: int, entry_id: int) -> None:
        entry = self._owned_entry(user_id, entry_id)
        self.repo.delete_entry(entry)
        self.repo.commit()
        logger.info(f"Removed cart entry {entry_id} of user {user_id}")

    def restore_abandoned(self, user_id: int, product_id: int | None = None) -> int:
        try:
            restored = self._restore(user_id, product_id)
            self.repo.commit()
        except IntegrityError as e:
            self.repo.rollback()
            raise ConflictError("Cart changed while restoring abandoned entries") from e

        logger.info(f"Restored {restored} abandoned cart items for user {user_id}")
        return restored

    def _restore(self, user_id: int, product_id: int | None) -> int:
        expires = self._expiry()
        entries = [
            e for e in self.repo.list_abandoned(user_id)
            if product_id is None or e.product_id == product_id
        ]

        restored = 0
        for entry in entries:
            active = self.repo.get_active_entry(user_id, entry.product_id)
            if active:
                #juz jest aktywny wpis na ten produkt - doliczamy ilosc i kasujemy porzucony
                self.repo.increment_active(active.id, entry.quantity, expires)
                self.repo.delete_ids([entry.id])
            else:
                self.repo.reactivate([entry.id], expires)
            restored += 1
        return restored

    def claim_win_back_discount(self, user_id: int) -> WinBack:
        """Rabat za porzucony koszyk: token na nastepne zamowienie + przywrocenie pozycji."""
        if not self.repo.list_abandoned(user_id):
            return WinBack(percent=0, restored=0)

        try:
            self.discounts.issue(
                user_id,
                ABANDONED_DISCOUNT_PERCENT,
                self.clock() + timedelta(seconds=ABANDONED_DISCOUNT_TTL_SECONDS),
            )
            restored = self._restore(user_id, None)
            self.repo.commit()
        except IntegrityError as e:
            self.repo.rollback()
            raise ConflictError("Cart changed while restoring abandoned entries") from e

        logger.info(f"Win-back discount {ABANDONED_DISCOUNT_PERCENT}% granted to user {user_id}, restored {restored}")
        return WinBack(percent=ABANDONED_DISCOUNT_PERCENT, restored=restored)
