# storefront/services/price_book.py
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.data.models.price_tier import PriceTierModel
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.repos.product_repo import ProductRepo
from storefront.utils.settings import PRICE_TIER_POLICY

QUANTITY_MATCHED = "quantity"
FIRST_ACTIVE = "first_active"


@dataclass(frozen=True)
class PriceQuote:
    tier_id: int
    unit_price: Decimal
    cost_price: Decimal

    @property
    def margin_percent(self) -> Decimal:
        return ((self.unit_price - self.cost_price) / self.cost_price * 100).quantize(Decimal("0.01"))


class PriceBook:
    """
    Cena za sztuke z aktywnych progow cenowych produktu.

    quantity     - prog, ktorego [batch_start, batch_end] zawiera ilosc
                   (przy nakladaniu wygrywa nizszy batch_start)
    first_active - pierwszy aktywny prog, ilosc ignorowana
    """

    def __init__(self, db: Session, policy: str = PRICE_TIER_POLICY):
        if policy not in (QUANTITY_MATCHED, FIRST_ACTIVE):
            raise ValueError(f"Unknown price tier policy: {policy}")
        self.repo = ProductRepo(db)
        self.policy = policy

    def quote(self, product_id: int, quantity: int) -> PriceQuote:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        tiers = self.repo.get_active_tiers(product_id)
        tier = self._select(tiers, quantity)
        if tier is None:
            raise NotFoundError(f"No pricing found for product {product_id} (quantity {quantity})")

        return PriceQuote(
            tier_id=tier.id,
            unit_price=Decimal(tier.price).quantize(Decimal("0.01")),
            cost_price=Decimal(tier.cost_price).quantize(Decimal("0.01")),
        )

    def _select(self, tiers: list[PriceTierModel], quantity: int) -> PriceTierModel | None:
        if not tiers:
            return None
        if self.policy == FIRST_ACTIVE:
            return tiers[0]

        matching = [t for t in tiers if t.contains(quantity)]
        if not matching:
            return None
        return min(matching, key=lambda t: (t.batch_start, t.id))
