#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from storefront.data.models.user import UserModel
from storefront.data.models.product import ProductModel
from storefront.data.models.price_tier import PriceTierModel
from storefront.data.models.cart_entry import CartEntryModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_line_item import OrderLineItemModel
from storefront.data.models.discount_token import DiscountTokenModel

__all__ = [
    "UserModel",
    "ProductModel",
    "PriceTierModel",
    "CartEntryModel",
    "OrderModel",
    "OrderLineItemModel",
    "DiscountTokenModel",
]
