# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Literal, Optional
from decimal import Decimal
from datetime import datetime


class ItemIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: int = Field(..., gt=0, description="ID produktu (musi być > 0)")
    quantity: int = Field(1, gt=0, description="Ilość produktu (musi być > 0)")


class QuantityIn(BaseModel):
    quantity: int = Field(..., gt=0, description="Nowa ilość (musi być > 0)")


class RestoreIn(BaseModel):
    product_id: Optional[int] = Field(None, gt=0)


class CartEntryOut(BaseModel):
    """Schema dla pozycji koszyka (response)."""

    id: int
    product_id: int
    quantity: int
    added_at: datetime
    expires_at: datetime
    notified: bool
    abandoned: bool

    model_config = ConfigDict(from_attributes=True)


class AdminCartEntryOut(CartEntryOut):
    user_id: int


class CartOut(BaseModel):
    user_id: int
    items: List[CartEntryOut]


class AbandonedPageOut(BaseModel):
    carts: List[AdminCartEntryOut]
    total_pages: int
    current_page: int
    total_carts: int


class WinBackOut(BaseModel):
    discount_percent: int
    restored: int


class OrderItemIn(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)


class OrderCreate(BaseModel):
    """Schema dla tworzenia zamówienia. Bez cart_items = cały aktywny koszyk."""

    cart_items: Optional[List[OrderItemIn]] = None
    payment_method: Optional[str] = Field(None, description="np. 'upi'; brak = wszystkie metody")
    shipping_address: Optional[str] = None
    billing_address: Optional[str] = None


class PaymentOpenIn(BaseModel):
    payment_method: Optional[str] = None


class LineItemOut(BaseModel):
    product_id: int
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    price_tier_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Schema dla zamówienia (response)."""

    id: int
    user_id: int
    status: str
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    payment_intent_id: Optional[str] = None
    payment_ref: Optional[str] = None
    refund_ref: Optional[str] = None
    refunded_amount: Optional[Decimal] = None
    shipping_address: Optional[str] = None
    billing_address: Optional[str] = None
    created_at: datetime
    line_items: List[LineItemOut] = []

    model_config = ConfigDict(from_attributes=True)


class IntentOut(BaseModel):
    intent_id: str
    client_secret: Optional[str] = None
    amount: Decimal
    currency: str
    payment_method: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PlacedOrderOut(BaseModel):
    order: OrderOut
    payment: IntentOut


class OrderPageOut(BaseModel):
    orders: List[OrderOut]
    total_pages: int
    current_page: int
    total_orders: int


class ConfirmIn(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)
    payment_method_id: Optional[str] = None


class ConfirmOut(BaseModel):
    message: str
    order: OrderOut
    requires_action: bool = False
    client_secret: Optional[str] = None


class StatusIn(BaseModel):
    status: Literal["pending", "confirmed", "shipped", "delivered", "cancelled", "refunded"]


class RefundIn(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)


class RefundOut(BaseModel):
    message: str
    refund_id: str
    status: str
    amount: Decimal
    order: OrderOut


class PaymentDetailsOut(BaseModel):
    order: OrderOut
    intent_id: str
    status: str
    amount: Decimal
    currency: str
    payment_method: Optional[str] = None
    description: Optional[str] = None
