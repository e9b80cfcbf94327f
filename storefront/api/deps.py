# storefront/api/deps.py
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.errors import (
    ConflictError,
    EmptyCartError,
    GatewayError,
    InvalidTransitionError,
    NotFoundError,
    OutOfStockError,
    SignatureError,
    StorefrontError,
    ValidationError,
)
from storefront.payments import get_gateway
from storefront.services.cart_store import CartStore
from storefront.services.notification_service import NotificationService
from storefront.services.order_fulfillment import OrderFulfillment
from storefront.services.payment_reconciler import PaymentReconciler


@dataclass(frozen=True)
class AuthContext:
    """Uzytkownik juz uwierzytelniony przez warstwe wyzej - tylko ufamy naglowkom."""

    user_id: int
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_auth(
    x_user_id: int = Header(..., gt=0),
    x_user_role: str = Header("user"),
) -> AuthContext:
    return AuthContext(user_id=x_user_id, role=x_user_role)


def require_admin(auth: AuthContext = Depends(get_auth)) -> AuthContext:
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return auth


_STATUS = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (GatewayError, 502),
    (ValidationError, 400),
    (OutOfStockError, 400),
    (EmptyCartError, 400),
    (InvalidTransitionError, 400),
    (SignatureError, 400),
)


def to_http(e: StorefrontError) -> HTTPException:
    for cls, code in _STATUS:
        if isinstance(e, cls):
            return HTTPException(status_code=code, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def get_cart_store(db: Session = Depends(get_db)) -> CartStore:
    return CartStore(db=db)


def get_fulfillment(db: Session = Depends(get_db)) -> OrderFulfillment:
    return OrderFulfillment(db=db, notifier=NotificationService())


def get_reconciler(fulfillment: OrderFulfillment = Depends(get_fulfillment)) -> PaymentReconciler:
    return PaymentReconciler(fulfillment=fulfillment, gateway=get_gateway())
