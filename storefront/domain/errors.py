# storefront/domain/errors.py


class StorefrontError(Exception):
    """Baza dla bledow biznesowych, routery mapuja je na kody HTTP."""


class ValidationError(StorefrontError):
    pass


class NotFoundError(StorefrontError):
    pass


class OutOfStockError(StorefrontError):
    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: requested={requested}, available={available}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class EmptyCartError(StorefrontError):
    pass


class ConflictError(StorefrontError):
    """Przegrany wyscig na stanie/statusie - powtorz cala operacje, nie tylko zapis."""


class GatewayError(StorefrontError):
    """Blad komunikacji z procesorem platnosci (nie decline)."""

    def __init__(self, message: str, order_id: int | None = None):
        super().__init__(message)
        self.order_id = order_id


class SignatureError(StorefrontError):
    pass


class InvalidTransitionError(StorefrontError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change order status from {current} to {target}")
        self.current = current
        self.target = target
