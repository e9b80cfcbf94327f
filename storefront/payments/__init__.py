# storefront/payments/__init__.py
# PAYMENT_GATEWAY=stripe (prod) albo fake (dev); payment_method="upi" -> intent jednej metody, None -> wielometodowy
from storefront.payments.port import PaymentGateway
from storefront.utils.settings import PAYMENT_GATEWAY

_fake = None


def get_gateway(payment_method: str | None = None) -> PaymentGateway:
    global _fake
    if PAYMENT_GATEWAY == "fake":
        from storefront.payments.fake_gateway import FakeGateway

        #jeden fake na proces, zeby webhook widzial intenty z create
        if _fake is None:
            _fake = FakeGateway()
        _fake.payment_method = payment_method
        return _fake

    from storefront.payments.stripe_gateway import StripeGateway

    return StripeGateway(payment_method=payment_method)
