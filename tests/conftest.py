# fixtury: sqlite na test, katalog produktow, fake bramka/notifier/redis, staly zegar

import os

# przed importem storefront - settings czyta env przy imporcie
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PAYMENT_GATEWAY"] = "fake"
os.environ["MAIL_SERVICE_URL"] = ""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

import storefront.data.models  # noqa: F401
from storefront.data.database import Base, make_engine
from storefront.data.models import PriceTierModel, ProductModel, UserModel
from storefront.payments.fake_gateway import FakeGateway
from storefront.services.cart_store import CartStore
from storefront.services.marker_service import MarkerService
from storefront.services.order_fulfillment import OrderFulfillment
from storefront.services.payment_reconciler import PaymentReconciler

from helpers import (
    ADMIN,
    ALICE,
    BOB,
    BULK,
    CAROL,
    GADGET,
    PREMIUM,
    RETIRED,
    WIDGET,
    FailingNotifier,
    FakeClock,
    FakeRedis,
    RecordingNotifier,
)


@pytest.fixture
def engine(tmp_path):
    # plik, nie :memory: - dwie sesje musza widziec te sama baze
    engine = make_engine(f"sqlite:///{tmp_path / 'storefront.sqlite'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory, seed):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seed(session_factory):
    session = session_factory()
    session.add_all(
        [
            UserModel(id=ALICE, name="Alice", email="alice@example.com"),
            UserModel(id=BOB, name="Bob", email="bob@example.com"),
            UserModel(id=CAROL, name="Carol", email=None),
            UserModel(id=ADMIN, name="Admin", email="admin@example.com", role="admin"),
            ProductModel(id=WIDGET, name="Widget", current_stock=10),
            ProductModel(id=GADGET, name="Gadget", current_stock=1),
            ProductModel(id=BULK, name="Bulk screws", current_stock=100),
            ProductModel(id=PREMIUM, name="Premium kit", current_stock=10),
            ProductModel(id=RETIRED, name="Retired", current_stock=5, is_active=False),
        ]
    )
    session.flush()
    session.add_all(
        [
            PriceTierModel(product_id=WIDGET, batch_start=1, price=Decimal("10.00"), cost_price=Decimal("6.00")),
            PriceTierModel(product_id=GADGET, batch_start=1, price=Decimal("25.00"), cost_price=Decimal("15.00")),
            PriceTierModel(
                product_id=BULK, batch_start=1, batch_end=9, price=Decimal("5.00"), cost_price=Decimal("3.00")
            ),
            PriceTierModel(product_id=BULK, batch_start=10, price=Decimal("4.00"), cost_price=Decimal("3.00")),
            PriceTierModel(product_id=PREMIUM, batch_start=1, price=Decimal("100.00"), cost_price=Decimal("60.00")),
        ]
    )
    session.commit()
    session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


@pytest.fixture
def markers():
    return MarkerService(client=FakeRedis())


@pytest.fixture
def cart(db, clock):
    return CartStore(db=db, clock=clock)


@pytest.fixture
def make_fulfillment(gateway, notifier, clock):
    def _make(session, **kwargs):
        kwargs.setdefault("notifier", notifier)
        return OrderFulfillment(db=session, gateway_for=lambda _method: gateway, clock=clock, **kwargs)

    return _make


@pytest.fixture
def fulfillment(db, make_fulfillment):
    return make_fulfillment(db)


@pytest.fixture
def reconciler(fulfillment, gateway):
    return PaymentReconciler(fulfillment=fulfillment, gateway=gateway)

