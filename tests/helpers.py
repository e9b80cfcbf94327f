import json
import threading
from datetime import datetime, timedelta

from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select

from storefront.data.models import ProductModel, UserModel

ALICE, BOB, CAROL, ADMIN = 1, 2, 3, 9
WIDGET, GADGET, BULK, PREMIUM, RETIRED = 1, 2, 3, 4, 5


def stock_of(session, product_id):
    return session.execute(
        select(ProductModel.current_stock, ProductModel.total_sold).where(ProductModel.id == product_id)
    ).one()


def user_row(session, user_id):
    return session.execute(
        select(UserModel.total_purchases, UserModel.discount_eligible).where(UserModel.id == user_id)
    ).one()


def fresh(session, model, *where):
    return list(
        session.execute(
            select(model).where(*where).order_by(model.id).execution_options(populate_existing=True)
        ).scalars().all()
    )


def intent_event(event_type, intent_id, order_id=None, event_id="evt_test"):
    metadata = {"order_id": str(order_id)} if order_id is not None else {}
    return json.dumps(
        {
            "id": event_id,
            "type": event_type,
            "data": {"object": {"id": intent_id, "object": "payment_intent", "metadata": metadata}},
        }
    ).encode("utf-8")


def run_together(*calls, timeout=30):
    """Odpala wywolania w osobnych watkach, startujac je razem przez Barrier.
    Zwraca wynik albo wyjatek kazdego wywolania, w kolejnosci argumentow."""
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)

    def worker(index, call):
        barrier.wait()
        try:
            results[index] = call()
        except Exception as e:
            results[index] = e

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout)
    assert not any(thread.is_alive() for thread in threads), "concurrent calls did not finish"
    return results


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, to, template_kind, payload):
        self.sent.append({"to": to, "template": template_kind, "payload": payload})

    def templates(self):
        return [m["template"] for m in self.sent]


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    def send(self, to, template_kind, payload):
        self.attempts += 1
        raise RuntimeError("mail service down")


class FakeRedis:
    """Tylko to, czego uzywa MarkerService: exists + SET NX EX."""

    def __init__(self):
        self.data = {}

    def exists(self, key):
        return int(key in self.data)

    def set(self, name, value, nx=False, ex=None):
        if nx and name in self.data:
            return None
        self.data[name] = (value, ex)
        return True


class DownRedis:
    def exists(self, key):
        raise RedisConnectionError("redis unreachable")

    def set(self, name, value, nx=False, ex=None):
        raise RedisConnectionError("redis unreachable")
