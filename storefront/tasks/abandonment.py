# storefront/tasks/abandonment.py
from collections import OrderedDict
from dataclasses import dataclass, asdict
from datetime import timedelta

from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.data.models.cart_entry import CartEntryModel
from storefront.repos.cart_repo import CartRepo
from storefront.repos.discount_repo import DiscountRepo
from storefront.repos.product_repo import ProductRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.marker_service import MarkerService
from storefront.services.notification_service import NotificationSender, NotificationService
from storefront.utils.clock import Clock, utcnow
from storefront.utils.logging import get_logger
from storefront.utils.settings import (
    ABANDONED_DISCOUNT_PERCENT,
    ABANDONED_DISCOUNT_TTL_SECONDS,
    ABANDONED_NOTICE_TTL_SECONDS,
    ABANDONED_RETENTION_DAYS,
)

logger = get_logger(__name__)


@dataclass
class SweepReport:
    expired_entries: int = 0
    users: int = 0
    abandoned_entries: int = 0
    notified_users: int = 0
    skipped_users: int = 0
    failed_users: int = 0


class AbandonmentScheduler:
    """
    Active -> Abandoned dla wygaslych wpisow koszyka.

    Jeden sweep:
    1. wygasle, nie powiadomione, nie porzucone wpisy, pogrupowane po userze
    2. znacznik "mail wyslany" w redisie -> tylko oznacz jako porzucone
    3. inaczej: najpierw oznacz (commit), potem token rabatowy, potem jeden
       zbiorczy mail; znacznik ustawiany tylko po udanej wysylce.
       Nieudany mail nie jest ponawiany, stan koszyka zostaje spojny.

    Zaklada jedna instancje (jeden celery beat).
    """

    def __init__(
        self,
        db: Session,
        notifier: NotificationSender,
        markers: MarkerService,
        clock: Clock = utcnow,
        notice_ttl_seconds: int = ABANDONED_NOTICE_TTL_SECONDS,
        discount_percent: int = ABANDONED_DISCOUNT_PERCENT,
        discount_ttl_seconds: int = ABANDONED_DISCOUNT_TTL_SECONDS,
    ):
        self.db = db
        self.carts = CartRepo(db)
        self.discounts = DiscountRepo(db)
        self.products = ProductRepo(db)
        self.users = UserRepo(db)
        self.notifier = notifier
        self.markers = markers
        self.clock = clock
        self.notice_ttl_seconds = notice_ttl_seconds
        self.discount_percent = discount_percent
        self.discount_ttl_seconds = discount_ttl_seconds

    def sweep(self) -> SweepReport:
        now = self.clock()
        report = SweepReport()

        expired = self.carts.list_expired_unnotified(now)
        report.expired_entries = len(expired)
        logger.info(f"Found {len(expired)} cart entries that expired at {now.isoformat()}")
        if not expired:
            return report

        by_user: OrderedDict[int, list[CartEntryModel]] = OrderedDict()
        for entry in expired:
            by_user.setdefault(entry.user_id, []).append(entry)
        report.users = len(by_user)

        for user_id, entries in by_user.items():
            try:
                self._process_user(user_id, entries, now, report)
            except Exception as e:
                # jeden user nie blokuje reszty sweepu
                self.db.rollback()
                report.failed_users += 1
                logger.error(f"Failed to process abandoned cart for user {user_id}: {e}")

        logger.info(
            f"Sweep done: {report.abandoned_entries} entries abandoned, "
            f"{report.notified_users} notified, {report.skipped_users} skipped, {report.failed_users} failed"
        )
        return report

    def _process_user(self, user_id: int, entries: list[CartEntryModel], now, report: SweepReport) -> None:
        key = MarkerService.abandoned_notice_key(user_id)
        snapshot = [(e.id, e.product_id, e.quantity) for e in entries]

        marked = self.carts.mark_abandoned([entry_id for entry_id, _, _ in snapshot], now)
        if marked:
            #token niezaleznie od tego czy mail dojdzie
            self.discounts.issue(
                user_id,
                self.discount_percent,
                now + timedelta(seconds=self.discount_ttl_seconds),
            )
        self.db.commit()
        report.abandoned_entries += len(marked)
        logger.info(f"Marked {len(marked)} items as abandoned for user {user_id}")

        if not marked:
            return

        if self.markers.safe_is_marked(key):
            logger.info(f"Email already sent for user {user_id}, skipping")
            report.skipped_users += 1
            return

        user = self.users.get_user(user_id)
        if not user or not user.email:
            logger.info(f"No email found for user {user_id}")
            return

        items = []
        for entry_id, product_id, quantity in snapshot:
            if entry_id not in marked:
                continue
            product = self.products.get_product(product_id)
            items.append(
                {
                    "product_id": product_id,
                    "name": product.name if product else None,
                    "quantity": quantity,
                }
            )

        try:
            self.notifier.send(
                user.email,
                "abandoned_cart",
                {"user_id": user_id, "items": items, "discount_percent": self.discount_percent},
            )
        except Exception as e:
            # bez znacznika i bez ponowienia - user po prostu nie dostanie maila
            logger.error(f"Abandoned cart email to {user.email} failed: {e}")
            report.failed_users += 1
            return

        try:
            self.markers.mark(key, self.notice_ttl_seconds)
        except RedisError as e:
            logger.warning(f"Could not set marker {key}: {e}")

        report.notified_users += 1
        logger.info(f"Abandoned cart email sent to {user.email} ({len(items)} items)")

    def purge(self, retention_days: int = ABANDONED_RETENTION_DAYS) -> int:
        cutoff = self.clock() - timedelta(days=retention_days)
        try:
            removed = self.carts.purge_abandoned(cutoff)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Cleaned up {removed} old abandoned cart entries")
        return removed


def _scheduler(db: Session) -> AbandonmentScheduler:
    return AbandonmentScheduler(db=db, notifier=NotificationService(), markers=MarkerService())


@celery_app.task(name="storefront.tasks.abandonment.sweep_abandoned_carts_task")
def sweep_abandoned_carts_task():
    logger.info("Abandoned cart sweep started")

    db = SessionLocal()
    try:
        return asdict(_scheduler(db).sweep())
    finally:
        db.close()


@celery_app.task(name="storefront.tasks.abandonment.purge_abandoned_carts_task")
def purge_abandoned_carts_task():
    logger.info("Abandoned cart purge started")

    db = SessionLocal()
    try:
        return {"removed": _scheduler(db).purge()}
    finally:
        db.close()
