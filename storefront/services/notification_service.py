# storefront/services/notification_service.py
from typing import Any, Protocol

from storefront.celery_worker import celery_app
from storefront.services.mail_client import MailClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationSender(Protocol):
    def send(self, to: str, template_kind: str, payload: dict[str, Any]) -> None: ...


class NotificationService:
    """
    Serwis do wysylania powiadomien.
    Uzywa Celery do asynchronicznego przetwarzania - send() tylko kolejkuje.
    """

    def send(self, to: str, template_kind: str, payload: dict[str, Any]) -> None:
        send_notification_task.delay(to, template_kind, payload)


@celery_app.task(name="storefront.services.notification_service.send_notification_task")
def send_notification_task(to: str, template_kind: str, payload: dict):
    """
    Celery task - wysyla przez serwis mailowy albo tylko loguje,
    jesli MAIL_SERVICE_URL nie jest ustawiony.
    """
    client = MailClient()
    if not client.enabled:
        logger.info(f"[NOTIFICATION] {template_kind} -> {to}: {payload}")
        return {"to": to, "template": template_kind, "status": "logged"}

    client.send(to, template_kind, payload)
    return {"to": to, "template": template_kind, "status": "sent"}
