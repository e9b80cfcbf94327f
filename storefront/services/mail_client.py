# storefront/services/mail_client.py
import requests

from storefront.utils.retry import http_retry
from storefront.utils.settings import MAIL_SERVICE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class MailClient:
    """HTTP klient do zewnetrznego serwisu mailowego (renderowanie szablonow jest po jego stronie)."""

    def __init__(self, base_url: str | None = None, timeout: int = 5):
        self.base_url = (base_url if base_url is not None else MAIL_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    @http_retry()
    def send(self, to: str, template_kind: str, payload: dict) -> dict:
        url = f"{self.base_url}/messages"
        logger.info(f"MailClient POST {url} template={template_kind} to={to}")

        resp = requests.post(
            url,
            json={"to": to, "template": template_kind, "payload": payload},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json() if resp.content else {}
