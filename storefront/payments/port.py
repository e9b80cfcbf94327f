# storefront/payments/port.py
# wyniki od procesora jako osobne dataclassy - caller dispatchuje po typie
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Union


@dataclass(frozen=True)
class Succeeded:
    intent_id: str


@dataclass(frozen=True)
class RequiresAction:
    intent_id: str
    client_secret: str | None


@dataclass(frozen=True)
class Declined:
    intent_id: str | None
    reason: str
    status: str | None = None


@dataclass(frozen=True)
class GatewayUnavailable:
    reason: str


ConfirmOutcome = Union[Succeeded, RequiresAction, Declined, GatewayUnavailable]


@dataclass(frozen=True)
class IntentHandle:
    #to dostaje klient po utworzeniu intentu

    intent_id: str
    client_secret: str | None
    amount: Decimal
    currency: str
    payment_method: str | None = None


@dataclass(frozen=True)
class IntentDetails:
    intent_id: str
    status: str
    amount: Decimal
    currency: str
    metadata: dict[str, str] = field(default_factory=dict)
    payment_method: str | None = None
    customer: str | None = None
    description: str | None = None
    created: int | None = None


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    status: str
    amount: Decimal


@dataclass(frozen=True)
class WebhookEvent:
    #event po weryfikacji podpisu

    event_id: str
    type: str
    intent_id: str | None
    metadata: dict[str, str]
    payload: dict[str, Any]


class IntentStateConflict(Exception):
    """
    Procesor odrzucil confirm - intent nie jest juz w stanie do potwierdzenia
    (zwykle juz succeeded). intent = stan u procesora, jesli go dolaczyl,
    inaczej None i caller robi retrieve sam.
    """

    def __init__(self, intent_id: str, intent: IntentDetails | None = None):
        super().__init__(f"Payment intent {intent_id} is in an unexpected state")
        self.intent_id = intent_id
        self.intent = intent


class PaymentGateway(ABC):
    """Interfejs bramki platnosci, implementuja go adaptery procesorow."""

    @abstractmethod
    def create_intent(self, amount: Decimal, metadata: dict[str, str]) -> IntentHandle:
        """amount w jednostkach glownych, podbijane do minimum procesora."""
        ...

    @abstractmethod
    def confirm_intent(self, intent_id: str, method_id: str | None = None) -> ConfirmOutcome:
        """IntentStateConflict gdy intentu nie da sie juz potwierdzic."""
        ...

    @abstractmethod
    def retrieve_intent(self, intent_id: str) -> IntentDetails:
        ...

    @abstractmethod
    def refund(self, intent_id: str, amount: Decimal | None = None) -> RefundResult:
        ...

    @abstractmethod
    def verify_and_parse_webhook(self, raw_payload: bytes, signature: str) -> WebhookEvent:
        """Najpierw podpis, parsowany jest tylko zweryfikowany payload."""
        ...


def outcome_from_details(details: IntentDetails) -> ConfirmOutcome:
    #status u procesora -> wynik confirmu
    if details.status == "succeeded":
        return Succeeded(intent_id=details.intent_id)
    if details.status == "requires_action":
        return RequiresAction(intent_id=details.intent_id, client_secret=None)
    return Declined(intent_id=details.intent_id, reason=f"Payment status: {details.status}", status=details.status)
