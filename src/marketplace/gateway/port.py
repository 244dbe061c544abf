"""Payment gateway port (abstract interface).

Defines the contract every payment gateway adapter implements, so the
payment services work the same against Stripe in production and the
FakeGateway in development and tests.

Amounts cross this boundary in major currency units (dollars, euros);
adapters convert to whatever the provider expects. Transport problems,
including timeouts, surface as ``GatewayError``; a signature that does not
verify surfaces as ``WebhookAuthError``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


def to_minor_units(amount: float) -> int:
    """Provider amounts are integers in the smallest currency unit (cents)."""
    return int(round(amount * 100))


def from_minor_units(amount: int | None) -> float | None:
    return None if amount is None else round(amount / 100, 2)


@dataclass(frozen=True)
class PaymentIntentResult:
    payment_intent_id: str
    client_secret: str
    status: str | None = None


@dataclass(frozen=True)
class CheckoutLine:
    """One line item shown on the hosted checkout page."""

    name: str
    unit_amount: float
    quantity: int
    description: str | None = None


@dataclass(frozen=True)
class CheckoutSessionResult:
    session_id: str
    url: str


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class WebhookEvent:
    """A verified provider notification."""

    id: str
    type: str
    data: dict = field(default_factory=dict)

    @property
    def object(self) -> dict:
        return self.data.get("object") or {}


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    publishable_key: str | None = None

    @abstractmethod
    def create_payment_intent(
        self,
        amount: float,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntentResult:
        """Create a payment intent the client confirms with its secret."""
        ...

    @abstractmethod
    def create_checkout_session(
        self,
        lines: list[CheckoutLine],
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSessionResult:
        """Create a hosted checkout session."""
        ...

    @abstractmethod
    def create_refund(
        self,
        payment_intent_id: str,
        amount: float,
        reason: str | None,
        idempotency_key: str,
    ) -> RefundResult:
        """Refund part or all of a captured payment."""
        ...

    @abstractmethod
    def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        ...

    @abstractmethod
    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify a webhook payload and parse it into an event."""
        ...
