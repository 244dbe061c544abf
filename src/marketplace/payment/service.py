"""PaymentService: the payment operations exposed to callers.

Every gateway call happens here, outside any unit of work; the order is only
touched afterwards, through a command, once the gateway has answered.
"""

from collections import Counter

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.auth import Principal, require_admin, require_order_buyer, require_order_viewer
from marketplace.errors import AuthorizationError, GatewayUnavailable
from marketplace.gateway.port import CheckoutLine, PaymentGateway
from marketplace.inventory.product import Product
from marketplace.order.order import Order
from marketplace.payment.intents import AttachCheckoutSession, AttachPaymentIntent
from marketplace.payment.payment_event import PaymentEvent
from marketplace.payment.refund import RefundCoordinator
from marketplace.settings import Settings

logger = structlog.get_logger(__name__)

_CENT = 0.005


class PaymentService:
    def __init__(self, gateway: PaymentGateway | None, settings: Settings) -> None:
        self.gateway = gateway
        self.settings = settings
        self.refunds = RefundCoordinator(gateway)

    def is_configured(self) -> bool:
        return self.gateway is not None

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise GatewayUnavailable()
        return self.gateway

    def config(self) -> dict:
        return {
            "enabled": self.is_configured(),
            "publishable_key": self.gateway.publishable_key if self.gateway else None,
            "supported_methods": list(self.settings.supported_payment_methods),
            "supported_currencies": list(self.settings.supported_currencies),
        }

    def _resolve_currency(self, currency: str | None) -> str:
        currency = (currency or self.settings.default_currency).lower()
        if currency not in self.settings.supported_currencies:
            raise ValidationError({"currency": [f"Unsupported currency {currency}"]})
        return currency

    def create_payment_intent(
        self,
        principal: Principal,
        order_id: str,
        amount: float,
        currency: str | None = None,
        metadata: dict | None = None,
    ) -> dict:
        gateway = self._require_gateway()
        order = current_domain.repository_for(Order).get(order_id)
        require_order_buyer(principal, order)
        order.assert_payable()
        if abs(amount - order.total) > _CENT:
            raise ValidationError({"amount": [f"Amount must equal the order total of {order.total:.2f}"]})
        currency = self._resolve_currency(currency)

        intent = gateway.create_payment_intent(
            amount=order.total,
            currency=currency,
            metadata={
                **{str(k): str(v) for k, v in (metadata or {}).items()},
                "order_id": str(order.id),
                "order_number": order.order_number,
                "user_id": str(order.user_id),
            },
            idempotency_key=f"order-{order.id}-intent-{order.payment_intent_id or 'initial'}",
        )
        current_domain.process(
            AttachPaymentIntent(order_id=str(order.id), payment_intent_id=intent.payment_intent_id),
            asynchronous=False,
        )
        logger.info("Payment intent created", order_id=str(order.id), payment_intent_id=intent.payment_intent_id)
        return {"client_secret": intent.client_secret, "payment_intent_id": intent.payment_intent_id}

    def create_checkout_session(
        self,
        principal: Principal,
        order_id: str,
        items: list[dict] | None = None,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> dict:
        """Start a hosted checkout for exactly the order's items.

        Line items show the product's current details. Items that differ from
        the order's products or quantities are refused.
        """
        gateway = self._require_gateway()
        order = current_domain.repository_for(Order).get(order_id)
        require_order_buyer(principal, order)
        order.assert_payable()

        ordered = [{"product_id": str(i.product_id), "quantity": i.quantity} for i in order.items]
        requested = items or ordered
        if _quantities(requested) != _quantities(ordered):
            raise ValidationError({"items": ["Checkout items must match the order's items and quantities"]})

        products = current_domain.repository_for(Product)
        lines = []
        for item in requested:
            product = products.get(item["product_id"])
            lines.append(
                CheckoutLine(
                    name=product.name,
                    description=product.description,
                    unit_amount=product.price,
                    quantity=item["quantity"],
                )
            )

        frontend = self.settings.frontend_url.rstrip("/")
        session = gateway.create_checkout_session(
            lines=lines,
            currency=order.currency or self.settings.default_currency,
            success_url=success_url or f"{frontend}/orders/{order.id}/success",
            cancel_url=cancel_url or f"{frontend}/orders/{order.id}/cancel",
            metadata={"order_id": str(order.id), "order_number": order.order_number, "user_id": str(order.user_id)},
        )
        current_domain.process(
            AttachCheckoutSession(order_id=str(order.id), session_id=session.session_id),
            asynchronous=False,
        )
        logger.info("Checkout session created", order_id=str(order.id), session_id=session.session_id)
        return {"session_id": session.session_id, "url": session.url}

    def refund_payment(
        self,
        principal: Principal,
        order_id: str,
        amount: float | None = None,
        reason: str | None = None,
    ):
        require_admin(principal)
        return self.refunds.refund(order_id, amount=amount, reason=reason)

    def get_payment_details(self, principal: Principal, payment_intent_id: str) -> dict:
        """Look up an intent on the gateway, for the buyer or sellers of its order."""
        details = self._require_gateway().retrieve_payment_intent(payment_intent_id)
        if principal.is_admin:
            return details

        order_id = (details.get("metadata") or {}).get("order_id")
        if not order_id:
            raise AuthorizationError("Not authorized to view this payment")
        try:
            order = current_domain.repository_for(Order).get(order_id)
        except ObjectNotFoundError:
            raise AuthorizationError("Not authorized to view this payment") from None
        require_order_viewer(principal, order)
        return details

    def unresolved_events(self, principal: Principal) -> list[PaymentEvent]:
        require_admin(principal)
        return current_domain.repository_for(PaymentEvent).unresolved()


def _quantities(items: list[dict]) -> Counter:
    counts = Counter()
    for item in items:
        counts[str(item["product_id"])] += int(item["quantity"])
    return counts
