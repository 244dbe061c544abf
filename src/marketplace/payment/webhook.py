"""WebhookReconciler: authenticate a provider callback and hand it to the
reconciliation command.

Nothing in an unverified payload is ever parsed into an effect.
"""

import json

import structlog
from protean.utils.globals import current_domain

from marketplace.errors import GatewayUnavailable, WebhookAuthError
from marketplace.gateway.port import PaymentGateway
from marketplace.payment.reconciliation import ApplyPaymentEvent

logger = structlog.get_logger(__name__)


class WebhookReconciler:
    def __init__(self, gateway: PaymentGateway | None) -> None:
        self.gateway = gateway

    def handle(self, payload: bytes, signature: str | None) -> dict:
        if self.gateway is None:
            raise GatewayUnavailable()
        if not signature:
            raise WebhookAuthError("Missing webhook signature")

        event = self.gateway.construct_event(payload, signature)
        metadata = event.object.get("metadata") or {}
        logger.info("Webhook event verified", provider_event_id=event.id, event_type=event.type)

        current_domain.process(
            ApplyPaymentEvent(
                provider_event_id=event.id,
                event_type=event.type,
                order_id=metadata.get("order_id"),
                event_object=json.dumps(event.object),
            ),
            asynchronous=False,
        )
        return {"received": True}
