"""Apply a verified provider event to its order, at most once.

Checking the dedup record, mutating the order and writing the dedup record
all happen in the command handler's unit of work.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.gateway.port import from_minor_units
from marketplace.order.order import Order
from marketplace.payment.payment_event import EventOutcome, PaymentEvent

logger = structlog.get_logger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"

HANDLED_EVENT_TYPES = {PAYMENT_SUCCEEDED, PAYMENT_FAILED, CHECKOUT_COMPLETED, CHECKOUT_EXPIRED}


@marketplace.command(part_of="PaymentEvent")
class ApplyPaymentEvent:
    provider_event_id = String(required=True, max_length=255)
    event_type = String(required=True, max_length=100)
    order_id = Identifier()
    event_object = Text(required=True)  # JSON: the provider object the event is about


@marketplace.command_handler(part_of=PaymentEvent)
class PaymentEventHandler:
    @handle(ApplyPaymentEvent)
    def apply_payment_event(self, command):
        events = current_domain.repository_for(PaymentEvent)
        if events.find(command.provider_event_id) is not None:
            logger.info("Duplicate webhook event", provider_event_id=command.provider_event_id)
            return None

        outcome = self._apply(command)
        events.add(
            PaymentEvent.record(
                provider_event_id=command.provider_event_id,
                event_type=command.event_type,
                order_id=command.order_id,
                outcome=outcome,
            )
        )
        logger.info(
            "Webhook event processed",
            provider_event_id=command.provider_event_id,
            event_type=command.event_type,
            order_id=command.order_id,
            outcome=outcome.value,
        )
        return outcome.value

    def _apply(self, command) -> EventOutcome:
        if command.event_type not in HANDLED_EVENT_TYPES:
            return EventOutcome.IGNORED

        orders = current_domain.repository_for(Order)
        if not command.order_id:
            logger.warning("Webhook event has no order reference", provider_event_id=command.provider_event_id)
            return EventOutcome.UNRESOLVED
        try:
            order = orders.get(command.order_id)
        except ObjectNotFoundError:
            logger.warning(
                "Webhook event references an unknown order",
                provider_event_id=command.provider_event_id,
                order_id=command.order_id,
            )
            return EventOutcome.UNRESOLVED

        changed = _dispatch(command.event_type, order, json.loads(command.event_object))
        if not changed:
            return EventOutcome.IGNORED
        orders.add(order)
        return EventOutcome.APPLIED


def _dispatch(event_type: str, order: Order, obj: dict) -> bool:
    if event_type == PAYMENT_SUCCEEDED:
        methods = obj.get("payment_method_types") or []
        return order.confirm_payment(
            amount=from_minor_units(obj.get("amount_received") or obj.get("amount")),
            currency=obj.get("currency"),
            payment_intent_id=obj.get("id"),
            payment_method=methods[0] if methods else None,
        )
    if event_type == PAYMENT_FAILED:
        error = obj.get("last_payment_error") or {}
        return order.record_payment_failure(error.get("message"))
    if event_type == CHECKOUT_COMPLETED:
        return order.confirm_payment(
            amount=from_minor_units(obj.get("amount_total")),
            currency=obj.get("currency"),
            payment_intent_id=obj.get("payment_intent"),
        )
    if event_type == CHECKOUT_EXPIRED:
        return order.expire_payment()
    return False
