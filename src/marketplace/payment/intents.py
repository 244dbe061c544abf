"""Correlate gateway payment objects with their order."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order


@marketplace.command(part_of="Order")
class AttachPaymentIntent:
    order_id = Identifier(required=True)
    payment_intent_id = String(required=True, max_length=255)


@marketplace.command(part_of="Order")
class AttachCheckoutSession:
    order_id = Identifier(required=True)
    session_id = String(required=True, max_length=255)


@marketplace.command_handler(part_of=Order)
class PaymentCorrelationHandler:
    @handle(AttachPaymentIntent)
    def attach_payment_intent(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.attach_payment_intent(command.payment_intent_id)
        repo.add(order)

    @handle(AttachCheckoutSession)
    def attach_checkout_session(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.attach_checkout_session(command.session_id)
        repo.add(order)
