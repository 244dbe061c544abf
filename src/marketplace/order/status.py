"""Order status changes and cancellation: commands and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.inventory.product import Product
from marketplace.order.order import Order, OrderStatus


@marketplace.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=20)


@marketplace.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)


@marketplace.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command):
        try:
            target = OrderStatus(command.status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown order status {command.status}"]}) from None

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        released = order.transition_to(target)
        repo.add(order)
        _release_stock(released)

    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        released = order.cancel(reason=command.reason)
        repo.add(order)
        _release_stock(released)


def _release_stock(lines):
    ledger = current_domain.repository_for(Product)
    for product_id, quantity in lines:
        ledger.release(product_id, quantity)
