"""Order placement: turn a user's cart into an order in one unit of work."""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.cart.cart import CartLine
from marketplace.domain import marketplace
from marketplace.errors import InsufficientStock
from marketplace.inventory.product import Product
from marketplace.order.order import Order, ShippingAddress
from marketplace.order.pricing import PricingPolicy

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class CreateOrder:
    user_id = Identifier(required=True)
    shipping_address = Text(required=True)  # JSON: address dict
    payment_method = String(max_length=50)
    notes = Text()
    tax_rate = Float(default=0.10, min_value=0.0)
    shipping_fee = Float(default=10.0, min_value=0.0)
    currency = String(max_length=3, default="usd")


@marketplace.command_handler(part_of=Order)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        address_data = (
            json.loads(command.shipping_address)
            if isinstance(command.shipping_address, str)
            else command.shipping_address
        )
        shipping_address = ShippingAddress(**address_data)

        carts = current_domain.repository_for(CartLine)
        snapshot = carts.snapshot(command.user_id)
        if snapshot.is_empty:
            raise ValidationError({"cart": ["Cart is empty"]})

        ledger = current_domain.repository_for(Product)
        products = {}
        for line in snapshot.lines:
            product = ledger.get(line.product_id)
            if not product.is_active:
                raise ValidationError({"items": [f"Product {product.name} is no longer available"]})
            if product.stock < line.quantity:
                raise InsufficientStock(product.id, requested=line.quantity, available=product.stock)
            products[line.product_id] = product

        reserved = []
        try:
            for line in snapshot.lines:
                ledger.reserve(line.product_id, line.quantity)
                reserved.append(line)

            policy = PricingPolicy(tax_rate=command.tax_rate, flat_shipping_fee=command.shipping_fee)
            order = Order.place(
                user_id=command.user_id,
                items_data=[
                    {
                        "product_id": line.product_id,
                        "seller_id": str(products[line.product_id].seller_id),
                        "quantity": line.quantity,
                        "price": line.unit_price,
                    }
                    for line in snapshot.lines
                ],
                totals=policy.price(snapshot),
                shipping_address=shipping_address,
                payment_method=command.payment_method,
                notes=command.notes,
                currency=command.currency or "usd",
            )
            current_domain.repository_for(Order).add(order)
            carts.clear(command.user_id)
        except Exception:
            # Hand back whatever was reserved before the failure
            for line in reserved:
                ledger.release(line.product_id, line.quantity)
            logger.warning("Order placement aborted", user_id=str(command.user_id), released=len(reserved))
            raise

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            user_id=str(command.user_id),
            total=order.total,
        )
        return str(order.id)
