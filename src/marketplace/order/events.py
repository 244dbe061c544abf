"""Domain events for the Order aggregate.

Events record every state change the order goes through and are written
alongside the order in the same unit of work.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    """An order was created from a user's cart and its stock reserved."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity, price}
    subtotal = Float(required=True)
    tax = Float(required=True)
    shipping = Float(required=True)
    total = Float(required=True)
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled; its reserved stock goes back on sale."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()
    items = Text(required=True)  # JSON: list of {product_id, quantity}
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class PaymentConfirmed:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_intent_id = String()
    amount = Float(required=True)
    currency = String(required=True)
    confirmed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class PaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()
    failed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class PaymentExpired:
    __version__ = 1

    order_id = Identifier(required=True)
    expired_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class RefundIssued:
    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float(required=True)
    total_refunded = Float(required=True)
    refund_status = String(required=True)
    refund_count = Integer(required=True)
    refunded_at = DateTime(required=True)
