"""Order aggregate (CQRS): the durable purchase record and its state machine.

Totals are fixed when the order is placed. Every later change to ``status`` or
``payment_status`` goes through a method on this aggregate, which checks the
transition tables below before touching any field.

Order status:
    PENDING → {PROCESSING, CANCELLED}
    PROCESSING → {SHIPPED, CANCELLED}
    SHIPPED → DELIVERED
    DELIVERED → REFUNDED
    CANCELLED, REFUNDED are terminal

Payment status:
    PENDING → {COMPLETED, FAILED, EXPIRED}
    FAILED → {PENDING, COMPLETED}
    EXPIRED → PENDING
    COMPLETED → REFUNDED

Provider callbacks that would move payment status any other way are ignored
(the method returns ``False``) so that late or reordered webhooks are harmless.
"""

import json
import secrets
import string
import time
from datetime import UTC, datetime
from enum import Enum

import structlog
from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from marketplace.domain import marketplace
from marketplace.errors import InvalidTransition
from marketplace.order.events import (
    OrderCancelled,
    OrderPlaced,
    OrderStatusChanged,
    PaymentConfirmed,
    PaymentExpired,
    PaymentFailed,
    RefundIssued,
)
from marketplace.order.pricing import OrderTotals

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    REFUNDED = "REFUNDED"


class RefundStatus(Enum):
    REFUND_PENDING = "REFUND_PENDING"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    REFUNDED = "REFUNDED"


# ---------------------------------------------------------------------------
# Transition tables
# ---------------------------------------------------------------------------
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

_VALID_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.EXPIRED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING, PaymentStatus.COMPLETED},
    PaymentStatus.EXPIRED: {PaymentStatus.PENDING},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}

_ORDER_NUMBER_ALPHABET = string.digits + string.ascii_uppercase

# Amounts are compared at cent precision
_CENT = 0.005


def generate_order_number() -> str:
    """``ORD-<epoch millis>-<9 random base36 characters>``."""
    suffix = "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


# ---------------------------------------------------------------------------
# Value Objects and Entities
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class ShippingAddress:
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    zip_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)


@marketplace.entity(part_of="Order")
class OrderItem:
    """A price-locked line of an order. Never changed after placement."""

    product_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    price = Float(required=True, min_value=0.0)
    total = Float(required=True, min_value=0.0)


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    order_number = String(required=True, max_length=50, unique=True)
    user_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    refund_status = String(choices=RefundStatus)
    items = HasMany(OrderItem)

    subtotal = Float(required=True, min_value=0.0)
    tax = Float(required=True, min_value=0.0)
    shipping = Float(required=True, min_value=0.0)
    total = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="usd")

    shipping_address = ValueObject(ShippingAddress)
    payment_method = String(max_length=50)
    notes = Text()

    payment_intent_id = String(max_length=255)
    checkout_session_id = String(max_length=255)
    captured_amount = Float()
    payment_failure_reason = String(max_length=500)
    cancellation_reason = String(max_length=500)

    created_at = DateTime()
    updated_at = DateTime()
    paid_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()

    @invariant.post
    def total_is_sum_of_components(self):
        if None in (self.subtotal, self.tax, self.shipping, self.total):
            return
        if abs(self.subtotal + self.tax + self.shipping - self.total) > _CENT:
            raise ValidationError({"total": ["Total must equal subtotal + tax + shipping"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        user_id: str,
        items_data: list[dict],
        totals: OrderTotals,
        shipping_address: ShippingAddress,
        payment_method: str | None = None,
        notes: str | None = None,
        currency: str = "usd",
    ):
        """Create a PENDING order from already reserved, price-locked lines.

        ``items_data`` holds ``product_id``, ``seller_id``, ``quantity`` and
        ``price`` per line; line totals are derived here.
        """
        if not items_data:
            raise ValidationError({"items": ["Order must contain at least one item"]})

        lines = [{**data, "total": round(data["price"] * data["quantity"], 2)} for data in items_data]
        if abs(sum(line["total"] for line in lines) - totals.subtotal) > _CENT:
            raise ValidationError({"subtotal": ["Subtotal must equal the sum of line totals"]})

        now = datetime.now(UTC)
        order = cls(
            order_number=generate_order_number(),
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping=totals.shipping,
            total=totals.total,
            currency=currency,
            shipping_address=shipping_address,
            payment_method=payment_method,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        for line in lines:
            order.add_items(OrderItem(**line))

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                user_id=str(user_id),
                items=json.dumps(
                    [
                        {"product_id": str(line["product_id"]), "quantity": line["quantity"], "price": line["price"]}
                        for line in lines
                    ]
                ),
                subtotal=order.subtotal,
                tax=order.tax,
                shipping=order.shipping,
                total=order.total,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def seller_ids(self) -> set[str]:
        return {str(item.seller_id) for item in self.items or []}

    @property
    def refundable_amount(self) -> float:
        """Amount actually captured by the gateway, falling back to the order total."""
        return self.captured_amount if self.captured_amount is not None else self.total

    # -------------------------------------------------------------------
    # Order status
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS[current]:
            raise InvalidTransition(current.value, target_status.value)

    def transition_to(self, target_status: OrderStatus) -> list[tuple[str, int]]:
        """Move the order along the lifecycle, stamping edge timestamps.

        Returns the stock to release, which is only non-empty on cancellation.
        """
        if target_status == OrderStatus.CANCELLED:
            return self.cancel()

        self._assert_can_transition(target_status)
        previous = self.status
        now = datetime.now(UTC)
        self.status = target_status.value
        if target_status == OrderStatus.SHIPPED:
            self.shipped_at = now
        elif target_status == OrderStatus.DELIVERED:
            self.delivered_at = now
        self.updated_at = now

        logger.info("Order status changed", order_id=str(self.id), from_status=previous, to_status=self.status)
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                from_status=previous,
                to_status=self.status,
                changed_at=now,
            )
        )
        return []

    def cancel(self, reason: str | None = None) -> list[tuple[str, int]]:
        """Cancel the order and return the ``(product_id, quantity)`` stock to release.

        Raises ``InvalidTransition`` for orders that already shipped or are
        closed, so the stock is handed back at most once.
        """
        self._assert_can_transition(OrderStatus.CANCELLED)
        previous = self.status
        now = datetime.now(UTC)
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_at = now
        self.updated_at = now

        released = [(str(item.product_id), item.quantity) for item in self.items or []]
        logger.info("Order cancelled", order_id=str(self.id), from_status=previous, reason=reason)
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason,
                items=json.dumps([{"product_id": pid, "quantity": qty} for pid, qty in released]),
                cancelled_at=now,
            )
        )
        return released

    # -------------------------------------------------------------------
    # Payment status
    # -------------------------------------------------------------------
    def _advance_payment(self, target_status: PaymentStatus) -> bool:
        current = PaymentStatus(self.payment_status)
        if target_status not in _VALID_PAYMENT_TRANSITIONS[current]:
            logger.info(
                "Ignoring payment status change",
                order_id=str(self.id),
                from_status=current.value,
                to_status=target_status.value,
            )
            return False
        self.payment_status = target_status.value
        self.updated_at = datetime.now(UTC)
        return True

    def assert_payable(self) -> None:
        if OrderStatus(self.status) != OrderStatus.PENDING:
            raise ValidationError({"status": ["Only pending orders can be paid"]})
        if PaymentStatus(self.payment_status) in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            raise ValidationError({"payment_status": ["Order is already paid"]})

    def attach_payment_intent(self, payment_intent_id: str) -> None:
        """Correlate a freshly created payment intent with this order."""
        self.assert_payable()
        if self.payment_status != PaymentStatus.PENDING.value:
            self._advance_payment(PaymentStatus.PENDING)
        self.payment_intent_id = payment_intent_id
        self.payment_failure_reason = None

    def attach_checkout_session(self, session_id: str) -> None:
        self.assert_payable()
        if self.payment_status != PaymentStatus.PENDING.value:
            self._advance_payment(PaymentStatus.PENDING)
        self.checkout_session_id = session_id
        self.payment_failure_reason = None

    def confirm_payment(
        self,
        amount: float | None,
        currency: str | None,
        payment_intent_id: str | None = None,
        payment_method: str | None = None,
    ) -> bool:
        """Record a captured payment; a pending order starts processing.

        A capture that lands on a cancelled order is still recorded so that it
        can be refunded, but the order stays cancelled. So is a capture short of
        the order total: the order stays pending and the shortfall is noted in
        ``payment_failure_reason`` for manual review.
        """
        if not self._advance_payment(PaymentStatus.COMPLETED):
            return False

        now = datetime.now(UTC)
        self.captured_amount = round(amount, 2) if amount is not None else self.total
        if currency:
            self.currency = currency.lower()
        if payment_intent_id:
            self.payment_intent_id = payment_intent_id
        if payment_method:
            self.payment_method = payment_method
        self.paid_at = now
        underpaid = self.captured_amount < self.total - _CENT
        self.payment_failure_reason = (
            f"Underpaid: captured {self.captured_amount:.2f} of {self.total:.2f}" if underpaid else None
        )

        self.raise_(
            PaymentConfirmed(
                order_id=str(self.id),
                payment_intent_id=self.payment_intent_id,
                amount=self.captured_amount,
                currency=self.currency,
                confirmed_at=now,
            )
        )
        if underpaid:
            logger.warning(
                "Captured amount is short of the order total",
                order_id=str(self.id),
                captured_amount=self.captured_amount,
                total=self.total,
            )
        elif OrderStatus(self.status) == OrderStatus.PENDING:
            self.transition_to(OrderStatus.PROCESSING)
        else:
            logger.warning(
                "Payment captured for an order that is no longer pending",
                order_id=str(self.id),
                status=self.status,
            )
        return True

    def record_payment_failure(self, reason: str | None = None) -> bool:
        if not self._advance_payment(PaymentStatus.FAILED):
            return False
        now = datetime.now(UTC)
        self.payment_failure_reason = (reason or "Payment failed")[:500]
        self.raise_(PaymentFailed(order_id=str(self.id), reason=self.payment_failure_reason, failed_at=now))
        return True

    def expire_payment(self) -> bool:
        if not self._advance_payment(PaymentStatus.EXPIRED):
            return False
        self.raise_(PaymentExpired(order_id=str(self.id), expired_at=datetime.now(UTC)))
        return True

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def begin_refund(self) -> None:
        if PaymentStatus(self.payment_status) != PaymentStatus.COMPLETED:
            raise ValidationError({"payment_status": ["Only completed payments can be refunded"]})
        if not self.payment_intent_id:
            raise ValidationError({"payment_intent_id": ["Order has no captured payment to refund"]})
        self.refund_status = RefundStatus.REFUND_PENDING.value
        self.updated_at = datetime.now(UTC)

    def complete_refund(self, amount: float, total_refunded: float, refund_count: int) -> None:
        """Settle a refund the gateway accepted.

        Once the whole captured amount is refunded the payment is closed and a
        delivered order moves to REFUNDED.
        """
        now = datetime.now(UTC)
        if total_refunded >= self.refundable_amount - _CENT:
            self.refund_status = RefundStatus.REFUNDED.value
            self._advance_payment(PaymentStatus.REFUNDED)
            if OrderStatus(self.status) == OrderStatus.DELIVERED:
                self.transition_to(OrderStatus.REFUNDED)
        else:
            self.refund_status = RefundStatus.PARTIALLY_REFUNDED.value
        self.updated_at = now

        logger.info(
            "Refund settled",
            order_id=str(self.id),
            amount=amount,
            total_refunded=total_refunded,
            refund_status=self.refund_status,
        )
        self.raise_(
            RefundIssued(
                order_id=str(self.id),
                amount=amount,
                total_refunded=total_refunded,
                refund_status=self.refund_status,
                refund_count=refund_count,
                refunded_at=now,
            )
        )


@marketplace.repository(part_of=Order)
class OrderRepository:
    def for_user(self, user_id, status: str | None = None, page: int = 1, limit: int = 10) -> tuple[list[Order], int]:
        """A page of the user's orders, newest first, with the total match count."""
        filters = {"user_id": str(user_id)}
        if status:
            filters["status"] = status
        return self._page(self._dao.query.filter(**filters), page, limit)

    def for_seller(self, seller_id, status: str | None = None, page: int = 1, limit: int = 10):
        """A page of orders holding at least one of the seller's items, newest first.

        Line items are stored apart from their order, so the seller match runs
        over the loaded orders.
        """
        query = self._dao.query
        if status:
            query = query.filter(status=status)
        orders = [
            order
            for order in query.order_by("-created_at").limit(None).all().items
            if str(seller_id) in order.seller_ids
        ]
        start = (max(page, 1) - 1) * limit
        return orders[start : start + limit], len(orders)

    def all(self, status: str | None = None, search: str | None = None, page: int = 1, limit: int = 20):
        query = self._dao.query
        if status:
            query = query.filter(status=status)
        if search:
            query = query.filter(order_number__icontains=search)
        return self._page(query, page, limit)

    def by_order_number(self, order_number: str) -> Order | None:
        orders = self._dao.query.filter(order_number=order_number).all().items
        return orders[0] if orders else None

    def _page(self, query, page: int, limit: int):
        page = max(page, 1)
        result = query.order_by("-created_at").offset((page - 1) * limit).limit(limit).all()
        return result.items, result.total
