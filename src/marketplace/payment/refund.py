"""Refunds: commands for both sides of the gateway call, and the
RefundCoordinator that drives them.

The gateway is never called inside an open unit of work. ``BeginRefund``
validates the amount and books a pending record, the coordinator calls the
gateway, then ``CompleteRefund`` or ``FailRefund`` settles the record.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import GatewayError, GatewayUnavailable
from marketplace.gateway.port import PaymentGateway
from marketplace.order.order import Order
from marketplace.payment.refund_record import RefundReason, RefundRecord, RefundRecordStatus

logger = structlog.get_logger(__name__)

_CENT = 0.005


@marketplace.command(part_of="RefundRecord")
class BeginRefund:
    order_id = Identifier(required=True)
    amount = Float(min_value=0.0)  # Optional: defaults to the whole remaining amount
    reason = String(max_length=50)


@marketplace.command(part_of="RefundRecord")
class CompleteRefund:
    refund_record_id = Identifier(required=True)
    gateway_refund_id = String(max_length=255)


@marketplace.command(part_of="RefundRecord")
class FailRefund:
    refund_record_id = Identifier(required=True)
    reason = String(max_length=500)


@marketplace.command_handler(part_of=RefundRecord)
class RefundHandler:
    @handle(BeginRefund)
    def begin_refund(self, command):
        orders = current_domain.repository_for(Order)
        records = current_domain.repository_for(RefundRecord)

        order = orders.get(command.order_id)
        order.begin_refund()

        remaining = round(order.refundable_amount - records.committed_total(order.id), 2)
        amount = round(command.amount, 2) if command.amount is not None else remaining
        if amount <= 0:
            raise ValidationError({"amount": ["Nothing left to refund on this order"]})
        if amount > remaining + _CENT:
            raise ValidationError({"amount": [f"Refund amount exceeds the refundable amount of {remaining:.2f}"]})

        record = RefundRecord.open(order_id=str(order.id), amount=amount, reason=command.reason)
        orders.add(order)
        records.add(record)
        return str(record.id)

    @handle(CompleteRefund)
    def complete_refund(self, command):
        orders = current_domain.repository_for(Order)
        records = current_domain.repository_for(RefundRecord)

        record = records.get(command.refund_record_id)
        succeeded = [
            r
            for r in records.for_order(record.order_id)
            if r.status == RefundRecordStatus.SUCCEEDED.value and r.id != record.id
        ]
        record.succeed(command.gateway_refund_id)

        order = orders.get(record.order_id)
        order.complete_refund(
            amount=record.amount,
            total_refunded=round(sum(r.amount for r in succeeded) + record.amount, 2),
            refund_count=len(succeeded) + 1,
        )
        records.add(record)
        orders.add(order)

    @handle(FailRefund)
    def fail_refund(self, command):
        records = current_domain.repository_for(RefundRecord)
        record = records.get(command.refund_record_id)
        record.fail(command.reason)
        records.add(record)


class RefundCoordinator:
    def __init__(self, gateway: PaymentGateway | None) -> None:
        self.gateway = gateway

    def refund(self, order_id: str, amount: float | None = None, reason: str | None = None) -> RefundRecord:
        if self.gateway is None:
            raise GatewayUnavailable()
        if reason is not None and reason not in {r.value for r in RefundReason}:
            raise ValidationError({"reason": [f"Unsupported refund reason {reason}"]})

        record_id = current_domain.process(
            BeginRefund(order_id=order_id, amount=amount, reason=reason),
            asynchronous=False,
        )
        records = current_domain.repository_for(RefundRecord)
        record = records.get(record_id)
        order = current_domain.repository_for(Order).get(order_id)

        try:
            result = self.gateway.create_refund(
                payment_intent_id=order.payment_intent_id,
                amount=record.amount,
                reason=reason,
                idempotency_key=f"refund-{record_id}",
            )
        except GatewayError as exc:
            self._fail(record_id, exc.message)
            raise

        if not result.success:
            self._fail(record_id, result.failure_reason)
            raise GatewayError(result.failure_reason or "Refund was declined")

        current_domain.process(
            CompleteRefund(refund_record_id=record_id, gateway_refund_id=result.gateway_refund_id),
            asynchronous=False,
        )
        logger.info("Refund completed", order_id=str(order_id), refund_record_id=record_id, amount=record.amount)
        return records.get(record_id)

    def _fail(self, record_id: str, reason: str | None) -> None:
        logger.error("Refund failed at the gateway", refund_record_id=record_id, reason=reason)
        current_domain.process(FailRefund(refund_record_id=record_id, reason=reason), asynchronous=False)
