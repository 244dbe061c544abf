"""RefundRecord: one refund attempt against an order's captured payment."""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


class RefundRecordStatus(Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class RefundReason(Enum):
    DUPLICATE = "duplicate"
    FRAUDULENT = "fraudulent"
    REQUESTED_BY_CUSTOMER = "requested_by_customer"


@marketplace.aggregate
class RefundRecord:
    order_id = Identifier(required=True)
    refund_id = String(max_length=255)  # gateway refund id
    amount = Float(required=True, min_value=0.01)
    reason = String(choices=RefundReason)
    status = String(choices=RefundRecordStatus, default=RefundRecordStatus.PENDING.value)
    failure_reason = String(max_length=500)
    created_at = DateTime()
    processed_at = DateTime()

    @classmethod
    def open(cls, order_id, amount: float, reason: str | None = None):
        return cls(
            order_id=order_id,
            amount=amount,
            reason=reason,
            status=RefundRecordStatus.PENDING.value,
            created_at=datetime.now(UTC),
        )

    def succeed(self, refund_id: str | None) -> None:
        self.refund_id = refund_id
        self.status = RefundRecordStatus.SUCCEEDED.value
        self.processed_at = datetime.now(UTC)

    def fail(self, reason: str | None) -> None:
        self.status = RefundRecordStatus.FAILED.value
        self.failure_reason = (reason or "Refund failed")[:500]
        self.processed_at = datetime.now(UTC)


@marketplace.repository(part_of=RefundRecord)
class RefundRecordRepository:
    def for_order(self, order_id) -> list[RefundRecord]:
        return self._dao.query.filter(order_id=str(order_id)).order_by("created_at").all().items

    def committed_total(self, order_id) -> float:
        """Pending and succeeded refunds; both count against the captured amount."""
        return round(
            sum(r.amount for r in self.for_order(order_id) if r.status != RefundRecordStatus.FAILED.value),
            2,
        )
