"""PaymentEvent: the dedup record for provider webhooks.

The provider's event id is the record's identity, so a second insert of the
same event fails at the store instead of being applied twice.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, String

from marketplace.domain import marketplace


class EventOutcome(Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"


@marketplace.aggregate
class PaymentEvent:
    provider_event_id = String(identifier=True, max_length=255)
    event_type = String(required=True, max_length=100)
    order_id = Identifier()
    outcome = String(choices=EventOutcome, required=True)
    applied_at = DateTime()

    @classmethod
    def record(cls, provider_event_id, event_type, order_id, outcome: EventOutcome):
        return cls(
            provider_event_id=provider_event_id,
            event_type=event_type,
            order_id=order_id,
            outcome=outcome.value,
            applied_at=datetime.now(UTC),
        )


@marketplace.repository(part_of=PaymentEvent)
class PaymentEventRepository:
    def find(self, provider_event_id) -> PaymentEvent | None:
        events = self._dao.query.filter(provider_event_id=provider_event_id).all().items
        return events[0] if events else None

    def unresolved(self) -> list[PaymentEvent]:
        return self._dao.query.filter(outcome=EventOutcome.UNRESOLVED.value).order_by("-applied_at").all().items
