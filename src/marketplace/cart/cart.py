"""Cart lines and the snapshot reader used at checkout.

A cart is simply the set of CartLine records a user holds. Each line keeps the
unit price seen when the product was added; order placement reads an immutable
CartSnapshot and prices the order from it.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from protean.fields import DateTime, Float, Identifier, Integer

from marketplace.domain import marketplace


@marketplace.aggregate
class CartLine:
    user_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    added_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, user_id, product_id, quantity, unit_price):
        now = datetime.now(UTC)
        return cls(
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            added_at=now,
            updated_at=now,
        )

    def change_quantity(self, quantity):
        self.quantity = quantity
        self.updated_at = datetime.now(UTC)


@dataclass(frozen=True)
class CartSnapshotLine:
    product_id: str
    quantity: int
    unit_price: float

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)


@dataclass(frozen=True)
class CartSnapshot:
    user_id: str
    lines: tuple[CartSnapshotLine, ...]
    taken_at: datetime

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total(self) -> float:
        return round(sum(line.line_total for line in self.lines), 2)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


@marketplace.repository(part_of=CartLine)
class CartRepository:
    def lines_for(self, user_id) -> list[CartLine]:
        return self._dao.query.filter(user_id=str(user_id)).order_by("added_at").all().items

    def line_for(self, user_id, product_id) -> CartLine | None:
        lines = self._dao.query.filter(user_id=str(user_id), product_id=str(product_id)).all().items
        return lines[0] if lines else None

    def snapshot(self, user_id) -> CartSnapshot:
        lines = tuple(
            CartSnapshotLine(
                product_id=str(line.product_id),
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in self.lines_for(user_id)
        )
        return CartSnapshot(user_id=str(user_id), lines=lines, taken_at=datetime.now(UTC))

    def clear(self, user_id) -> int:
        lines = self.lines_for(user_id)
        for line in lines:
            self._dao.delete(line)
        return len(lines)
