"""Product aggregate: the stock-bearing record referenced by carts and orders.

Catalogue concerns (search, categories, images) belong to other services.
This aggregate carries only what checkout needs: the current price, the
seller, availability, and the stock count that the InventoryLedger mutates.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.aggregate
class Product:
    name = String(required=True, max_length=255)
    description = Text()
    price = Float(required=True, min_value=0.0)
    stock = Integer(default=0, min_value=0)
    seller_id = Identifier(required=True)
    is_active = Boolean(default=True)
    created_at = DateTime()

    @invariant.post
    def stock_cannot_be_negative(self):
        if self.stock is not None and self.stock < 0:
            raise ValidationError({"stock": ["Stock cannot be negative"]})

    @classmethod
    def register(cls, name, price, seller_id, stock=0, description=None):
        return cls(
            name=name,
            description=description,
            price=price,
            stock=stock,
            seller_id=seller_id,
            is_active=True,
            created_at=datetime.now(UTC),
        )
