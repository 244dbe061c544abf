"""Order pricing policy: tax rate and flat shipping applied to a cart snapshot."""

from dataclasses import dataclass

from marketplace.cart.cart import CartSnapshot
from marketplace.settings import Settings


@dataclass(frozen=True)
class OrderTotals:
    subtotal: float
    tax: float
    shipping: float
    total: float


@dataclass(frozen=True)
class PricingPolicy:
    tax_rate: float = 0.10
    flat_shipping_fee: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingPolicy":
        return cls(tax_rate=settings.tax_rate, flat_shipping_fee=settings.flat_shipping_fee)

    def price(self, snapshot: CartSnapshot) -> OrderTotals:
        subtotal = round(sum(line.line_total for line in snapshot.lines), 2)
        tax = round(subtotal * self.tax_rate, 2)
        shipping = round(self.flat_shipping_fee, 2)
        return OrderTotals(
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            total=round(subtotal + tax + shipping, 2),
        )
