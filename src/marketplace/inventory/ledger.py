"""InventoryLedger: the Product repository that owns stock mutations.

Stock never moves through ``add()``. A reservation is one conditional
decrement that only lands while enough stock remains
(``UPDATE products SET stock = stock - :qty WHERE id = :id AND stock >= :qty``);
a reservation that matches zero rows is refused with ``InsufficientStock``, so
concurrent reservations against the last units cannot both succeed and stock
never goes negative.

The in-memory store has no row-level atomicity: each unit of work edits its
own copy of the data. Commands that move stock therefore run inside
``stock_writes()``, which serializes them in-process whenever the provider
lacks real transactions.
"""

import threading
from contextlib import contextmanager

import structlog
from protean.port.provider import DatabaseCapabilities
from protean.utils.globals import current_domain
from protean.utils.query import Q

from marketplace.domain import marketplace
from marketplace.errors import InsufficientStock
from marketplace.inventory.product import Product

logger = structlog.get_logger(__name__)

_serial_stock_writes = threading.RLock()


def _has_transactions(provider) -> bool:
    return provider.has_capability(DatabaseCapabilities.TRANSACTIONS)


@contextmanager
def stock_writes():
    """Scope one stock-moving command, from unit-of-work start to commit."""
    provider = current_domain.repository_for(Product)._dao.provider
    if _has_transactions(provider):
        yield
        return

    with _serial_stock_writes:
        yield


@marketplace.repository(part_of=Product)
class InventoryLedger:
    def reserve(self, product_id, quantity: int) -> int:
        """Decrement stock by ``quantity``; return the new stock level."""
        if quantity < 1:
            raise ValueError("quantity must be positive")

        if not self._decrement(product_id, quantity):
            available = self.stock_of(product_id)
            logger.info(
                "Stock reservation refused",
                product_id=str(product_id),
                requested=quantity,
                available=available,
            )
            raise InsufficientStock(product_id, requested=quantity, available=available)

        remaining = self.stock_of(product_id)
        logger.info("Stock reserved", product_id=str(product_id), quantity=quantity, remaining=remaining)
        return remaining

    def release(self, product_id, quantity: int) -> int:
        """Increment stock by ``quantity``; return the new stock level."""
        if quantity < 1:
            raise ValueError("quantity must be positive")

        criteria = Q(id=str(product_id))
        if _has_transactions(self._dao.provider):
            model = self._dao.database_model_cls
            self._dao._update_all(criteria, stock=model.stock + quantity)
        else:
            self._dao._update_all(criteria, stock=self.stock_of(product_id) + quantity)

        remaining = self.stock_of(product_id)
        logger.info("Stock released", product_id=str(product_id), quantity=quantity, remaining=remaining)
        return remaining

    def stock_of(self, product_id) -> int:
        # Read through the DAO so a product cached in the unit of work's
        # identity map never hides a newer stock level.
        return self._dao.get(product_id).stock

    def _decrement(self, product_id, quantity: int) -> bool:
        criteria = Q(id=str(product_id), stock__gte=quantity)
        if _has_transactions(self._dao.provider):
            model = self._dao.database_model_cls
            return self._dao._update_all(criteria, stock=model.stock - quantity) == 1

        # Stock writers hold _serial_stock_writes here, so this level is current.
        current = self.stock_of(product_id)
        return self._dao._update_all(criteria, stock=current - quantity) == 1
