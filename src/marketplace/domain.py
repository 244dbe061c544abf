"""Marketplace bounded context: orders, inventory and payment reconciliation.

Cart, stock, orders and payment event records live in one domain so that
order placement and webhook application each commit as a single unit of work.
"""

import structlog
from protean.domain import Domain

marketplace = Domain(name="marketplace")

logger = structlog.get_logger(__name__)
