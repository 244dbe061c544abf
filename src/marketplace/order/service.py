"""OrderService: order placement, queries and status changes for a caller."""

import json

from protean.utils.globals import current_domain

from marketplace.auth import (
    Principal,
    Role,
    require_admin,
    require_order_buyer,
    require_order_seller,
    require_order_viewer,
    require_role,
)
from marketplace.inventory.ledger import stock_writes
from marketplace.order.creation import CreateOrder
from marketplace.order.order import Order, OrderStatus
from marketplace.order.pricing import PricingPolicy
from marketplace.order.status import CancelOrder, UpdateOrderStatus


class OrderService:
    def __init__(self, pricing: PricingPolicy, currency: str = "usd") -> None:
        self.pricing = pricing
        self.currency = currency

    def _orders(self):
        return current_domain.repository_for(Order)

    def create_order(
        self,
        principal: Principal,
        shipping_address: dict,
        payment_method: str | None = None,
        notes: str | None = None,
    ) -> Order:
        command = CreateOrder(
            user_id=principal.user_id,
            shipping_address=json.dumps(shipping_address),
            payment_method=payment_method,
            notes=notes,
            tax_rate=self.pricing.tax_rate,
            shipping_fee=self.pricing.flat_shipping_fee,
            currency=self.currency,
        )
        with stock_writes():
            order_id = current_domain.process(command, asynchronous=False)
        return self._orders().get(order_id)

    def get_order(self, principal: Principal, order_id: str) -> Order:
        order = self._orders().get(order_id)
        require_order_viewer(principal, order)
        return order

    def list_orders(self, principal: Principal, status: str | None = None, page: int = 1, limit: int = 10):
        return self._orders().for_user(principal.user_id, status=status, page=page, limit=limit)

    def list_seller_orders(self, principal: Principal, status: str | None = None, page: int = 1, limit: int = 10):
        require_role(principal, Role.SELLER)
        return self._orders().for_seller(principal.user_id, status=status, page=page, limit=limit)

    def list_all_orders(
        self,
        principal: Principal,
        status: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ):
        require_admin(principal)
        return self._orders().all(status=status, search=search, page=page, limit=limit)

    def cancel_order(self, principal: Principal, order_id: str, reason: str | None = None) -> Order:
        order = self._orders().get(order_id)
        require_order_buyer(principal, order)
        with stock_writes():
            current_domain.process(CancelOrder(order_id=order_id, reason=reason), asynchronous=False)
        return self._orders().get(order_id)

    def update_status(self, principal: Principal, order_id: str, status: OrderStatus) -> Order:
        order = self._orders().get(order_id)
        require_order_seller(principal, order)
        with stock_writes():
            current_domain.process(UpdateOrderStatus(order_id=order_id, status=status.value), asynchronous=False)
        return self._orders().get(order_id)
