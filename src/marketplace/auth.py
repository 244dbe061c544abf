"""Caller identity handed to us by the upstream auth collaborator, and the
ownership rules for orders."""

from dataclasses import dataclass
from enum import Enum

from marketplace.errors import AuthorizationError


class Role(Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Role = Role.BUYER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise AuthorizationError("Admin access required")


def require_role(principal: Principal, *roles: Role) -> None:
    if principal.role not in roles and not principal.is_admin:
        raise AuthorizationError("Not allowed for this role")


def can_view_order(principal: Principal, order) -> bool:
    return principal.is_admin or str(order.user_id) == principal.user_id or principal.user_id in order.seller_ids


def require_order_viewer(principal: Principal, order) -> None:
    if not can_view_order(principal, order):
        raise AuthorizationError("Not authorized to view this order")


def require_order_buyer(principal: Principal, order) -> None:
    if not (principal.is_admin or str(order.user_id) == principal.user_id):
        raise AuthorizationError("Only the buyer can do this")


def require_order_seller(principal: Principal, order) -> None:
    if not (principal.is_admin or principal.user_id in order.seller_ids):
        raise AuthorizationError("Only a seller of an item in this order can do this")
