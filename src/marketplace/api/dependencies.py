"""FastAPI dependencies: caller identity from the auth collaborator's headers
and the services wired at application startup."""

from fastapi import Header, Request

from marketplace.auth import Principal, Role
from marketplace.errors import AuthenticationRequired, AuthorizationError
from marketplace.order.service import OrderService
from marketplace.payment.service import PaymentService
from marketplace.payment.webhook import WebhookReconciler


def get_principal(
    x_user_id: str | None = Header(default=None),
    x_user_role: str = Header(default=Role.BUYER.value),
) -> Principal:
    if not x_user_id:
        raise AuthenticationRequired("Authentication required")
    try:
        role = Role(x_user_role.upper())
    except ValueError:
        raise AuthorizationError(f"Unknown role {x_user_role}") from None
    return Principal(user_id=x_user_id, role=role)


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service


def get_webhook_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.webhook_reconciler
