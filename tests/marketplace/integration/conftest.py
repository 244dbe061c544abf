import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from marketplace.api import cart_router, order_router, payment_router, product_router, register_error_handlers
from marketplace.order.pricing import PricingPolicy
from marketplace.order.service import OrderService
from marketplace.payment.service import PaymentService
from marketplace.payment.webhook import WebhookReconciler

SELLER = {"X-User-Id": "seller-1", "X-User-Role": "seller"}
BUYER = {"X-User-Id": "buyer-1", "X-User-Role": "buyer"}
ADDRESS = {"street": "1 Market St", "city": "San Francisco", "state": "CA", "zipCode": "94105", "country": "US"}


def _build_client(settings, gateway) -> TestClient:
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(order_router)
    app.include_router(cart_router)
    app.include_router(product_router)
    app.include_router(payment_router)

    app.state.settings = settings
    app.state.gateway = gateway
    app.state.order_service = OrderService(PricingPolicy.from_settings(settings), currency=settings.default_currency)
    app.state.payment_service = PaymentService(gateway, settings)
    app.state.webhook_reconciler = WebhookReconciler(gateway)
    return TestClient(app)


@pytest.fixture()
def client_for(settings):
    """Build a TestClient wired to the given gateway (None disables payments)."""

    def _client(gateway):
        return _build_client(settings, gateway)

    return _client


@pytest.fixture()
def client(client_for, gateway):
    return client_for(gateway)


@pytest.fixture()
def api_product(client):
    """Register a product through the API as the seller; return its id."""

    def _create(price=10.0, stock=10, name="Widget"):
        response = client.post("/products", json={"name": name, "price": price, "stock": stock}, headers=SELLER)
        assert response.status_code == 201
        return response.json()["id"]

    return _create


@pytest.fixture()
def api_order(client, api_product):
    """Put a product in the buyer's cart and check out; return the order body."""

    def _place(price=10.0, quantity=2, stock=10):
        product_id = api_product(price=price, stock=stock)
        response = client.post("/cart", json={"productId": product_id, "quantity": quantity}, headers=BUYER)
        assert response.status_code == 201
        response = client.post(
            "/orders",
            json={"shippingAddress": ADDRESS, "paymentMethod": "card"},
            headers=BUYER,
        )
        assert response.status_code == 201
        return response.json()

    return _place
