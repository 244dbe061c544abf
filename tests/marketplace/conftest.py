import pytest

from marketplace.auth import Principal, Role
from marketplace.gateway.fake_adapter import FakeGateway
from marketplace.settings import Settings


@pytest.fixture(scope="session")
def _marketplace_domain():
    """Initialize the marketplace domain once per session."""
    from marketplace.domain import marketplace

    marketplace.init()
    return marketplace


@pytest.fixture(scope="session", autouse=True)
def setup_db(_marketplace_domain):
    from marketplace.utils.db import drop_db, setup_db

    setup_db(_marketplace_domain)

    yield

    drop_db(_marketplace_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_marketplace_domain):
    """Push domain context before each test, cleanup after."""
    ctx = _marketplace_domain.domain_context()
    ctx.push()

    yield

    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()
    ctx.pop()


@pytest.fixture
def settings():
    return Settings(
        payment_gateway="fake",
        stripe_publishable_key="pk_test_123",
        stripe_webhook_secret="whsec_test",
        frontend_url="https://shop.example.com",
    )


@pytest.fixture
def gateway():
    return FakeGateway(webhook_secret="whsec_test", publishable_key="pk_test_123")


@pytest.fixture
def buyer():
    return Principal(user_id="buyer-1", role=Role.BUYER)


@pytest.fixture
def seller():
    return Principal(user_id="seller-1", role=Role.SELLER)


@pytest.fixture
def admin():
    return Principal(user_id="admin-1", role=Role.ADMIN)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
@pytest.fixture
def shipping_address():
    return {
        "street": "1 Market St",
        "city": "San Francisco",
        "state": "CA",
        "zip_code": "94105",
        "country": "US",
    }


@pytest.fixture
def make_product(seller):
    from protean import current_domain

    from marketplace.inventory.stocking import RegisterProduct

    def _make(price=10.0, stock=10, name="Widget", seller_id=None, description=None):
        return current_domain.process(
            RegisterProduct(
                name=name,
                description=description,
                price=price,
                stock=stock,
                seller_id=seller_id or seller.user_id,
            ),
            asynchronous=False,
        )

    return _make


@pytest.fixture
def add_to_cart(buyer):
    from protean import current_domain

    from marketplace.cart.items import AddToCart

    def _add(product_id, quantity=1, user_id=None):
        return current_domain.process(
            AddToCart(user_id=user_id or buyer.user_id, product_id=product_id, quantity=quantity),
            asynchronous=False,
        )

    return _add


@pytest.fixture
def order_service(settings):
    from marketplace.order.pricing import PricingPolicy
    from marketplace.order.service import OrderService

    return OrderService(PricingPolicy.from_settings(settings), currency=settings.default_currency)


@pytest.fixture
def place_order(make_product, add_to_cart, order_service, buyer, shipping_address):
    """Register a product, put it in the buyer's cart and check out."""

    def _place(price=10.0, quantity=2, stock=10, principal=None):
        principal = principal or buyer
        product_id = make_product(price=price, stock=stock)
        add_to_cart(product_id, quantity, user_id=principal.user_id)
        return order_service.create_order(principal, shipping_address, payment_method="card")

    return _place


@pytest.fixture
def payment_service(gateway, settings):
    from marketplace.payment.service import PaymentService

    return PaymentService(gateway, settings)


@pytest.fixture
def reconciler(gateway):
    from marketplace.payment.webhook import WebhookReconciler

    return WebhookReconciler(gateway)


@pytest.fixture
def webhook_payload():
    import json
    from uuid import uuid4

    def _payload(event_type, obj, event_id=None) -> bytes:
        return json.dumps(
            {"id": event_id or f"evt_{uuid4().hex[:12]}", "type": event_type, "data": {"object": obj}}
        ).encode()

    return _payload


@pytest.fixture
def send_webhook(gateway, reconciler, webhook_payload):
    def _send(event_type, obj, event_id=None):
        payload = webhook_payload(event_type, obj, event_id)
        return reconciler.handle(payload, gateway.sign(payload))

    return _send


@pytest.fixture
def succeeded_intent():
    """A ``payment_intent.succeeded`` object as the provider sends it (amounts in cents)."""
    from marketplace.gateway.port import to_minor_units

    def _intent(order, amount=None, intent_id="pi_test_123"):
        return {
            "id": intent_id,
            "amount": to_minor_units(amount if amount is not None else order.total),
            "amount_received": to_minor_units(amount if amount is not None else order.total),
            "currency": "usd",
            "payment_method_types": ["card"],
            "metadata": {"order_id": str(order.id)},
        }

    return _intent


@pytest.fixture
def pay_order(send_webhook, succeeded_intent):
    """Capture payment for an order through the webhook path; return the reloaded order."""
    from protean import current_domain

    from marketplace.order.order import Order

    def _pay(order, amount=None, event_id=None):
        send_webhook("payment_intent.succeeded", succeeded_intent(order, amount), event_id)
        return current_domain.repository_for(Order).get(order.id)

    return _pay
