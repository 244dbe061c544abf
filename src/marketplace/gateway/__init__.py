"""Payment gateway factory.

``build_gateway()`` turns settings into an adapter once, at application
startup:
- StripeGateway when ``payment_gateway == "stripe"`` and a secret key is set
- FakeGateway when ``payment_gateway == "fake"``
- ``None`` (payments disabled) otherwise
"""

import structlog

from marketplace.gateway.fake_adapter import FakeGateway
from marketplace.gateway.port import PaymentGateway
from marketplace.gateway.stripe_adapter import StripeGateway
from marketplace.settings import Settings

logger = structlog.get_logger(__name__)


def build_gateway(settings: Settings) -> PaymentGateway | None:
    if settings.payment_gateway == "fake":
        return FakeGateway(
            webhook_secret=settings.stripe_webhook_secret or "whsec_test",
            publishable_key=settings.stripe_publishable_key or "pk_test_fake",
        )

    if settings.payment_gateway == "stripe" and settings.stripe_secret_key:
        return StripeGateway(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            publishable_key=settings.stripe_publishable_key,
            timeout=settings.gateway_timeout_seconds,
        )

    logger.warning("Payment processing is disabled", payment_gateway=settings.payment_gateway)
    return None
