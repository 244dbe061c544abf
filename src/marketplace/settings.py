"""Runtime settings for pricing policy and the payment gateway.

Protean infrastructure (databases, brokers) is configured in ``domain.toml``;
everything the order and payment flows need at runtime is read from
environment variables here, once, when the application starts.
"""

import os
from dataclasses import dataclass
from functools import lru_cache


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip().lower() for part in value.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    # Pricing policy
    tax_rate: float = 0.10
    flat_shipping_fee: float = 10.0
    default_currency: str = "usd"

    # Payment gateway
    payment_gateway: str = "stripe"  # stripe | fake | disabled
    stripe_secret_key: str | None = None
    stripe_publishable_key: str | None = None
    stripe_webhook_secret: str | None = None
    gateway_timeout_seconds: float = 10.0
    supported_payment_methods: tuple[str, ...] = ("card",)
    supported_currencies: tuple[str, ...] = ("usd", "eur", "gbp")

    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            tax_rate=float(env.get("TAX_RATE", defaults.tax_rate)),
            flat_shipping_fee=float(env.get("FLAT_SHIPPING_FEE", defaults.flat_shipping_fee)),
            default_currency=env.get("DEFAULT_CURRENCY", defaults.default_currency).lower(),
            payment_gateway=env.get("PAYMENT_GATEWAY", defaults.payment_gateway).lower(),
            stripe_secret_key=env.get("STRIPE_SECRET_KEY") or None,
            stripe_publishable_key=env.get("STRIPE_PUBLISHABLE_KEY") or None,
            stripe_webhook_secret=env.get("STRIPE_WEBHOOK_SECRET") or None,
            gateway_timeout_seconds=float(env.get("GATEWAY_TIMEOUT_SECONDS", defaults.gateway_timeout_seconds)),
            supported_payment_methods=_csv(env.get("SUPPORTED_PAYMENT_METHODS", "card")),
            supported_currencies=_csv(env.get("SUPPORTED_CURRENCIES", "usd,eur,gbp")),
            frontend_url=env.get("FRONTEND_URL", defaults.frontend_url),
            log_level=env.get("LOG_LEVEL", defaults.log_level),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
