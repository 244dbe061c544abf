"""Marketplace FastAPI application.

Web server that processes commands synchronously via HTTP. Each request is
wrapped in the marketplace domain context; the payment gateway and services
are built once from settings when the application starts.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay of domain.toml is applied.
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.domain import marketplace

marketplace.init()

from marketplace.api import (  # noqa: E402
    cart_router,
    order_router,
    payment_router,
    product_router,
    register_error_handlers,
)
from marketplace.gateway import build_gateway  # noqa: E402
from marketplace.gateway.port import PaymentGateway  # noqa: E402
from marketplace.order.pricing import PricingPolicy  # noqa: E402
from marketplace.order.service import OrderService  # noqa: E402
from marketplace.payment.service import PaymentService  # noqa: E402
from marketplace.payment.webhook import WebhookReconciler  # noqa: E402
from marketplace.settings import Settings, get_settings  # noqa: E402
from marketplace.utils.logging import configure_logging  # noqa: E402


def wire_services(app: FastAPI, settings: Settings, gateway: PaymentGateway | None) -> None:
    """Attach the services every route depends on to ``app.state``."""
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.order_service = OrderService(PricingPolicy.from_settings(settings), currency=settings.default_currency)
    app.state.payment_service = PaymentService(gateway, settings)
    app.state.webhook_reconciler = WebhookReconciler(gateway)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        wire_services(app, settings, build_gateway(settings))
        yield

    app = FastAPI(
        title="Marketplace API",
        description="Order lifecycle and payment reconciliation",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the marketplace domain context for each request."""
        with marketplace.domain_context():
            response = await call_next(request)
        return response

    register_error_handlers(app)

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(order_router)
    app.include_router(cart_router)
    app.include_router(product_router)
    app.include_router(payment_router)

    # -----------------------------------------------------------------------
    # Health / root
    # -----------------------------------------------------------------------
    @app.get("/health")
    async def health():
        return JSONResponse(
            content={
                "status": "ok",
                "domain": marketplace.name,
                "payments_enabled": getattr(app.state, "gateway", None) is not None,
            }
        )

    return app


app = create_app()
