"""Stripe payment gateway adapter.

Uses a dedicated ``stripe.StripeClient`` per adapter instance rather than the
module-level ``stripe.api_key``, with a bounded HTTP timeout and no automatic
network retries: the caller decides whether to try again.
"""

import json

import stripe
import structlog

from marketplace.errors import GatewayError, GatewayUnavailable, WebhookAuthError
from marketplace.gateway.port import (
    CheckoutLine,
    CheckoutSessionResult,
    PaymentGateway,
    PaymentIntentResult,
    RefundResult,
    WebhookEvent,
    from_minor_units,
    to_minor_units,
)

logger = structlog.get_logger(__name__)


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str | None = None,
        publishable_key: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.webhook_secret = webhook_secret
        self.publishable_key = publishable_key
        self._client = stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout),
            max_network_retries=0,
        )

    def create_payment_intent(
        self,
        amount: float,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntentResult:
        try:
            intent = self._client.v1.payment_intents.create(
                params={
                    "amount": to_minor_units(amount),
                    "currency": currency,
                    "metadata": metadata,
                    "automatic_payment_methods": {"enabled": True},
                },
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as exc:
            logger.error("Stripe payment intent creation failed", error=str(exc), order_id=metadata.get("order_id"))
            raise GatewayError("Failed to create payment intent") from exc

        return PaymentIntentResult(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
        )

    def create_checkout_session(
        self,
        lines: list[CheckoutLine],
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSessionResult:
        line_items = []
        for line in lines:
            product_data = {"name": line.name}
            if line.description:
                product_data["description"] = line.description
            line_items.append(
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": product_data,
                        "unit_amount": to_minor_units(line.unit_amount),
                    },
                    "quantity": line.quantity,
                }
            )

        try:
            session = self._client.v1.checkout.sessions.create(
                params={
                    "mode": "payment",
                    "payment_method_types": ["card"],
                    "line_items": line_items,
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                    "metadata": metadata,
                    "payment_intent_data": {"metadata": metadata},
                }
            )
        except stripe.StripeError as exc:
            logger.error("Stripe checkout session creation failed", error=str(exc), order_id=metadata.get("order_id"))
            raise GatewayError("Failed to create checkout session") from exc

        return CheckoutSessionResult(session_id=session.id, url=session.url)

    def create_refund(
        self,
        payment_intent_id: str,
        amount: float,
        reason: str | None,
        idempotency_key: str,
    ) -> RefundResult:
        params = {"payment_intent": payment_intent_id, "amount": to_minor_units(amount)}
        if reason:
            params["reason"] = reason
        try:
            refund = self._client.v1.refunds.create(params=params, options={"idempotency_key": idempotency_key})
        except stripe.StripeError as exc:
            logger.error("Stripe refund failed", error=str(exc), payment_intent_id=payment_intent_id)
            raise GatewayError("Failed to process refund") from exc

        if refund.status in ("failed", "canceled"):
            return RefundResult(
                success=False,
                gateway_refund_id=refund.id,
                gateway_status=refund.status,
                failure_reason=getattr(refund, "failure_reason", None) or "Refund was not accepted",
            )
        return RefundResult(success=True, gateway_refund_id=refund.id, gateway_status=refund.status)

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        try:
            intent = self._client.v1.payment_intents.retrieve(payment_intent_id)
        except stripe.StripeError as exc:
            logger.error("Stripe payment intent lookup failed", error=str(exc), payment_intent_id=payment_intent_id)
            raise GatewayError("Failed to retrieve payment details") from exc

        return {
            "id": intent.id,
            "amount": from_minor_units(intent.amount),
            "currency": intent.currency,
            "status": intent.status,
            "created": intent.created,
            "metadata": dict(intent.metadata or {}),
        }

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        if not self.webhook_secret:
            raise GatewayUnavailable("Webhook secret is not configured")
        try:
            self._client.construct_event(payload, signature, self.webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            logger.warning("Webhook signature verification failed", error=str(exc))
            raise WebhookAuthError("Invalid webhook signature") from exc

        body = json.loads(payload)
        return WebhookEvent(id=body["id"], type=body["type"], data=body.get("data") or {})
