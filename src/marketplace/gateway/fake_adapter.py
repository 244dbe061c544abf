"""Configurable fake payment gateway for development and testing.

This adapter simulates the payment provider without any external calls.
It can be configured at runtime to succeed, decline, or be unreachable, and
it records every call it receives for assertions in tests.

Webhooks are signed with HMAC-SHA256 over the raw payload using the webhook
secret; ``sign()`` produces the matching signature header value.
"""

import hashlib
import hmac
import json
from uuid import uuid4

from marketplace.errors import GatewayError, WebhookAuthError
from marketplace.gateway.port import (
    CheckoutLine,
    CheckoutSessionResult,
    PaymentGateway,
    PaymentIntentResult,
    RefundResult,
    WebhookEvent,
)


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, webhook_secret: str = "whsec_test", publishable_key: str | None = "pk_test_fake") -> None:
        self.webhook_secret = webhook_secret
        self.publishable_key = publishable_key
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.unavailable: bool = False
        self.calls: list[dict] = []
        self.payment_intents: dict[str, dict] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined", unavailable: bool = False) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.unavailable = unavailable

    def _record(self, method: str, **details) -> None:
        self.calls.append({"method": method, **details})
        if self.unavailable:
            raise GatewayError("Payment gateway timed out")

    def create_payment_intent(
        self,
        amount: float,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntentResult:
        self._record(
            "create_payment_intent",
            amount=amount,
            currency=currency,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        if not self.should_succeed:
            raise GatewayError(self.failure_reason)

        intent_id = f"pi_fake_{uuid4().hex[:12]}"
        self.payment_intents[intent_id] = {
            "id": intent_id,
            "amount": amount,
            "currency": currency,
            "status": "requires_payment_method",
            "metadata": dict(metadata),
        }
        return PaymentIntentResult(
            payment_intent_id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid4().hex[:8]}",
            status="requires_payment_method",
        )

    def create_checkout_session(
        self,
        lines: list[CheckoutLine],
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSessionResult:
        self._record(
            "create_checkout_session",
            lines=lines,
            currency=currency,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
        if not self.should_succeed:
            raise GatewayError(self.failure_reason)

        session_id = f"cs_fake_{uuid4().hex[:12]}"
        return CheckoutSessionResult(session_id=session_id, url=f"https://checkout.fake/{session_id}")

    def create_refund(
        self,
        payment_intent_id: str,
        amount: float,
        reason: str | None,
        idempotency_key: str,
    ) -> RefundResult:
        self._record(
            "create_refund",
            payment_intent_id=payment_intent_id,
            amount=amount,
            reason=reason,
            idempotency_key=idempotency_key,
        )
        if self.should_succeed:
            return RefundResult(
                success=True,
                gateway_refund_id=f"re_fake_{uuid4().hex[:12]}",
                gateway_status="succeeded",
            )
        return RefundResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        self._record("retrieve_payment_intent", payment_intent_id=payment_intent_id)
        if payment_intent_id not in self.payment_intents:
            raise GatewayError(f"No such payment intent: {payment_intent_id}")
        return dict(self.payment_intents[payment_intent_id])

    def sign(self, payload: bytes | str) -> str:
        if isinstance(payload, str):
            payload = payload.encode()
        return hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        if not signature or not hmac.compare_digest(self.sign(payload), signature):
            raise WebhookAuthError("Invalid webhook signature")
        body = json.loads(payload)
        return WebhookEvent(id=body["id"], type=body["type"], data=body.get("data") or {})
