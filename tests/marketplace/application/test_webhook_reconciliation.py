"""Application tests for webhook verification, deduplication and reconciliation."""

import json

import pytest
from protean import current_domain

from marketplace.errors import GatewayUnavailable, WebhookAuthError
from marketplace.order.order import Order, OrderStatus, PaymentStatus
from marketplace.payment.payment_event import EventOutcome, PaymentEvent
from marketplace.payment.reconciliation import ApplyPaymentEvent
from marketplace.payment.webhook import WebhookReconciler


def _reload(order):
    return current_domain.repository_for(Order).get(order.id)


def _recorded_events():
    return current_domain.repository_for(PaymentEvent)._dao.query.all().items


class TestSignatureVerification:
    def test_bad_signature_is_rejected_without_effects(self, place_order, reconciler, webhook_payload, succeeded_intent):
        order = place_order()
        payload = webhook_payload("payment_intent.succeeded", succeeded_intent(order))

        with pytest.raises(WebhookAuthError):
            reconciler.handle(payload, "not-a-signature")

        assert _reload(order).payment_status == PaymentStatus.PENDING.value
        assert _recorded_events() == []

    def test_missing_signature(self, reconciler, webhook_payload):
        with pytest.raises(WebhookAuthError):
            reconciler.handle(webhook_payload("payment_intent.succeeded", {}), None)

    def test_signature_from_another_secret(self, place_order, reconciler, webhook_payload, succeeded_intent):
        from marketplace.gateway.fake_adapter import FakeGateway

        order = place_order()
        payload = webhook_payload("payment_intent.succeeded", succeeded_intent(order))
        forged = FakeGateway(webhook_secret="whsec_attacker").sign(payload)

        with pytest.raises(WebhookAuthError):
            reconciler.handle(payload, forged)

    def test_disabled_payments(self, webhook_payload):
        with pytest.raises(GatewayUnavailable):
            WebhookReconciler(None).handle(webhook_payload("payment_intent.succeeded", {}), "sig")


class TestPaymentSucceeded:
    def test_success_moves_order_to_processing(self, place_order, send_webhook, succeeded_intent):
        order = place_order()
        assert send_webhook("payment_intent.succeeded", succeeded_intent(order)) == {"received": True}

        order = _reload(order)
        assert order.payment_status == PaymentStatus.COMPLETED.value
        assert order.status == OrderStatus.PROCESSING.value
        assert order.captured_amount == 32.0
        assert order.payment_intent_id == "pi_test_123"

        [event] = _recorded_events()
        assert event.outcome == EventOutcome.APPLIED.value
        assert event.order_id == order.id

    def test_underpaid_capture_keeps_order_pending(self, place_order, pay_order):
        order = pay_order(place_order(), amount=0.50)

        assert order.payment_status == PaymentStatus.COMPLETED.value
        assert order.status == OrderStatus.PENDING.value
        assert order.captured_amount == 0.5
        assert order.payment_failure_reason == "Underpaid: captured 0.50 of 32.00"

    def test_same_event_twice_is_applied_once(self, place_order, send_webhook, succeeded_intent):
        order = place_order()
        intent = succeeded_intent(order)
        send_webhook("payment_intent.succeeded", intent, event_id="evt_dup")
        first = _reload(order).to_dict()

        assert send_webhook("payment_intent.succeeded", intent, event_id="evt_dup") == {"received": True}

        assert _reload(order).to_dict() == first
        assert len(_recorded_events()) == 1

    def test_unknown_order_is_acknowledged_and_kept_for_review(self, send_webhook):
        intent = {"id": "pi_x", "amount": 1000, "currency": "usd", "metadata": {"order_id": "no-such-order"}}
        assert send_webhook("payment_intent.succeeded", intent, event_id="evt_orphan") == {"received": True}

        event = current_domain.repository_for(PaymentEvent).find("evt_orphan")
        assert event.outcome == EventOutcome.UNRESOLVED.value
        assert [e.provider_event_id for e in current_domain.repository_for(PaymentEvent).unresolved()] == [
            "evt_orphan"
        ]

    def test_missing_order_reference(self, send_webhook):
        send_webhook("payment_intent.succeeded", {"id": "pi_x", "amount": 1000}, event_id="evt_no_meta")
        assert current_domain.repository_for(PaymentEvent).find("evt_no_meta").outcome == "unresolved"


class TestOtherEvents:
    def test_payment_failed(self, place_order, send_webhook):
        order = place_order()
        send_webhook(
            "payment_intent.payment_failed",
            {
                "id": "pi_1",
                "metadata": {"order_id": str(order.id)},
                "last_payment_error": {"message": "Your card was declined."},
            },
        )
        order = _reload(order)
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.payment_failure_reason == "Your card was declined."
        assert order.status == OrderStatus.PENDING.value

    def test_checkout_session_completed(self, place_order, send_webhook):
        order = place_order()
        send_webhook(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "payment_intent": "pi_from_session",
                "amount_total": 3200,
                "currency": "usd",
                "metadata": {"order_id": str(order.id)},
            },
        )
        order = _reload(order)
        assert order.payment_status == PaymentStatus.COMPLETED.value
        assert order.payment_intent_id == "pi_from_session"
        assert order.status == OrderStatus.PROCESSING.value

    def test_checkout_session_expired(self, place_order, send_webhook):
        order = place_order()
        send_webhook("checkout.session.expired", {"id": "cs_1", "metadata": {"order_id": str(order.id)}})
        assert _reload(order).payment_status == PaymentStatus.EXPIRED.value

    def test_unhandled_event_type_is_acknowledged(self, send_webhook):
        assert send_webhook("customer.created", {"id": "cus_1"}, event_id="evt_other") == {"received": True}
        assert current_domain.repository_for(PaymentEvent).find("evt_other").outcome == "ignored"


class TestOutOfOrderDelivery:
    def test_expiry_after_completion_is_a_no_op(self, place_order, pay_order, send_webhook):
        order = pay_order(place_order())
        send_webhook(
            "checkout.session.expired",
            {"id": "cs_1", "metadata": {"order_id": str(order.id)}},
            event_id="evt_late_expiry",
        )

        order = _reload(order)
        assert order.payment_status == PaymentStatus.COMPLETED.value
        assert order.status == OrderStatus.PROCESSING.value
        assert current_domain.repository_for(PaymentEvent).find("evt_late_expiry").outcome == "ignored"

    def test_success_after_failure(self, place_order, send_webhook, succeeded_intent):
        order = place_order()
        send_webhook(
            "payment_intent.payment_failed",
            {"id": "pi_1", "metadata": {"order_id": str(order.id)}, "last_payment_error": {"message": "declined"}},
        )
        send_webhook("payment_intent.succeeded", succeeded_intent(order))

        order = _reload(order)
        assert order.payment_status == PaymentStatus.COMPLETED.value
        assert order.status == OrderStatus.PROCESSING.value

    def test_failure_after_success_is_a_no_op(self, place_order, pay_order, send_webhook):
        order = pay_order(place_order())
        send_webhook(
            "payment_intent.payment_failed",
            {"id": "pi_1", "metadata": {"order_id": str(order.id)}, "last_payment_error": {"message": "declined"}},
        )
        assert _reload(order).payment_status == PaymentStatus.COMPLETED.value

    def test_capture_after_cancellation_is_recorded(self, place_order, order_service, buyer, pay_order):
        order = place_order()
        order_service.cancel_order(buyer, order.id)

        order = pay_order(order)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.COMPLETED.value


class TestApplyPaymentEventCommand:
    def test_command_carries_the_provider_object(self, place_order, succeeded_intent):
        order = place_order()
        command = ApplyPaymentEvent(
            provider_event_id="evt_direct",
            event_type="payment_intent.succeeded",
            order_id=str(order.id),
            event_object=json.dumps(succeeded_intent(order, intent_id="pi_direct")),
        )

        assert current_domain.process(command, asynchronous=False) == EventOutcome.APPLIED.value

        order = _reload(order)
        assert order.payment_intent_id == "pi_direct"
        assert order.status == OrderStatus.PROCESSING.value


class TestUnderpaidCheckout:
    def test_checkout_for_less_than_the_total_is_not_fulfilled(self, place_order, send_webhook):
        order = place_order()  # total 32.00
        send_webhook(
            "checkout.session.completed",
            {
                "id": "cs_cheap",
                "payment_intent": "pi_cheap",
                "amount_total": 50,
                "currency": "usd",
                "metadata": {"order_id": str(order.id)},
            },
        )

        order = _reload(order)
        assert order.status == OrderStatus.PENDING.value
        assert order.captured_amount == 0.5
        assert order.payment_failure_reason.startswith("Underpaid")
