"""Marketplace error taxonomy.

Input validation and missing records use Protean's ``ValidationError`` and
``ObjectNotFoundError``. The errors below cover the order and payment rules;
each carries a stable ``code`` and the HTTP status the API answers with.
"""


class MarketplaceError(Exception):
    code = "marketplace_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationRequired(MarketplaceError):
    code = "unauthenticated"
    status_code = 401


class AuthorizationError(MarketplaceError):
    code = "forbidden"
    status_code = 403


class InsufficientStock(MarketplaceError):
    code = "insufficient_stock"
    status_code = 400

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        super().__init__(f"Insufficient stock for product {product_id}: requested {requested}, available {available}")
        self.product_id = str(product_id)
        self.requested = requested
        self.available = available


class InvalidTransition(MarketplaceError):
    code = "invalid_transition"
    status_code = 400

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Cannot change status from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class GatewayUnavailable(MarketplaceError):
    code = "payment_unavailable"
    status_code = 503

    def __init__(self, message: str = "Payment processing is currently disabled") -> None:
        super().__init__(message)


class GatewayError(MarketplaceError):
    code = "payment_gateway_error"
    status_code = 502


class WebhookAuthError(MarketplaceError):
    code = "invalid_webhook_signature"
    status_code = 400
