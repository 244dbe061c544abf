"""Pydantic request/response schemas for the marketplace API.

These are external contracts (anti-corruption layer), separate from the
internal Protean commands. Fields are camelCase on the wire and snake_case
in Python.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from marketplace.order.order import OrderStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class ShippingAddressSchema(CamelModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str | None = None
    zip_code: str = Field(min_length=1)
    country: str = Field(min_length=1)


class CreateOrderRequest(CamelModel):
    shipping_address: ShippingAddressSchema
    payment_method: str = Field(min_length=1, max_length=50)
    notes: str | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "shippingAddress": {
                        "street": "1 Market St",
                        "city": "San Francisco",
                        "state": "CA",
                        "zipCode": "94105",
                        "country": "US",
                    },
                    "paymentMethod": "card",
                    "notes": "Leave at the front desk",
                }
            ]
        },
    )


class CancelOrderRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=500)


class UpdateOrderStatusRequest(CamelModel):
    status: OrderStatus


class OrderItemResponse(CamelModel):
    id: str
    product_id: str
    seller_id: str
    quantity: int
    price: float
    total: float


class OrderResponse(CamelModel):
    id: str
    order_number: str
    user_id: str
    status: str
    payment_status: str
    refund_status: str | None = None
    subtotal: float
    tax: float
    shipping: float
    total: float
    currency: str
    captured_amount: float | None = None
    shipping_address: ShippingAddressSchema | None = None
    payment_method: str | None = None
    notes: str | None = None
    payment_intent_id: str | None = None
    checkout_session_id: str | None = None
    payment_failure_reason: str | None = None
    cancellation_reason: str | None = None
    items: list[OrderItemResponse] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None

    @classmethod
    def from_order(cls, order, seller_id: str | None = None) -> "OrderResponse":
        """Serialize an order; with ``seller_id`` only that seller's lines are listed."""
        address = order.shipping_address
        return cls(
            id=str(order.id),
            order_number=order.order_number,
            user_id=str(order.user_id),
            status=order.status,
            payment_status=order.payment_status,
            refund_status=order.refund_status,
            subtotal=order.subtotal,
            tax=order.tax,
            shipping=order.shipping,
            total=order.total,
            currency=order.currency,
            captured_amount=order.captured_amount,
            shipping_address=(
                ShippingAddressSchema(
                    street=address.street,
                    city=address.city,
                    state=address.state,
                    zip_code=address.zip_code,
                    country=address.country,
                )
                if address
                else None
            ),
            payment_method=order.payment_method,
            notes=order.notes,
            payment_intent_id=order.payment_intent_id,
            checkout_session_id=order.checkout_session_id,
            payment_failure_reason=order.payment_failure_reason,
            cancellation_reason=order.cancellation_reason,
            items=[
                OrderItemResponse(
                    id=str(item.id),
                    product_id=str(item.product_id),
                    seller_id=str(item.seller_id),
                    quantity=item.quantity,
                    price=item.price,
                    total=item.total,
                )
                for item in order.items or []
                if seller_id is None or str(item.seller_id) == seller_id
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
            paid_at=order.paid_at,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            cancelled_at=order.cancelled_at,
        )


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(CamelModel):
    orders: list[OrderResponse]
    pagination: Pagination

    @classmethod
    def from_page(cls, orders, total: int, page: int, limit: int, seller_id: str | None = None) -> "OrderListResponse":
        return cls(
            orders=[OrderResponse.from_order(order, seller_id=seller_id) for order in orders],
            pagination=Pagination(page=page, limit=limit, total=total, pages=-(-total // limit) if limit else 0),
        )


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(CamelModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)


class UpdateCartItemRequest(CamelModel):
    product_id: str
    quantity: int = Field(ge=1)


class CartLineResponse(CamelModel):
    id: str
    product_id: str
    quantity: int
    unit_price: float
    line_total: float


class CartResponse(CamelModel):
    items: list[CartLineResponse]
    total: float
    item_count: int


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------
class RegisterProductRequest(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    price: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)


class RestockRequest(CamelModel):
    quantity: int = Field(ge=1)


class ProductResponse(CamelModel):
    id: str
    name: str
    description: str | None = None
    price: float
    stock: int
    seller_id: str
    is_active: bool

    @classmethod
    def from_product(cls, product) -> "ProductResponse":
        return cls(
            id=str(product.id),
            name=product.name,
            description=product.description,
            price=product.price,
            stock=product.stock,
            seller_id=str(product.seller_id),
            is_active=product.is_active,
        )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class PaymentConfigResponse(CamelModel):
    enabled: bool
    publishable_key: str | None = None
    supported_methods: list[str]
    supported_currencies: list[str]


class CreatePaymentIntentRequest(CamelModel):
    order_id: str
    amount: float = Field(gt=0)
    currency: str | None = None
    metadata: dict[str, str] | None = None


class PaymentIntentResponse(CamelModel):
    client_secret: str
    payment_intent_id: str


class CheckoutItemSchema(CamelModel):
    product_id: str
    quantity: int = Field(ge=1)
    price: float | None = None


class CreateCheckoutSessionRequest(CamelModel):
    order_id: str
    items: list[CheckoutItemSchema] = []
    success_url: str | None = None
    cancel_url: str | None = None


class CheckoutSessionResponse(CamelModel):
    session_id: str
    url: str


class RefundRequest(CamelModel):
    amount: float | None = Field(default=None, gt=0)
    reason: Literal["duplicate", "fraudulent", "requested_by_customer"] | None = None


class RefundResponse(CamelModel):
    id: str
    order_id: str
    refund_id: str | None = None
    amount: float
    reason: str | None = None
    status: str
    failure_reason: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None

    @classmethod
    def from_record(cls, record) -> "RefundResponse":
        return cls(
            id=str(record.id),
            order_id=str(record.order_id),
            refund_id=record.refund_id,
            amount=record.amount,
            reason=record.reason,
            status=record.status,
            failure_reason=record.failure_reason,
            created_at=record.created_at,
            processed_at=record.processed_at,
        )


class WebhookAckResponse(CamelModel):
    received: bool


class PaymentEventResponse(CamelModel):
    provider_event_id: str
    event_type: str
    order_id: str | None = None
    outcome: str
    applied_at: datetime | None = None
