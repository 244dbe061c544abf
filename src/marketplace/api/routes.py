"""FastAPI routes for orders, carts, products and payments."""

from fastapi import APIRouter, Depends, Header, Query, Request
from protean.utils.globals import current_domain

from marketplace.api.dependencies import (
    get_order_service,
    get_payment_service,
    get_principal,
    get_webhook_reconciler,
)
from marketplace.api.schemas import (
    AddToCartRequest,
    CancelOrderRequest,
    CartLineResponse,
    CartResponse,
    CheckoutSessionResponse,
    CreateCheckoutSessionRequest,
    CreateOrderRequest,
    CreatePaymentIntentRequest,
    OrderListResponse,
    OrderResponse,
    PaymentConfigResponse,
    PaymentEventResponse,
    PaymentIntentResponse,
    ProductResponse,
    RefundRequest,
    RefundResponse,
    RegisterProductRequest,
    RestockRequest,
    UpdateCartItemRequest,
    UpdateOrderStatusRequest,
    WebhookAckResponse,
)
from marketplace.auth import Principal, Role, require_role
from marketplace.cart.cart import CartLine
from marketplace.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartQuantity
from marketplace.errors import AuthorizationError
from marketplace.inventory.ledger import stock_writes
from marketplace.inventory.product import Product
from marketplace.inventory.stocking import RegisterProduct, RestockProduct
from marketplace.order.service import OrderService
from marketplace.payment.service import PaymentService
from marketplace.payment.webhook import WebhookReconciler

# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(
    body: CreateOrderRequest,
    principal: Principal = Depends(get_principal),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Place an order from the caller's cart."""
    order = orders.create_order(
        principal,
        shipping_address=body.shipping_address.model_dump(),
        payment_method=body.payment_method,
        notes=body.notes,
    )
    return OrderResponse.from_order(order)


@order_router.get("", response_model=OrderListResponse)
async def list_orders(
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    orders: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    items, total = orders.list_orders(principal, status=status, page=page, limit=limit)
    return OrderListResponse.from_page(items, total, page, limit)


@order_router.get("/admin/all", response_model=OrderListResponse)
async def list_all_orders(
    status: str | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    orders: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    items, total = orders.list_all_orders(principal, status=status, search=search, page=page, limit=limit)
    return OrderListResponse.from_page(items, total, page, limit)


@order_router.get("/seller/orders", response_model=OrderListResponse)
async def list_seller_orders(
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    orders: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """Orders containing the caller's products, showing only the caller's lines."""
    items, total = orders.list_seller_orders(principal, status=status, page=page, limit=limit)
    return OrderListResponse.from_page(items, total, page, limit, seller_id=principal.user_id)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    principal: Principal = Depends(get_principal),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    return OrderResponse.from_order(orders.get_order(principal, order_id))


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest | None = None,
    principal: Principal = Depends(get_principal),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Cancel a pending or processing order and put its stock back on sale."""
    order = orders.cancel_order(principal, order_id, reason=body.reason if body else None)
    return OrderResponse.from_order(order)


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    principal: Principal = Depends(get_principal),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = orders.update_status(principal, order_id, body.status)
    return OrderResponse.from_order(order)


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


def _cart_response(user_id: str) -> CartResponse:
    carts = current_domain.repository_for(CartLine)
    lines = carts.lines_for(user_id)
    snapshot = carts.snapshot(user_id)
    return CartResponse(
        items=[
            CartLineResponse(
                id=str(line.id),
                product_id=str(line.product_id),
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=round(line.unit_price * line.quantity, 2),
            )
            for line in lines
        ],
        total=snapshot.total,
        item_count=snapshot.item_count,
    )


@cart_router.get("", response_model=CartResponse)
async def view_cart(principal: Principal = Depends(get_principal)) -> CartResponse:
    return _cart_response(principal.user_id)


@cart_router.post("", status_code=201, response_model=CartResponse)
async def add_to_cart(body: AddToCartRequest, principal: Principal = Depends(get_principal)) -> CartResponse:
    command = AddToCart(user_id=principal.user_id, product_id=body.product_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return _cart_response(principal.user_id)


@cart_router.put("", response_model=CartResponse)
async def update_cart_item(body: UpdateCartItemRequest, principal: Principal = Depends(get_principal)) -> CartResponse:
    command = UpdateCartQuantity(user_id=principal.user_id, product_id=body.product_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return _cart_response(principal.user_id)


@cart_router.delete("/{product_id}", response_model=CartResponse)
async def remove_from_cart(product_id: str, principal: Principal = Depends(get_principal)) -> CartResponse:
    current_domain.process(RemoveFromCart(user_id=principal.user_id, product_id=product_id), asynchronous=False)
    return _cart_response(principal.user_id)


@cart_router.delete("", response_model=CartResponse)
async def clear_cart(principal: Principal = Depends(get_principal)) -> CartResponse:
    current_domain.process(ClearCart(user_id=principal.user_id), asynchronous=False)
    return _cart_response(principal.user_id)


# ---------------------------------------------------------------------------
# Product Router
# ---------------------------------------------------------------------------
product_router = APIRouter(prefix="/products", tags=["products"])


@product_router.post("", status_code=201, response_model=ProductResponse)
async def register_product(
    body: RegisterProductRequest,
    principal: Principal = Depends(get_principal),
) -> ProductResponse:
    require_role(principal, Role.SELLER)
    command = RegisterProduct(
        name=body.name,
        description=body.description,
        price=body.price,
        stock=body.stock,
        seller_id=principal.user_id,
    )
    product_id = current_domain.process(command, asynchronous=False)
    return ProductResponse.from_product(current_domain.repository_for(Product).get(product_id))


@product_router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str) -> ProductResponse:
    return ProductResponse.from_product(current_domain.repository_for(Product).get(product_id))


@product_router.post("/{product_id}/restock", response_model=ProductResponse)
async def restock_product(
    product_id: str,
    body: RestockRequest,
    principal: Principal = Depends(get_principal),
) -> ProductResponse:
    product = current_domain.repository_for(Product).get(product_id)
    if not (principal.is_admin or str(product.seller_id) == principal.user_id):
        raise AuthorizationError("Only the product's seller can restock it")
    with stock_writes():
        current_domain.process(RestockProduct(product_id=product_id, quantity=body.quantity), asynchronous=False)
    return ProductResponse.from_product(current_domain.repository_for(Product).get(product_id))


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payment", tags=["payment"])


@payment_router.get("/config", response_model=PaymentConfigResponse)
async def payment_config(payments: PaymentService = Depends(get_payment_service)) -> PaymentConfigResponse:
    return PaymentConfigResponse(**payments.config())


@payment_router.post("/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    body: CreatePaymentIntentRequest,
    principal: Principal = Depends(get_principal),
    payments: PaymentService = Depends(get_payment_service),
) -> PaymentIntentResponse:
    result = payments.create_payment_intent(
        principal,
        order_id=body.order_id,
        amount=body.amount,
        currency=body.currency,
        metadata=body.metadata,
    )
    return PaymentIntentResponse(**result)


@payment_router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    body: CreateCheckoutSessionRequest,
    principal: Principal = Depends(get_principal),
    payments: PaymentService = Depends(get_payment_service),
) -> CheckoutSessionResponse:
    result = payments.create_checkout_session(
        principal,
        order_id=body.order_id,
        items=[{"product_id": item.product_id, "quantity": item.quantity} for item in body.items],
        success_url=body.success_url,
        cancel_url=body.cancel_url,
    )
    return CheckoutSessionResponse(**result)


@payment_router.post("/webhook", response_model=WebhookAckResponse)
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
) -> WebhookAckResponse:
    """Provider callback. Authenticated by signature, not by session."""
    payload = await request.body()
    return WebhookAckResponse(**reconciler.handle(payload, stripe_signature))


@payment_router.post("/refund/{order_id}", response_model=RefundResponse)
async def refund_payment(
    order_id: str,
    body: RefundRequest | None = None,
    principal: Principal = Depends(get_principal),
    payments: PaymentService = Depends(get_payment_service),
) -> RefundResponse:
    record = payments.refund_payment(
        principal,
        order_id,
        amount=body.amount if body else None,
        reason=body.reason if body else None,
    )
    return RefundResponse.from_record(record)


@payment_router.get("/intent/{payment_intent_id}")
async def get_payment_details(
    payment_intent_id: str,
    principal: Principal = Depends(get_principal),
    payments: PaymentService = Depends(get_payment_service),
) -> dict:
    return payments.get_payment_details(principal, payment_intent_id)


@payment_router.get("/events/unresolved", response_model=list[PaymentEventResponse])
async def unresolved_payment_events(
    principal: Principal = Depends(get_principal),
    payments: PaymentService = Depends(get_payment_service),
) -> list[PaymentEventResponse]:
    """Webhook events that could not be matched to an order, for manual follow-up."""
    return [
        PaymentEventResponse(
            provider_event_id=event.provider_event_id,
            event_type=event.event_type,
            order_id=str(event.order_id) if event.order_id else None,
            outcome=event.outcome,
            applied_at=event.applied_at,
        )
        for event in payments.unresolved_events(principal)
    ]
