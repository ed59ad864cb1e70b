from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Query

from app.api.dependencies import OriginHeader, ServicesDependency, ViewerDependency
from app.api.schemas import (
    CheckoutResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    OrderIdRequest,
    OrderResponse,
    ProcessOrderResponse,
)
from app.orders.controller import CheckoutOutcome

router = APIRouter(tags=["orders"])


@router.post("/orders", response_model=CreateOrderResponse)
def create_order(
    body: CreateOrderRequest,
    services: ServicesDependency,
    viewer: ViewerDependency,
) -> CreateOrderResponse:
    """Create an order from upload ids. Anonymous callers get an unclaimed order."""
    order = services.orders.create_order(
        body.uploads, viewer, currency=body.currency, notes=body.notes
    )
    return CreateOrderResponse(
        orderId=order.id,
        totalAmountCents=order.total_amount_cents,
        currency=order.currency,
        status=order.status,
    )


@router.get("/orders")
def read_orders(
    services: ServicesDependency,
    viewer: ViewerDependency,
    order_id: Annotated[str | None, Query(alias="orderId")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    include_result: Annotated[bool, Query(alias="includeResult")] = False,
) -> OrderResponse | list[OrderResponse]:
    """Fetch one order (authorization-checked) or list the caller's orders, newest first."""
    if order_id:
        order = services.orders.get_order(order_id, viewer)
        return OrderResponse.from_record(order)
    orders = services.orders.list_orders(viewer, limit)
    return [OrderResponse.from_record(order, include_result) for order in orders]


@router.post("/create-paystack", response_model=CheckoutResponse, response_model_exclude_none=True)
def create_paystack(
    body: OrderIdRequest,
    services: ServicesDependency,
    viewer: ViewerDependency,
    origin: OriginHeader = None,
) -> CheckoutResponse:
    outcome = services.orders.checkout(body.orderId, viewer, origin)
    return _checkout_response(outcome)


@router.post("/pay-with-tokens", response_model=CheckoutResponse, response_model_exclude_none=True)
def pay_with_tokens(
    body: OrderIdRequest,
    services: ServicesDependency,
    viewer: ViewerDependency,
) -> CheckoutResponse:
    outcome = services.orders.pay_with_tokens(body.orderId, viewer)
    return _checkout_response(outcome)


@router.post("/process-order", response_model=ProcessOrderResponse)
def process_order(
    body: OrderIdRequest,
    services: ServicesDependency,
    viewer: ViewerDependency,
) -> ProcessOrderResponse:
    """Ensure detection is scheduled for a paid order; returns the result once completed."""
    order = services.orders.request_processing(body.orderId, viewer)
    return ProcessOrderResponse(
        success=True,
        orderId=order.id,
        status=order.status,
        result=order.result,
    )


def _checkout_response(outcome: CheckoutOutcome) -> CheckoutResponse:
    if outcome.bypassed:
        return CheckoutResponse(
            orderId=outcome.order_id,
            reference=outcome.reference,
            demo=True,
            redirectUrl=f"/results?orderId={quote(outcome.order_id)}",
        )
    return CheckoutResponse(
        orderId=outcome.order_id,
        reference=outcome.reference,
        authorization_url=outcome.authorization_url,
    )
