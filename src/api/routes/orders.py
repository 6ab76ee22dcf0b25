"""Order API routes: placement, PayOS callbacks and administration."""

import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status

from src.api.deps import Orders
from src.schemas.common import MessageResponse
from src.schemas.order import (
    CancelOrderRequest,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderListParams,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    OrderStatusOverride,
    OrderTransitionRequest,
    OrderUpdate,
    PaymentResponse,
    WebhookResponse,
)
from src.services.order_service import WebhookSignatureError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
    description="Creates a pending order, redeems the voucher if any and starts the payment.",
)
async def create_order(data: OrderCreate, service: Orders) -> OrderCreateResponse:
    """Place an order.

    For PayOS orders the response carries the checkout URL the frontend
    should redirect to. It is null for cash orders and when the gateway
    could not create a link; the message tells which case applies.

    Args:
        data: Order creation data.
        service: Order service.

    Returns:
        OrderCreateResponse: The order, its payment and the checkout URL.
    """
    result = await service.create_order(data)
    return OrderCreateResponse(
        order=OrderResponse(**result.order),
        payment=PaymentResponse(**result.payment) if result.payment else None,
        payment_url=result.payment_url,
        message=result.message,
    )


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
    description="Paginated order list with status, customer, search and date filters.",
)
async def list_orders(
    service: Orders,
    params: Annotated[OrderListParams, Query()],
) -> OrderListResponse:
    """List orders."""
    items, total = await service.list_orders(params)
    return OrderListResponse(
        items=[OrderResponse(**order) for order in items],
        total=total,
        page=params.page,
        limit=params.limit,
    )


@router.get(
    "/stats",
    response_model=OrderStatsResponse,
    summary="Order statistics",
)
async def get_order_stats(
    service: Orders,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> OrderStatsResponse:
    """Count orders per status and sum the revenue of successful orders."""
    stats = await service.get_order_stats(start_date=start_date, end_date=end_date)
    return OrderStatsResponse(**stats)


@router.post(
    "/payos/webhook",
    response_model=WebhookResponse,
    status_code=status.HTTP_200_OK,
    summary="Handle PayOS webhooks",
    description="Receives PayOS payment notifications. Requires a valid signature.",
)
async def payos_webhook(request: Request, service: Orders) -> WebhookResponse:
    """Handle a PayOS payment notification.

    Replays are acknowledged with 200 so PayOS stops retrying; the
    outcome field reports whether anything changed.

    Args:
        request: FastAPI request object for reading the raw body.
        service: Order service.

    Returns:
        WebhookResponse: Acknowledgement and outcome.

    Raises:
        HTTPException: 400 if the signature is invalid.
    """
    try:
        payload = await request.json()
    except ValueError as e:
        logger.error("PayOS webhook body is not JSON")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    try:
        result = await service.handle_payos_webhook(payload)
    except WebhookSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    logger.info("Processed PayOS webhook for order %s: %s", result.order_id, result.outcome)
    return WebhookResponse(outcome=result.outcome)


@router.post(
    "/confirm-payment",
    response_model=ConfirmPaymentResponse,
    summary="Confirm a PayOS payment",
    description="Called by the frontend return page with the order id or order code.",
)
async def confirm_payment(data: ConfirmPaymentRequest, service: Orders) -> ConfirmPaymentResponse:
    """Confirm a payment after the customer returns from PayOS."""
    result = await service.confirm_payment(data.order_id, data.transaction_id, data.notes)
    return ConfirmPaymentResponse(
        order=OrderResponse(**result.order),
        payment=PaymentResponse(**result.payment) if result.payment else None,
        message=result.message,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
)
async def get_order(order_id: UUID, service: Orders) -> OrderResponse:
    """Get a single order.

    Raises:
        NotFoundError: 404 if the order does not exist.
    """
    order = await service.get_order(str(order_id))
    return OrderResponse(**order)


@router.get(
    "/{order_id}/payments",
    response_model=list[PaymentResponse],
    summary="List payments of an order",
)
async def get_order_payments(order_id: UUID, service: Orders) -> list[PaymentResponse]:
    """List an order's payments, newest first."""
    payments = await service.get_order_payments(str(order_id))
    return [PaymentResponse(**payment) for payment in payments]


@router.patch(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Update order details",
    description="Updates shipping and bookkeeping fields. The status cannot be changed here.",
)
async def update_order(order_id: UUID, data: OrderUpdate, service: Orders) -> OrderResponse:
    """Update non-status fields of an order."""
    order = await service.update_order(str(order_id), data)
    return OrderResponse(**order)


@router.patch(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel an order",
    description="Cancels a pending or confirmed order and withdraws its pending payments.",
)
async def cancel_order(
    order_id: UUID,
    service: Orders,
    data: CancelOrderRequest | None = None,
) -> OrderResponse:
    """Cancel an order. Cancelling an already failed order is a no-op."""
    order = await service.cancel_order(str(order_id), data.reason if data else None)
    return OrderResponse(**order)


@router.post(
    "/{order_id}/transitions",
    response_model=OrderResponse,
    summary="Apply a lifecycle event",
    description="Applies ship, deliver or cancel to an order.",
)
async def apply_transition(
    order_id: UUID,
    data: OrderTransitionRequest,
    service: Orders,
) -> OrderResponse:
    """Move an order along its lifecycle."""
    order = await service.apply_admin_event(str(order_id), data.event, data.admin_id, data.reason)
    return OrderResponse(**order)


@router.put(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Override order status",
    description="Forces an order into any status. The change is audited.",
)
async def override_status(
    order_id: UUID,
    data: OrderStatusOverride,
    service: Orders,
) -> OrderResponse:
    """Force an order status, bypassing the lifecycle rules."""
    order = await service.override_status(str(order_id), data.status, data.admin_id, data.reason)
    return OrderResponse(**order)


@router.delete(
    "/{order_id}",
    response_model=MessageResponse,
    summary="Delete an order",
)
async def delete_order(order_id: UUID, service: Orders) -> MessageResponse:
    """Delete an order without completed payments."""
    await service.delete_order(str(order_id))
    return MessageResponse(message="Order deleted successfully")
