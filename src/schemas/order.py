"""Order and payment Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.models.order import OrderStatus
from src.models.payment import PaymentMethod
from src.services.order_state_machine import OrderEvent


class OrderDetailCreate(BaseModel):
    """A line item in an order creation request."""

    product_id: str = Field(min_length=1, description="Product identifier")
    quantity: int = Field(ge=1, description="Quantity ordered")
    price_at_purchase: int = Field(ge=0, description="Unit price at purchase, in VND")
    discount_applied: int = Field(default=0, ge=0, description="Per-item discount, in VND")


class OrderCreate(BaseModel):
    """Schema for creating an order via POST /orders."""

    customer_id: str = Field(min_length=1, description="Customer identifier")
    shipping_address: str = Field(min_length=10, description="Shipping address")
    recipient_name: str = Field(min_length=2, description="Recipient name")
    recipient_phone: str = Field(min_length=1, description="Recipient phone number")
    order_details: list[OrderDetailCreate] = Field(min_length=1, description="Order line items")
    shipping_fee: int = Field(default=0, ge=0, description="Shipping fee, in VND")
    payment_method: PaymentMethod = Field(description="Payment method")
    voucher_code: str | None = Field(default=None, description="Optional voucher code")
    notes: str | None = Field(default=None, description="Order notes")


class OrderDetailSchema(BaseModel):
    """A line item as stored on an order."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str
    quantity: int
    price_at_purchase: int
    discount_applied: int = 0


class AppliedDiscountSchema(BaseModel):
    """A voucher applied to an order."""

    voucher_id: str
    discount_code: str
    discount_amount: int


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order unique identifier")
    order_code: str = Field(description="Human-readable order code")
    customer_id: str = Field(description="Customer identifier")
    order_details: list[OrderDetailSchema] = Field(description="Order line items")
    applied_discounts: list[AppliedDiscountSchema] = Field(default_factory=list)
    subtotal: int = Field(description="Sum of line items, in VND")
    discount_amount: int = Field(default=0, description="Voucher discount, in VND")
    shipping_fee: int = Field(default=0, description="Shipping fee, in VND")
    final_amount: int = Field(description="Amount payable, in VND")
    status: OrderStatus = Field(description="Order status")
    shipping_address: str | None = None
    recipient_name: str | None = None
    recipient_phone: str | None = None
    processed_by: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PaymentResponse(BaseModel):
    """Schema for payment API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    payment_method: PaymentMethod
    amount: int
    status: str
    transaction_code: str | None = None
    payos_order_code: int | None = None
    payos_payment_link_id: str | None = None
    verified_by: str | None = None
    notes: str | None = None
    payment_date: datetime | None = None
    created_at: datetime | None = None


class OrderCreateResponse(BaseModel):
    """Response of POST /orders.

    payment_url is null for cash orders and when the gateway could not
    create a checkout link; message says which case applies.
    """

    order: OrderResponse
    payment: PaymentResponse | None = None
    payment_url: str | None = None
    message: str


class OrderListResponse(BaseModel):
    """Schema for paginated order list responses."""

    items: list[OrderResponse] = Field(description="Orders on this page")
    total: int = Field(description="Total matching orders")
    page: int
    limit: int


class OrderListParams(BaseModel):
    """Query parameters for GET /orders."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    status: OrderStatus | None = None
    customer_id: str | None = None
    search: str | None = Field(default=None, description="Matches order code, recipient name or phone")
    start_date: datetime | None = None
    end_date: datetime | None = None
    sort_by: Literal["created_at", "final_amount", "order_code", "status"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class OrderUpdate(BaseModel):
    """Non-status fields an administrator may change on an order."""

    shipping_address: str | None = Field(default=None, min_length=10)
    recipient_name: str | None = Field(default=None, min_length=2)
    recipient_phone: str | None = None
    processed_by: str | None = None
    notes: str | None = None


class CancelOrderRequest(BaseModel):
    """Body of PATCH /orders/{id}/cancel."""

    reason: str | None = Field(default=None, max_length=500)


class OrderTransitionRequest(BaseModel):
    """Body of POST /orders/{id}/transitions."""

    event: OrderEvent = Field(description="Lifecycle event to apply (ship, deliver or cancel)")
    admin_id: str | None = Field(default=None, description="Administrator performing the change")
    reason: str | None = None


class OrderStatusOverride(BaseModel):
    """Body of PUT /orders/{id}/status (audited override)."""

    status: OrderStatus
    admin_id: str = Field(min_length=1, description="Administrator performing the override")
    reason: str = Field(min_length=3, description="Why the status is being forced")


class ConfirmPaymentRequest(BaseModel):
    """Body of POST /orders/confirm-payment.

    order_id accepts either the order id or its human-readable code.
    """

    order_id: str = Field(min_length=1, description="Order id or order code")
    transaction_id: str | None = Field(default=None, description="Gateway transaction reference")
    notes: str | None = None


class ConfirmPaymentResponse(BaseModel):
    """Response of POST /orders/confirm-payment."""

    order: OrderResponse
    payment: PaymentResponse | None = None
    message: str


class StatusBreakdown(BaseModel):
    """Order count and amount for one status."""

    status: str
    count: int
    total_amount: int


class OrderStatsResponse(BaseModel):
    """Response of GET /orders/stats."""

    total_orders: int
    total_revenue: int = Field(description="Sum of final_amount over successful orders")
    status_breakdown: list[StatusBreakdown]


class WebhookResponse(BaseModel):
    """Acknowledgement returned to PayOS."""

    status: str = "received"
    outcome: str
