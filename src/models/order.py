"""Order model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class OrderStatus(str, Enum):
    """Order status values matching the orders.status column."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPING = "shipping"
    SUCCESS = "success"
    FAILED = "failed"


class OrderDetail(TypedDict):
    """Structure for a single line item in an order.

    Stored as part of the order_details JSONB array. Prices are the
    unit price at the time of purchase, in whole VND.
    """

    product_id: str
    quantity: int
    price_at_purchase: int
    discount_applied: int


class AppliedDiscount(TypedDict):
    """A voucher applied to an order."""

    voucher_id: str
    discount_code: str
    discount_amount: int


class Order(TypedDict):
    """Order table row representation."""

    id: str
    order_code: str
    customer_id: str
    order_details: list[OrderDetail]
    applied_discounts: list[AppliedDiscount]
    subtotal: int
    discount_amount: int
    shipping_fee: int
    final_amount: int
    status: str
    shipping_address: str
    recipient_name: str
    recipient_phone: str
    processed_by: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


class OrderCreate(TypedDict, total=False):
    """Data inserted when an order is created."""

    order_code: str
    customer_id: str
    order_details: list[OrderDetail]
    applied_discounts: list[AppliedDiscount]
    subtotal: int
    discount_amount: int
    shipping_fee: int
    final_amount: int
    status: str
    shipping_address: str
    recipient_name: str
    recipient_phone: str
    notes: str | None


class OrderStatusAudit(TypedDict):
    """Row of the order_status_audit table.

    kind is "transition" for state machine events and "override" for
    administrative status overrides.
    """

    id: str
    order_id: str
    from_status: str
    to_status: str
    event: str | None
    actor: str | None
    reason: str | None
    kind: str
    created_at: datetime
