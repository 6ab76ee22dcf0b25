"""Payment model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class PaymentMethod(str, Enum):
    """Supported payment methods."""

    CASH = "cash"
    PAYOS = "payos"


class PaymentStatus(str, Enum):
    """Payment status values matching the payments.status column."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Payment(TypedDict):
    """Payment table row representation.

    One row per attempt to collect funds for an order. Rows are never
    deleted; they move from pending to a final status.
    """

    id: str
    order_id: str
    payment_method: str
    amount: int
    status: str
    transaction_code: str | None
    payos_order_code: int | None
    payos_payment_link_id: str | None
    verified_by: str | None
    notes: str | None
    payment_date: datetime | None
    created_at: datetime
    updated_at: datetime


class PaymentUpdate(TypedDict, total=False):
    """Fields that can change on a payment."""

    status: str
    transaction_code: str
    payos_payment_link_id: str
    verified_by: str
    notes: str
    payment_date: str
