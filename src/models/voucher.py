"""Voucher model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class DiscountType(str, Enum):
    """How a voucher's discount value is interpreted."""

    PERCENTAGE = "Percentage"
    FIXED_AMOUNT = "FixedAmount"


class Voucher(TypedDict):
    """Voucher table row representation."""

    id: str
    discount_code: str
    discount_name: str
    description: str | None
    discount_type: str
    discount_value: float
    start_date: datetime
    end_date: datetime
    min_order_value: int
    max_discount_amount: int | None
    usage_limit: int | None
    used_count: int
    is_active: bool
    created_by: str | None
    created_at: datetime
    updated_at: datetime
