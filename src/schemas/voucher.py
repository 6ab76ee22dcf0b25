"""Voucher Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.models.voucher import DiscountType


class VoucherCreate(BaseModel):
    """Schema for creating a voucher via POST /vouchers."""

    discount_code: str = Field(min_length=3, max_length=50, description="Unique voucher code")
    discount_name: str = Field(min_length=1, description="Display name")
    description: str | None = None
    discount_type: DiscountType
    discount_value: float = Field(gt=0, description="Percent (0-100] or fixed amount in VND")
    start_date: datetime
    end_date: datetime
    min_order_value: int = Field(default=0, ge=0)
    max_discount_amount: int | None = Field(default=None, ge=0, description="Discount cap in VND; 0 means no cap")
    usage_limit: int | None = Field(default=None, ge=1)
    is_active: bool = True
    created_by: str | None = None


class VoucherUpdate(BaseModel):
    """Partial voucher update via PATCH /vouchers/{id}."""

    discount_name: str | None = None
    description: str | None = None
    discount_type: DiscountType | None = None
    discount_value: float | None = Field(default=None, gt=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    min_order_value: int | None = Field(default=None, ge=0)
    max_discount_amount: int | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=1)
    is_active: bool | None = None


class VoucherResponse(BaseModel):
    """Schema for voucher API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    discount_code: str
    discount_name: str
    description: str | None = None
    discount_type: DiscountType
    discount_value: float
    start_date: datetime
    end_date: datetime
    min_order_value: int = 0
    max_discount_amount: int | None = None
    usage_limit: int | None = None
    used_count: int = 0
    is_active: bool = True
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class VoucherListResponse(BaseModel):
    """Paginated voucher list."""

    items: list[VoucherResponse]
    total: int
    page: int
    limit: int


class VoucherListParams(BaseModel):
    """Query filters for GET /vouchers."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    is_active: bool | None = None
    discount_type: DiscountType | None = None
    search: str | None = None
    sort_by: Literal["created_at", "end_date", "discount_code", "used_count"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class ValidateVoucherRequest(BaseModel):
    """Body of POST /vouchers/validate."""

    voucher_code: str = Field(min_length=1)
    order_value: int = Field(ge=0, description="Order subtotal in VND")


class VoucherValidationResult(BaseModel):
    """Outcome of validating a voucher against an order value.

    Invalid vouchers are reported with is_valid False and a message,
    never by raising.
    """

    is_valid: bool
    message: str
    discount_amount: int | None = None
    voucher: VoucherResponse | None = None
