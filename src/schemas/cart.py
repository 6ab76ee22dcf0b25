"""Cart Pydantic schemas for API responses."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CartItemSchema(BaseModel):
    """A product line in a cart."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str
    quantity: int = Field(ge=1)
    price: int = Field(ge=0)
    discounted_price: int | None = None
    added_at: datetime | None = None


class CartResponse(BaseModel):
    """Schema for cart API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    items: list[CartItemSchema] = Field(default_factory=list)
    total_amount: int = 0
    total_items: int = 0
    updated_at: datetime | None = None
