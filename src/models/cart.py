"""Cart model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict


class CartItem(TypedDict, total=False):
    """Structure for a single item stored in the carts.items JSONB array."""

    product_id: str
    quantity: int
    price: int
    discounted_price: int | None
    added_at: str


class Cart(TypedDict):
    """Cart table row representation. One cart per customer."""

    id: str
    customer_id: str
    items: list[CartItem]
    total_amount: int
    total_items: int
    created_at: datetime
    updated_at: datetime
