"""Cart API routes."""

from fastapi import APIRouter

from src.api.deps import Carts
from src.schemas.cart import CartResponse

router = APIRouter(prefix="/carts", tags=["carts"])


@router.get(
    "/{customer_id}",
    response_model=CartResponse,
    summary="Get a customer's cart",
)
async def get_cart(customer_id: str, service: Carts) -> CartResponse:
    """Get a customer's cart.

    Raises:
        NotFoundError: 404 if the customer has no cart.
    """
    cart = await service.get_cart(customer_id)
    return CartResponse(**cart)


@router.delete(
    "/{customer_id}/items",
    response_model=CartResponse,
    summary="Empty a customer's cart",
)
async def clear_cart(customer_id: str, service: Carts) -> CartResponse:
    cart = await service.clear_cart(customer_id)
    return CartResponse(**cart)
