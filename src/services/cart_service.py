"""Cart service and its reaction to confirmed payments."""

import logging
from typing import Any

from supabase import Client

from src.api.middleware.error_handler import NotFoundError
from src.services.order_events import OrderEventBus, PaymentConfirmed

logger = logging.getLogger(__name__)


class CartService:
    """Service for reading and clearing customer carts."""

    def __init__(self, client: Client) -> None:
        """Initialize cart service.

        Args:
            client: Supabase client.
        """
        self.client = client

    async def get_cart(self, customer_id: str) -> dict[str, Any]:
        """Get a customer's cart.

        Raises:
            NotFoundError: If the customer has no cart.
        """
        response = (
            self.client.table("carts")
            .select("*")
            .eq("customer_id", customer_id)
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("Cart not found")
        return response.data

    async def clear_cart(self, customer_id: str) -> dict[str, Any]:
        """Remove every item from a customer's cart.

        Args:
            customer_id: Customer identifier.

        Returns:
            dict: The emptied cart.

        Raises:
            NotFoundError: If the customer has no cart.
        """
        cart = await self.get_cart(customer_id)
        response = (
            self.client.table("carts")
            .update({"items": [], "total_amount": 0, "total_items": 0})
            .eq("id", cart["id"])
            .execute()
        )
        logger.info("Cart cleared for customer %s", customer_id)
        return response.data[0] if response.data else {**cart, "items": [], "total_amount": 0, "total_items": 0}


def register_cart_handlers(bus: OrderEventBus, cart_service: CartService) -> None:
    """Clear the customer's cart whenever a payment is confirmed."""

    async def clear_cart_on_payment(event: PaymentConfirmed) -> None:
        await cart_service.clear_cart(event.customer_id)
        logger.info("Cart cleared for customer %s after payment of order %s", event.customer_id, event.order_code)

    bus.subscribe(PaymentConfirmed, clear_cart_on_payment)
