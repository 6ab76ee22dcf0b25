"""FastAPI dependency injection functions."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from src.core.config import get_settings
from src.core.payos import PayOSConfig
from src.core.supabase import get_supabase_client
from src.services.cart_service import CartService, register_cart_handlers
from src.services.order_events import OrderEventBus
from src.services.order_service import OrderService
from src.services.payos_service import PayOSService
from src.services.voucher_service import VoucherService


def get_voucher_service() -> VoucherService:
    """Get a voucher service bound to the shared Supabase client."""
    return VoucherService(get_supabase_client())


def get_cart_service() -> CartService:
    """Get a cart service bound to the shared Supabase client."""
    return CartService(get_supabase_client())


@lru_cache
def get_payos_service() -> PayOSService:
    """Get the PayOS adapter configured from settings."""
    return PayOSService(PayOSConfig.from_settings(get_settings()))


@lru_cache
def get_event_bus() -> OrderEventBus:
    """Get the process-wide order event bus.

    Cart clearing is subscribed once, when the bus is first built.

    Returns:
        OrderEventBus: Shared event bus.
    """
    bus = OrderEventBus()
    register_cart_handlers(bus, CartService(get_supabase_client()))
    return bus


def get_order_service(
    vouchers: Annotated[VoucherService, Depends(get_voucher_service)],
    payos: Annotated[PayOSService, Depends(get_payos_service)],
) -> OrderService:
    """Get an order service wired to its collaborators."""
    return OrderService(
        client=get_supabase_client(),
        payos=payos,
        vouchers=vouchers,
        events=get_event_bus(),
        verify_on_confirm=get_settings().payos_verify_on_confirm,
    )


# Type aliases for cleaner dependency injection
Orders = Annotated[OrderService, Depends(get_order_service)]
Vouchers = Annotated[VoucherService, Depends(get_voucher_service)]
Carts = Annotated[CartService, Depends(get_cart_service)]
