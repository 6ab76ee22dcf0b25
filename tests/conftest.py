"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PAYOS_CLIENT_ID", "test-client-id")
os.environ.setdefault("PAYOS_API_KEY", "test-api-key")
os.environ.setdefault("PAYOS_CHECKSUM_KEY", "test-checksum-key")
os.environ.setdefault("FRONTEND_URL", "http://shop.test")

from src.core.payos import PayOSConfig  # noqa: E402
from src.services.cart_service import CartService, register_cart_handlers  # noqa: E402
from src.services.order_events import OrderEventBus  # noqa: E402
from src.services.order_service import OrderService, generate_order_code  # noqa: E402
from src.services.payos_service import PayOSService  # noqa: E402
from src.services.voucher_service import VoucherService  # noqa: E402
from tests.fakes import CUSTOMER_ID, FakePayOSClient, FakeSupabaseClient  # noqa: E402


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def fake_supabase() -> FakeSupabaseClient:
    """Provide an empty in-memory Supabase client."""
    return FakeSupabaseClient()


@pytest.fixture
def payos_config() -> PayOSConfig:
    return PayOSConfig(
        client_id="test-client-id",
        api_key="test-api-key",
        checksum_key="test-checksum-key",
        api_url="https://payos.test",
        frontend_url="http://shop.test",
        timeout_seconds=1.0,
    )


@pytest.fixture
def payos_gateway() -> FakePayOSClient:
    """Provide the scripted PayOS SDK client."""
    return FakePayOSClient()


@pytest.fixture
def payos_service(payos_config: PayOSConfig, payos_gateway: FakePayOSClient) -> PayOSService:
    """Provide a PayOS adapter backed by the scripted client."""
    return PayOSService(payos_config, client=payos_gateway)


@pytest.fixture
def voucher_service(fake_supabase: FakeSupabaseClient) -> VoucherService:
    return VoucherService(fake_supabase)


@pytest.fixture
def cart_service(fake_supabase: FakeSupabaseClient) -> CartService:
    return CartService(fake_supabase)


@pytest.fixture
def event_bus(cart_service: CartService) -> OrderEventBus:
    """Provide an event bus with cart clearing subscribed."""
    bus = OrderEventBus()
    register_cart_handlers(bus, cart_service)
    return bus


@pytest.fixture
def order_service(
    fake_supabase: FakeSupabaseClient,
    payos_service: PayOSService,
    voucher_service: VoucherService,
    event_bus: OrderEventBus,
) -> OrderService:
    """Provide an order service wired to the in-memory collaborators."""
    return OrderService(
        client=fake_supabase,
        payos=payos_service,
        vouchers=voucher_service,
        events=event_bus,
        verify_on_confirm=False,
    )


@pytest.fixture
def seed_voucher(fake_supabase: FakeSupabaseClient):
    """Factory inserting a currently valid voucher; keyword arguments override fields."""

    def _seed(**overrides: Any) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        row = {
            "discount_code": "SALE10",
            "discount_name": "Ten percent off",
            "description": None,
            "discount_type": "Percentage",
            "discount_value": 10,
            "start_date": (now - timedelta(days=1)).isoformat(),
            "end_date": (now + timedelta(days=30)).isoformat(),
            "min_order_value": 0,
            "max_discount_amount": None,
            "usage_limit": None,
            "used_count": 0,
            "is_active": True,
            "created_by": None,
        }
        row.update(overrides)
        return fake_supabase.seed("vouchers", **row)

    return _seed


@pytest.fixture
def seed_cart(fake_supabase: FakeSupabaseClient):
    """Factory inserting a cart with one item for a customer."""

    def _seed(customer_id: str = CUSTOMER_ID) -> dict[str, Any]:
        return fake_supabase.seed(
            "carts",
            customer_id=customer_id,
            items=[{"product_id": "ring-001", "quantity": 1, "price": 1_000_000}],
            total_amount=1_000_000,
            total_items=1,
        )

    return _seed


@pytest.fixture
def seed_order(fake_supabase: FakeSupabaseClient):
    """Factory inserting an order directly, bypassing the order flow."""

    def _seed(status: str = "pending", **overrides: Any) -> dict[str, Any]:
        row = {
            "order_code": generate_order_code(),
            "customer_id": CUSTOMER_ID,
            "order_details": [
                {"product_id": "ring-001", "quantity": 1, "price_at_purchase": 1_000_000, "discount_applied": 0}
            ],
            "applied_discounts": [],
            "subtotal": 1_000_000,
            "discount_amount": 0,
            "shipping_fee": 0,
            "final_amount": 1_000_000,
            "status": status,
            "shipping_address": "12 Trang Tien, Hoan Kiem, Ha Noi",
            "recipient_name": "Nguyen Van A",
            "recipient_phone": "0901234567",
            "processed_by": None,
            "notes": None,
        }
        row.update(overrides)
        return fake_supabase.seed("orders", **row)

    return _seed


@pytest.fixture
def order_payload() -> dict[str, Any]:
    """A valid POST /orders body for a 2 x 500.000 VND cash order."""
    return {
        "customer_id": CUSTOMER_ID,
        "shipping_address": "12 Trang Tien, Hoan Kiem, Ha Noi",
        "recipient_name": "Nguyen Van A",
        "recipient_phone": "0901234567",
        "order_details": [{"product_id": "ring-001", "quantity": 2, "price_at_purchase": 500_000}],
        "shipping_fee": 30_000,
        "payment_method": "cash",
    }


@pytest.fixture
def client(
    order_service: OrderService,
    voucher_service: VoucherService,
    cart_service: CartService,
) -> Generator[TestClient, None, None]:
    """Provide a test client whose services use the in-memory fakes.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.api.deps import get_cart_service, get_order_service, get_voucher_service
    from src.main import app

    app.dependency_overrides[get_order_service] = lambda: order_service
    app.dependency_overrides[get_voucher_service] = lambda: voucher_service
    app.dependency_overrides[get_cart_service] = lambda: cart_service

    with patch("src.core.supabase.get_supabase_client"):
        with TestClient(app) as test_client:
            yield test_client

    app.dependency_overrides.clear()
