"""Unit tests for OrderService."""

import re
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from src.api.middleware.error_handler import (
    BadRequestError,
    ConflictError,
    GatewayError,
    NotFoundError,
    ValidationError,
)
from src.core.payos import PayOSConfig
from src.models.order import OrderStatus
from src.models.payment import PaymentMethod
from src.schemas.order import OrderCreate, OrderListParams, OrderUpdate
from src.services.order_events import OrderEventBus, PaymentConfirmed
from src.services.order_service import OrderService, WebhookSignatureError
from src.services.order_state_machine import OrderEvent
from src.services.payment_strategies import PaymentStartResult
from src.services.payos_service import PayOSService
from src.services.voucher_service import VoucherService
from tests.fakes import CUSTOMER_ID, FakePayOSClient, FakeSupabaseClient, signed_webhook, webhook_data


def _order_request(payment_method: str = "cash", **overrides: Any) -> OrderCreate:
    data = {
        "customer_id": CUSTOMER_ID,
        "shipping_address": "12 Trang Tien, Hoan Kiem, Ha Noi",
        "recipient_name": "Nguyen Van A",
        "recipient_phone": "0901234567",
        "order_details": [
            {"product_id": "ring-001", "quantity": 1, "price_at_purchase": 60_000_000},
            {"product_id": "necklace-002", "quantity": 2, "price_at_purchase": 20_000_000},
        ],
        "shipping_fee": 30_000,
        "payment_method": payment_method,
    }
    data.update(overrides)
    return OrderCreate(**data)


@pytest.fixture
def confirmed_spy(event_bus: OrderEventBus) -> AsyncMock:
    """Record every PaymentConfirmed published after the cart handler."""
    spy = AsyncMock()
    event_bus.subscribe(PaymentConfirmed, spy)
    return spy


@pytest_asyncio.fixture
async def payos_order(order_service: OrderService) -> dict[str, Any]:
    result = await order_service.create_order(_order_request("payos"))
    return {"order": result.order, "payment": result.payment}


def _success_webhook(payment: dict[str, Any]) -> dict[str, Any]:
    return signed_webhook(webhook_data(payment["payos_order_code"], payment["amount"]))


def _failure_webhook(payment: dict[str, Any]) -> dict[str, Any]:
    return signed_webhook(webhook_data(payment["payos_order_code"], payment["amount"], code="01"), code="01")


class TestCreateOrder:
    """Tests for create_order."""

    @pytest.mark.asyncio
    async def test_cash_order_is_pending_with_pending_payment(
        self, order_service: OrderService, fake_supabase: FakeSupabaseClient
    ) -> None:
        result = await order_service.create_order(_order_request("cash"))

        assert result.order["subtotal"] == 100_000_000
        assert result.order["final_amount"] == 100_030_000
        assert result.order["status"] == "pending"
        assert result.payment_url is None
        assert result.payment["status"] == "pending"
        assert result.payment["payment_method"] == "cash"
        assert result.payment["payos_order_code"] is None
        assert result.payment["transaction_code"] is None
        assert len(fake_supabase.rows("payments")) == 1

    @pytest.mark.asyncio
    async def test_order_code_is_human_readable(self, order_service: OrderService) -> None:
        result = await order_service.create_order(_order_request())

        assert re.fullmatch(r"ORD-\d{8}-[A-Z0-9]{6}", result.order["order_code"])

    @pytest.mark.asyncio
    async def test_voucher_discount_is_applied_and_redeemed(
        self, order_service: OrderService, seed_voucher, fake_supabase: FakeSupabaseClient
    ) -> None:
        voucher = seed_voucher(discount_value=10, max_discount_amount=500_000, usage_limit=10)

        result = await order_service.create_order(_order_request(voucher_code="SALE10"))

        assert result.order["discount_amount"] == 500_000
        assert result.order["final_amount"] == 100_000_000 - 500_000 + 30_000
        assert result.order["applied_discounts"] == [
            {"voucher_id": voucher["id"], "discount_code": "SALE10", "discount_amount": 500_000}
        ]
        assert fake_supabase.get("vouchers", voucher["id"])["used_count"] == 1

    @pytest.mark.asyncio
    async def test_invalid_voucher_persists_nothing(
        self, order_service: OrderService, fake_supabase: FakeSupabaseClient
    ) -> None:
        with pytest.raises(ValidationError, match="Voucher code not found"):
            await order_service.create_order(_order_request(voucher_code="MISSING"))

        assert fake_supabase.rows("orders") == []
        assert fake_supabase.rows("payments") == []

    @pytest.mark.asyncio
    async def test_voucher_taken_concurrently_is_rejected(
        self, order_service: OrderService, seed_voucher, fake_supabase: FakeSupabaseClient
    ) -> None:
        voucher = seed_voucher(usage_limit=1, used_count=0)

        def other_checkout(client: FakeSupabaseClient) -> None:
            client.table("vouchers").update({"used_count": 1}).eq("id", voucher["id"]).execute()

        fake_supabase.before("vouchers", "update", other_checkout)

        with pytest.raises(ValidationError, match="usage limit"):
            await order_service.create_order(_order_request(voucher_code="SALE10"))

        assert fake_supabase.rows("orders") == []
        assert fake_supabase.get("vouchers", voucher["id"])["used_count"] == 1

    @pytest.mark.asyncio
    async def test_failed_insert_releases_voucher(
        self, order_service: OrderService, seed_voucher, fake_supabase: FakeSupabaseClient
    ) -> None:
        voucher = seed_voucher(usage_limit=1)

        def database_down(client: FakeSupabaseClient) -> None:
            raise RuntimeError("connection reset")

        fake_supabase.before("orders", "insert", database_down)

        with pytest.raises(RuntimeError):
            await order_service.create_order(_order_request(voucher_code="SALE10"))

        assert fake_supabase.get("vouchers", voucher["id"])["used_count"] == 0

    @pytest.mark.asyncio
    async def test_payos_order_returns_checkout_url(self, order_service: OrderService) -> None:
        result = await order_service.create_order(_order_request("payos"))

        code = result.payment["payos_order_code"]
        assert result.payment_url == f"https://pay.payos.vn/web/link-{code}"
        assert result.payment["status"] == "pending"
        assert result.payment["payos_payment_link_id"] == f"link-{code}"
        assert result.payment["transaction_code"] == f"link-{code}"
        assert result.order["status"] == "pending"

    @pytest.mark.asyncio
    async def test_payos_link_failure_keeps_order_pending(
        self, order_service: OrderService, payos_gateway: FakePayOSClient, fake_supabase: FakeSupabaseClient
    ) -> None:
        payos_gateway.reject_create = "Số tiền không hợp lệ"

        result = await order_service.create_order(_order_request("payos"))

        assert result.payment_url is None
        assert result.order["status"] == "pending"
        assert fake_supabase.get("orders", result.order["id"])["status"] == "pending"
        payment = fake_supabase.get("payments", result.payment["id"])
        assert payment["status"] == "failed"
        assert payment["notes"] == "Số tiền không hợp lệ"
        assert "could not be created" in result.message


class TestPayOSWebhook:
    """Tests for handle_payos_webhook."""

    @pytest.mark.asyncio
    async def test_success_confirms_order_and_clears_cart_once(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        seed_cart,
        fake_supabase: FakeSupabaseClient,
        confirmed_spy: AsyncMock,
    ) -> None:
        cart = seed_cart()
        payment = payos_order["payment"]

        result = await order_service.handle_payos_webhook(_success_webhook(payment))

        assert result.outcome == "confirmed"
        assert fake_supabase.get("orders", payos_order["order"]["id"])["status"] == "confirmed"
        stored_payment = fake_supabase.get("payments", payment["id"])
        assert stored_payment["status"] == "completed"
        assert stored_payment["transaction_code"] == f"FT{payment['payos_order_code']}"
        assert fake_supabase.get("carts", cart["id"])["items"] == []
        confirmed_spy.assert_awaited_once()
        event = confirmed_spy.await_args.args[0]
        assert event.source == "webhook"
        assert event.customer_id == CUSTOMER_ID

    @pytest.mark.asyncio
    async def test_replayed_success_is_a_no_op(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        fake_supabase: FakeSupabaseClient,
        confirmed_spy: AsyncMock,
    ) -> None:
        payload = _success_webhook(payos_order["payment"])

        await order_service.handle_payos_webhook(payload)
        audit_rows = len(fake_supabase.rows("order_status_audit"))
        result = await order_service.handle_payos_webhook(payload)

        assert result.outcome == "duplicate"
        assert confirmed_spy.await_count == 1
        assert len(fake_supabase.rows("order_status_audit")) == audit_rows

    @pytest.mark.asyncio
    async def test_cart_failure_does_not_fail_confirmation(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        fake_supabase: FakeSupabaseClient,
        confirmed_spy: AsyncMock,
    ) -> None:
        """No cart exists, so the cart handler raises; confirmation still stands."""
        result = await order_service.handle_payos_webhook(_success_webhook(payos_order["payment"]))

        assert result.outcome == "confirmed"
        assert fake_supabase.get("orders", payos_order["order"]["id"])["status"] == "confirmed"
        confirmed_spy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_signature_changes_nothing(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        fake_supabase: FakeSupabaseClient,
    ) -> None:
        payload = _success_webhook(payos_order["payment"])
        payload["signature"] = "0" * 64

        with pytest.raises(WebhookSignatureError):
            await order_service.handle_payos_webhook(payload)

        assert fake_supabase.get("orders", payos_order["order"]["id"])["status"] == "pending"
        assert fake_supabase.get("payments", payos_order["payment"]["id"])["status"] == "pending"

    @pytest.mark.asyncio
    async def test_unknown_order_code_is_ignored(self, order_service: OrderService) -> None:
        result = await order_service.handle_payos_webhook(signed_webhook(webhook_data(123, 3000)))

        assert result.outcome == "ignored"
        assert result.order_id is None

    @pytest.mark.asyncio
    async def test_failure_marks_payment_and_order_failed(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        fake_supabase: FakeSupabaseClient,
        confirmed_spy: AsyncMock,
    ) -> None:
        result = await order_service.handle_payos_webhook(_failure_webhook(payos_order["payment"]))

        assert result.outcome == "failed"
        assert fake_supabase.get("orders", payos_order["order"]["id"])["status"] == "failed"
        assert fake_supabase.get("payments", payos_order["payment"]["id"])["status"] == "failed"
        confirmed_spy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_after_success_is_ignored(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        fake_supabase: FakeSupabaseClient,
    ) -> None:
        payment = payos_order["payment"]
        await order_service.handle_payos_webhook(_success_webhook(payment))

        result = await order_service.handle_payos_webhook(_failure_webhook(payment))

        assert result.outcome == "ignored"
        assert fake_supabase.get("orders", payos_order["order"]["id"])["status"] == "confirmed"
        assert fake_supabase.get("payments", payment["id"])["status"] == "completed"

    @pytest.mark.asyncio
    async def test_retry_finishes_partially_applied_success(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        fake_supabase: FakeSupabaseClient,
        confirmed_spy: AsyncMock,
    ) -> None:
        """The payment was completed but the order update never happened."""
        payment = payos_order["payment"]
        fake_supabase.table("payments").update({"status": "completed"}).eq("id", payment["id"]).execute()

        result = await order_service.handle_payos_webhook(_success_webhook(payment))

        assert result.outcome == "confirmed"
        assert fake_supabase.get("orders", payos_order["order"]["id"])["status"] == "confirmed"
        confirmed_spy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_success_for_cancelled_order_leaves_order_failed(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        fake_supabase: FakeSupabaseClient,
        confirmed_spy: AsyncMock,
    ) -> None:
        await order_service.cancel_order(payos_order["order"]["id"], "Changed my mind")

        result = await order_service.handle_payos_webhook(_success_webhook(payos_order["payment"]))

        assert result.outcome == "ignored"
        assert fake_supabase.get("orders", payos_order["order"]["id"])["status"] == "failed"
        assert fake_supabase.get("payments", payos_order["payment"]["id"])["status"] == "completed"
        confirmed_spy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_signed_payload_is_rejected(self, order_service: OrderService) -> None:
        with pytest.raises(ValidationError, match="Malformed"):
            await order_service.handle_payos_webhook(signed_webhook({"amount": 1000}))


class TestConfirmPayment:
    """Tests for confirm_payment."""

    @pytest.mark.asyncio
    async def test_confirms_by_order_id(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        seed_cart,
        fake_supabase: FakeSupabaseClient,
        confirmed_spy: AsyncMock,
    ) -> None:
        cart = seed_cart()

        result = await order_service.confirm_payment(payos_order["order"]["id"], "TXN-1", "paid via app")

        assert result.order["status"] == "confirmed"
        assert result.payment["status"] == "completed"
        assert result.payment["transaction_code"] == "TXN-1"
        assert result.payment["notes"] == "paid via app"
        assert fake_supabase.get("carts", cart["id"])["items"] == []
        assert confirmed_spy.await_args.args[0].source == "callback"

    @pytest.mark.asyncio
    async def test_confirms_by_order_code(self, order_service: OrderService, payos_order: dict[str, Any]) -> None:
        result = await order_service.confirm_payment(payos_order["order"]["order_code"])

        assert result.order["id"] == payos_order["order"]["id"]
        assert result.order["status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_second_confirmation_changes_nothing(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        fake_supabase: FakeSupabaseClient,
        confirmed_spy: AsyncMock,
    ) -> None:
        await order_service.confirm_payment(payos_order["order"]["id"])
        order_before = fake_supabase.get("orders", payos_order["order"]["id"])

        result = await order_service.confirm_payment(payos_order["order"]["id"])

        assert result.message == "Payment already confirmed"
        assert fake_supabase.get("orders", payos_order["order"]["id"]) == order_before
        assert confirmed_spy.await_count == 1

    @pytest.mark.asyncio
    async def test_webhook_then_callback_publishes_once(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        confirmed_spy: AsyncMock,
    ) -> None:
        await order_service.handle_payos_webhook(_success_webhook(payos_order["payment"]))
        await order_service.confirm_payment(payos_order["order"]["id"])

        assert confirmed_spy.await_count == 1

    @pytest.mark.asyncio
    async def test_shipping_order_reports_already_paid(self, order_service: OrderService, seed_order) -> None:
        order = seed_order(status="shipping")

        result = await order_service.confirm_payment(order["id"])

        assert result.message == "Order has already been paid"
        assert result.order["status"] == "shipping"

    @pytest.mark.asyncio
    async def test_failed_order_is_rejected(self, order_service: OrderService, seed_order) -> None:
        order = seed_order(status="failed")

        with pytest.raises(ConflictError):
            await order_service.confirm_payment(order["id"])

    @pytest.mark.asyncio
    async def test_cash_order_is_rejected(self, order_service: OrderService) -> None:
        result = await order_service.create_order(_order_request("cash"))

        with pytest.raises(ConflictError, match="PayOS"):
            await order_service.confirm_payment(result.order["id"])

    @pytest.mark.asyncio
    async def test_order_without_payment_is_not_found(self, order_service: OrderService, seed_order) -> None:
        order = seed_order()

        with pytest.raises(NotFoundError, match="Payment"):
            await order_service.confirm_payment(order["id"])

    @pytest.mark.asyncio
    async def test_failed_payment_is_rejected(
        self, order_service: OrderService, payos_gateway: FakePayOSClient
    ) -> None:
        payos_gateway.reject_create = "rejected"
        result = await order_service.create_order(_order_request("payos"))

        with pytest.raises(ConflictError, match="failed"):
            await order_service.confirm_payment(result.order["id"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order_ref", ["ORD-20240101-ZZZZZZ", "00000000-0000-0000-0000-000000000000", "nonsense"])
    async def test_unknown_order_is_not_found(self, order_service: OrderService, order_ref: str) -> None:
        with pytest.raises(NotFoundError):
            await order_service.confirm_payment(order_ref)


class TestConfirmPaymentWithGatewayCheck:
    """Tests for confirm_payment when PayOS is asked before confirming."""

    @pytest.fixture
    def checking_service(
        self,
        fake_supabase: FakeSupabaseClient,
        payos_service: PayOSService,
        voucher_service: VoucherService,
        event_bus: OrderEventBus,
    ) -> OrderService:
        return OrderService(
            client=fake_supabase,
            payos=payos_service,
            vouchers=voucher_service,
            events=event_bus,
            verify_on_confirm=True,
        )

    @pytest.mark.asyncio
    async def test_unpaid_link_is_rejected(
        self, checking_service: OrderService, payos_gateway: FakePayOSClient
    ) -> None:
        created = await checking_service.create_order(_order_request("payos"))
        payos_gateway.link_status = "PENDING"

        with pytest.raises(ConflictError, match="not reported"):
            await checking_service.confirm_payment(created.order["id"])

    @pytest.mark.asyncio
    async def test_paid_link_is_confirmed(
        self, checking_service: OrderService, payos_gateway: FakePayOSClient
    ) -> None:
        created = await checking_service.create_order(_order_request("payos"))
        payos_gateway.link_status = "PAID"

        result = await checking_service.confirm_payment(created.order["id"])

        assert result.order["status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_unreachable_gateway_raises_gateway_error(
        self, checking_service: OrderService, payos_gateway: FakePayOSClient
    ) -> None:
        created = await checking_service.create_order(_order_request("payos"))
        payos_gateway.unreachable = True

        with pytest.raises(GatewayError):
            await checking_service.confirm_payment(created.order["id"])


class TestCancelOrder:
    """Tests for cancel_order."""

    @pytest.mark.asyncio
    async def test_cancel_withdraws_pending_payos_payment(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        payos_gateway: FakePayOSClient,
        fake_supabase: FakeSupabaseClient,
    ) -> None:
        order = await order_service.cancel_order(payos_order["order"]["id"], "Out of stock")

        assert order["status"] == "failed"
        assert order["notes"] == "Out of stock"
        assert fake_supabase.get("payments", payos_order["payment"]["id"])["status"] == "cancelled"
        assert len(payos_gateway.calls("cancel")) == 1

    @pytest.mark.asyncio
    async def test_cancel_survives_gateway_outage(
        self,
        order_service: OrderService,
        payos_order: dict[str, Any],
        payos_gateway: FakePayOSClient,
        fake_supabase: FakeSupabaseClient,
    ) -> None:
        payos_gateway.unreachable = True

        order = await order_service.cancel_order(payos_order["order"]["id"])

        assert order["status"] == "failed"
        assert fake_supabase.get("payments", payos_order["payment"]["id"])["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_cash_order(self, order_service: OrderService, fake_supabase: FakeSupabaseClient) -> None:
        created = await order_service.create_order(_order_request("cash"))

        order = await order_service.cancel_order(created.order["id"])

        assert order["status"] == "failed"
        assert fake_supabase.get("payments", created.payment["id"])["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent_on_failed_order(
        self, order_service: OrderService, seed_order, fake_supabase: FakeSupabaseClient
    ) -> None:
        order = seed_order(status="failed")

        result = await order_service.cancel_order(order["id"], "again")

        assert result == order
        assert fake_supabase.get("orders", order["id"]) == order
        assert fake_supabase.rows("order_status_audit") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["success", "shipping"])
    async def test_cancel_rejected_after_shipping(
        self, order_service: OrderService, seed_order, fake_supabase: FakeSupabaseClient, status: str
    ) -> None:
        order = seed_order(status=status)

        with pytest.raises(ConflictError):
            await order_service.cancel_order(order["id"])

        assert fake_supabase.get("orders", order["id"]) == order

    @pytest.mark.asyncio
    async def test_cancel_confirmed_order(self, order_service: OrderService, seed_order) -> None:
        order = seed_order(status="confirmed")

        result = await order_service.cancel_order(order["id"])

        assert result["status"] == "failed"


class TestOrderAdministration:
    """Tests for admin lifecycle events, overrides and CRUD."""

    @pytest.mark.asyncio
    async def test_ship_then_deliver_reaches_success(
        self, order_service: OrderService, seed_order, fake_supabase: FakeSupabaseClient
    ) -> None:
        order = seed_order(status="confirmed")

        shipped = await order_service.apply_admin_event(order["id"], OrderEvent.SHIP, admin_id="admin-1")
        delivered = await order_service.apply_admin_event(order["id"], OrderEvent.DELIVER, admin_id="admin-1")

        assert shipped["status"] == "shipping"
        assert delivered["status"] == "success"
        assert delivered["processed_by"] == "admin-1"
        audit = fake_supabase.rows("order_status_audit")
        assert [(row["from_status"], row["to_status"], row["kind"]) for row in audit] == [
            ("confirmed", "shipping", "transition"),
            ("shipping", "success", "transition"),
        ]

    @pytest.mark.asyncio
    async def test_payment_events_cannot_be_applied_manually(self, order_service: OrderService, seed_order) -> None:
        order = seed_order()

        with pytest.raises(BadRequestError):
            await order_service.apply_admin_event(order["id"], OrderEvent.PAYMENT_SUCCEEDED)

    @pytest.mark.asyncio
    async def test_invalid_event_is_a_conflict(self, order_service: OrderService, seed_order) -> None:
        order = seed_order(status="pending")

        with pytest.raises(ConflictError, match="ship"):
            await order_service.apply_admin_event(order["id"], OrderEvent.SHIP)

    @pytest.mark.asyncio
    async def test_admin_cancel_goes_through_cancel_flow(self, order_service: OrderService, seed_order) -> None:
        order = seed_order(status="confirmed")

        result = await order_service.apply_admin_event(order["id"], OrderEvent.CANCEL, "admin-1", "Fraud check")

        assert result["status"] == "failed"
        assert result["notes"] == "Fraud check"

    @pytest.mark.asyncio
    async def test_concurrent_status_change_is_detected(
        self, order_service: OrderService, seed_order, fake_supabase: FakeSupabaseClient
    ) -> None:
        order = seed_order(status="confirmed")

        def concurrent_cancel(client: FakeSupabaseClient) -> None:
            client.table("orders").update({"status": "failed"}).eq("id", order["id"]).execute()

        fake_supabase.before("orders", "update", concurrent_cancel)

        with pytest.raises(ConflictError, match="concurrently"):
            await order_service.apply_admin_event(order["id"], OrderEvent.SHIP)

        assert fake_supabase.get("orders", order["id"])["status"] == "failed"

    @pytest.mark.asyncio
    async def test_override_is_audited(
        self, order_service: OrderService, seed_order, fake_supabase: FakeSupabaseClient
    ) -> None:
        order = seed_order(status="failed")

        result = await order_service.override_status(order["id"], OrderStatus.CONFIRMED, "admin-9", "Bank confirmed")

        assert result["status"] == "confirmed"
        audit = fake_supabase.rows("order_status_audit")[-1]
        assert audit["kind"] == "override"
        assert audit["actor"] == "admin-9"
        assert audit["reason"] == "Bank confirmed"
        assert audit["event"] is None

    @pytest.mark.asyncio
    async def test_update_order_leaves_status_alone(self, order_service: OrderService, seed_order) -> None:
        order = seed_order(status="pending")

        updated = await order_service.update_order(order["id"], OrderUpdate(notes="Gift wrap"))

        assert updated["notes"] == "Gift wrap"
        assert updated["status"] == "pending"

    @pytest.mark.asyncio
    async def test_get_missing_order(self, order_service: OrderService) -> None:
        with pytest.raises(NotFoundError):
            await order_service.get_order("00000000-0000-0000-0000-000000000000")

    @pytest.mark.asyncio
    async def test_list_orders_filters(self, order_service: OrderService, seed_order) -> None:
        seed_order(status="pending", recipient_phone="0911111111")
        seed_order(status="success", recipient_phone="0922222222")
        seed_order(status="success", customer_id="customer-002")

        items, total = await order_service.list_orders(OrderListParams(status=OrderStatus.SUCCESS))
        assert total == 2

        items, total = await order_service.list_orders(OrderListParams(search="0911"))
        assert [o["recipient_phone"] for o in items] == ["0911111111"]

        items, total = await order_service.list_orders(OrderListParams(customer_id="customer-002"))
        assert total == 1

    @pytest.mark.asyncio
    async def test_search_text_is_matched_literally(self, order_service: OrderService, seed_order) -> None:
        seed_order(recipient_name="Tran, Minh (VIP)")
        seed_order(recipient_name="Minh")

        items, total = await order_service.list_orders(OrderListParams(search="tran, minh (vip)"))
        assert [o["recipient_name"] for o in items] == ["Tran, Minh (VIP)"]

        items, total = await order_service.list_orders(OrderListParams(search="x%,customer_id.neq.nobody"))
        assert total == 0

    @pytest.mark.asyncio
    async def test_order_stats(self, order_service: OrderService, seed_order) -> None:
        seed_order(status="success", final_amount=2_000_000)
        seed_order(status="success", final_amount=3_000_000)
        seed_order(status="pending", final_amount=500_000)

        stats = await order_service.get_order_stats()

        assert stats["total_orders"] == 3
        assert stats["total_revenue"] == 5_000_000
        breakdown = {entry["status"]: entry for entry in stats["status_breakdown"]}
        assert breakdown["success"]["count"] == 2
        assert breakdown["pending"]["total_amount"] == 500_000

    @pytest.mark.asyncio
    async def test_payments_listed_newest_first(
        self, order_service: OrderService, seed_order, fake_supabase: FakeSupabaseClient
    ) -> None:
        order = seed_order()
        first = fake_supabase.seed("payments", order_id=order["id"], payment_method="payos", amount=1, status="failed")
        second = fake_supabase.seed("payments", order_id=order["id"], payment_method="payos", amount=1, status="pending")

        payments = await order_service.get_order_payments(order["id"])

        assert [p["id"] for p in payments] == [second["id"], first["id"]]

    @pytest.mark.asyncio
    async def test_delete_order(
        self, order_service: OrderService, seed_order, fake_supabase: FakeSupabaseClient
    ) -> None:
        order = seed_order(status="failed")

        await order_service.delete_order(order["id"])

        assert fake_supabase.get("orders", order["id"]) is None

    @pytest.mark.asyncio
    async def test_delete_refuses_paid_order(
        self, order_service: OrderService, seed_order, fake_supabase: FakeSupabaseClient
    ) -> None:
        order = seed_order(status="confirmed")
        fake_supabase.seed("payments", order_id=order["id"], payment_method="payos", amount=1, status="completed")

        with pytest.raises(ConflictError):
            await order_service.delete_order(order["id"])


class TestStrategiesAreInjectable:
    """The order service only talks to payment methods through strategies."""

    @pytest.mark.asyncio
    async def test_custom_strategy_is_used(
        self,
        fake_supabase: FakeSupabaseClient,
        voucher_service: VoucherService,
        event_bus: OrderEventBus,
    ) -> None:
        strategy = AsyncMock()
        strategy.start.return_value = PaymentStartResult(payment={"id": "p1"}, payment_url=None, message="stub")
        payos = PayOSService(PayOSConfig(client_id="", api_key="", checksum_key=""))
        service = OrderService(
            client=fake_supabase,
            payos=payos,
            vouchers=voucher_service,
            events=event_bus,
            strategies={PaymentMethod.CASH: strategy},
        )

        result = await service.create_order(_order_request("cash"))

        strategy.start.assert_awaited_once()
        assert result.message == "stub"
