"""Order orchestration: creation, payment confirmation and lifecycle."""

import logging
import re
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import ValidationError as SchemaValidationError
from supabase import Client

from src.api.middleware.error_handler import (
    BadRequestError,
    ConflictError,
    GatewayError,
    NotFoundError,
    ValidationError,
)
from src.core.supabase import ilike_any
from src.models.order import OrderStatus
from src.models.payment import PaymentMethod, PaymentStatus
from src.schemas.order import OrderCreate, OrderListParams, OrderUpdate
from src.schemas.payos import PayOSWebhookPayload
from src.services.order_events import OrderEventBus, PaymentConfirmed
from src.services.order_state_machine import (
    ADMIN_EVENTS,
    InvalidTransitionError,
    OrderEvent,
    transition,
)
from src.services.payment_records import PaymentRecords
from src.services.payment_strategies import PaymentStrategy, build_strategies
from src.services.payos_service import SUCCESS_CODE, PayOSService
from src.services.voucher_service import VoucherService

logger = logging.getLogger(__name__)

ORDER_CODE_ALPHABET = string.ascii_uppercase + string.digits
ORDER_CODE_PATTERN = re.compile(r"^ORD-\d{8}-[A-Z0-9]{6}$")


def generate_order_code(now: datetime | None = None) -> str:
    """Generate a human-readable order code like ``ORD-20240115-7KQ2ZD``."""
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(ORDER_CODE_ALPHABET) for _ in range(6))
    return f"ORD-{now:%Y%m%d}-{suffix}"


class WebhookSignatureError(ValidationError):
    """Raised when a PayOS webhook fails signature verification."""

    def __init__(self) -> None:
        super().__init__(message="Invalid signature")


@dataclass
class OrderCreateResult:
    """Result of placing an order."""

    order: dict[str, Any]
    payment: dict[str, Any] | None
    payment_url: str | None
    message: str


@dataclass
class ConfirmResult:
    """Result of confirming a payment from the return page."""

    order: dict[str, Any]
    payment: dict[str, Any] | None
    message: str


@dataclass
class WebhookResult:
    """What a webhook delivery did.

    outcome is one of "confirmed", "failed", "duplicate" or "ignored".
    """

    order_id: str | None
    payment_id: str | None
    outcome: str


class OrderService:
    """Service for order placement, payment settlement and order administration."""

    def __init__(
        self,
        client: Client,
        payos: PayOSService,
        vouchers: VoucherService,
        events: OrderEventBus,
        strategies: dict[PaymentMethod, PaymentStrategy] | None = None,
        verify_on_confirm: bool = False,
    ) -> None:
        """Initialize order service.

        Args:
            client: Supabase client.
            payos: PayOS gateway adapter.
            vouchers: Voucher service used for validation and redemption.
            events: Bus on which PaymentConfirmed is published.
            strategies: Payment strategies by method; built from the
                client and adapter when omitted.
            verify_on_confirm: Ask PayOS whether a link is PAID before
                trusting a client-side confirmation.
        """
        self.client = client
        self.payos = payos
        self.vouchers = vouchers
        self.events = events
        self.payments = PaymentRecords(client)
        self.strategies = strategies or build_strategies(self.payments, payos)
        self.verify_on_confirm = verify_on_confirm

    async def create_order(self, data: OrderCreate) -> OrderCreateResult:
        """Place an order and start its payment.

        The voucher, when given, is validated against the subtotal and one
        use is consumed before the order row is written. If the insert
        fails the use is given back.

        Args:
            data: Order creation request.

        Returns:
            OrderCreateResult: The pending order, its payment, the checkout
            URL (None for cash or when the gateway failed) and a message.

        Raises:
            ValidationError: If the voucher is invalid or has no uses left.
        """
        subtotal = sum(item.price_at_purchase * item.quantity for item in data.order_details)
        discount_amount = 0
        applied_discounts: list[dict[str, Any]] = []
        voucher_id: str | None = None

        if data.voucher_code:
            validation = await self.vouchers.validate_voucher(data.voucher_code, subtotal)
            if not validation.is_valid or validation.voucher is None:
                raise ValidationError(validation.message)
            voucher = validation.voucher
            if not await self.vouchers.redeem_voucher(voucher.id):
                raise ValidationError("Voucher usage limit reached")
            voucher_id = voucher.id
            discount_amount = validation.discount_amount or 0
            applied_discounts.append(
                {
                    "voucher_id": voucher.id,
                    "discount_code": voucher.discount_code,
                    "discount_amount": discount_amount,
                }
            )

        row = {
            "order_code": generate_order_code(),
            "customer_id": data.customer_id,
            "order_details": [item.model_dump() for item in data.order_details],
            "applied_discounts": applied_discounts,
            "subtotal": subtotal,
            "discount_amount": discount_amount,
            "shipping_fee": data.shipping_fee,
            "final_amount": subtotal - discount_amount + data.shipping_fee,
            "status": OrderStatus.PENDING.value,
            "shipping_address": data.shipping_address,
            "recipient_name": data.recipient_name,
            "recipient_phone": data.recipient_phone,
            "notes": data.notes,
        }

        try:
            response = self.client.table("orders").insert(row).execute()
            order = response.data[0]
        except Exception as e:
            logger.error("Failed to insert order for customer %s: %s", data.customer_id, str(e))
            if voucher_id:
                await self.vouchers.release_voucher(voucher_id)
            raise

        logger.info(
            "Order %s created for customer %s (%s, %d VND)",
            order["order_code"],
            data.customer_id,
            data.payment_method.value,
            order["final_amount"],
        )

        started = await self.strategies[data.payment_method].start(order)
        return OrderCreateResult(
            order=order,
            payment=started.payment,
            payment_url=started.payment_url,
            message=started.message,
        )

    async def handle_payos_webhook(self, payload: dict[str, Any]) -> WebhookResult:
        """Apply a PayOS payment notification.

        Deliveries are idempotent: a replayed success does nothing and does
        not publish again, a failure after completion is ignored, and a
        retry after a partially applied delivery finishes the remaining
        steps.

        Args:
            payload: Raw webhook body.

        Returns:
            WebhookResult: What the delivery changed.

        Raises:
            WebhookSignatureError: If the signature does not verify.
            ValidationError: If the signed body is malformed.
        """
        if not await self.payos.verify_webhook_signature(payload):
            logger.warning("Rejected PayOS webhook with an invalid signature")
            raise WebhookSignatureError()

        try:
            webhook = PayOSWebhookPayload.model_validate(payload)
        except SchemaValidationError as e:
            raise ValidationError("Malformed webhook payload") from e

        data = webhook.data
        payment = self.payments.find_by_payos_order_code(data.order_code)
        if not payment:
            logger.warning("PayOS webhook for unknown order code %s", data.order_code)
            return WebhookResult(order_id=None, payment_id=None, outcome="ignored")

        order = self._find_order(payment["order_id"])
        if not order:
            logger.warning("PayOS webhook for payment %s without an order", payment["id"])
            return WebhookResult(order_id=None, payment_id=payment["id"], outcome="ignored")

        if data.code == SUCCESS_CODE:
            was_completed = payment["status"] == PaymentStatus.COMPLETED.value
            order, payment, confirmed = await self._settle_payment(
                order, payment, transaction_code=data.reference, source="webhook"
            )
            if confirmed:
                outcome = "confirmed"
            elif was_completed:
                outcome = "duplicate"
            else:
                outcome = "ignored"
            return WebhookResult(order_id=order["id"], payment_id=payment["id"], outcome=outcome)

        return self._record_payment_failure(order, payment, data.desc or webhook.desc)

    async def confirm_payment(
        self,
        order_ref: str,
        transaction_id: str | None = None,
        notes: str | None = None,
    ) -> ConfirmResult:
        """Confirm a PayOS payment when the customer returns from checkout.

        Args:
            order_ref: Order id or order code.
            transaction_id: Gateway transaction reference.
            notes: Optional notes stored on the payment.

        Returns:
            ConfirmResult: The order and payment after confirmation.

        Raises:
            NotFoundError: If the order or its payment does not exist.
            ConflictError: If the order failed, the payment is not a PayOS
                payment, the payment failed or was cancelled, or PayOS does
                not report it as paid.
            GatewayError: If PayOS could not be asked about the payment.
        """
        order = await self._get_order_by_ref(order_ref)
        status = order["status"]
        payment = self.payments.latest_for_order(order["id"])

        if status in (OrderStatus.SUCCESS.value, OrderStatus.SHIPPING.value):
            return ConfirmResult(order=order, payment=payment, message="Order has already been paid")
        if status == OrderStatus.FAILED.value:
            raise ConflictError("Order has failed or was cancelled")
        if not payment:
            raise NotFoundError("Payment not found for this order")
        if payment["payment_method"] != PaymentMethod.PAYOS.value:
            raise ConflictError("Only PayOS payments can be confirmed")
        if payment["status"] in (PaymentStatus.FAILED.value, PaymentStatus.CANCELLED.value):
            raise ConflictError(f"Payment is {payment['status']}")

        if payment["status"] == PaymentStatus.PENDING.value and self.verify_on_confirm:
            info = await self.payos.get_payment_link_information(payment["payos_order_code"])
            if not info.ok:
                raise GatewayError(f"Could not verify the payment with PayOS: {info.message}")
            if info.data.get("status") != "PAID":
                logger.warning("PayOS reports order %s as %s", order["order_code"], info.data.get("status"))
                raise ConflictError("PayOS has not reported this payment as paid")

        was_completed = payment["status"] == PaymentStatus.COMPLETED.value
        order, payment, confirmed = await self._settle_payment(
            order, payment, transaction_code=transaction_id, source="callback", notes=notes
        )
        if was_completed and not confirmed:
            return ConfirmResult(order=order, payment=payment, message="Payment already confirmed")
        return ConfirmResult(order=order, payment=payment, message="Payment confirmed successfully")

    async def cancel_order(
        self,
        order_id: str,
        reason: str | None = None,
        actor: str | None = None,
    ) -> dict[str, Any]:
        """Cancel an order and withdraw its pending payments.

        Cancelling an order that already failed returns it unchanged.

        Raises:
            NotFoundError: If the order does not exist.
            ConflictError: If the order is shipping or completed.
        """
        order = await self.get_order(order_id)
        status = order["status"]
        if status in (OrderStatus.SUCCESS.value, OrderStatus.SHIPPING.value):
            raise ConflictError("Cannot cancel an order that is shipping or completed")
        if status == OrderStatus.FAILED.value:
            return order

        reason = reason or "Order cancelled"
        for payment in self.payments.list_for_order(order_id):
            if payment["status"] != PaymentStatus.PENDING.value:
                continue
            strategy = self.strategies.get(PaymentMethod(payment["payment_method"]))
            if strategy:
                await strategy.withdraw(payment, reason)
            self.payments.update(payment["id"], {"status": PaymentStatus.CANCELLED.value, "notes": reason})

        order = self._apply_event(order, OrderEvent.CANCEL, actor=actor, reason=reason, extra={"notes": reason})
        logger.info("Order %s cancelled: %s", order["order_code"], reason)
        return order

    async def get_order(self, order_id: str) -> dict[str, Any]:
        """Get an order by id.

        Raises:
            NotFoundError: If the order does not exist.
        """
        order = self._find_order(order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    async def list_orders(self, params: OrderListParams) -> tuple[list[dict[str, Any]], int]:
        """List orders with filters and pagination.

        Returns:
            tuple: (orders on the page, total matching count).
        """
        query = self.client.table("orders").select("*", count="exact")
        if params.status:
            query = query.eq("status", params.status.value)
        if params.customer_id:
            query = query.eq("customer_id", params.customer_id)
        if params.search:
            query = query.or_(ilike_any(["order_code", "recipient_name", "recipient_phone"], params.search))
        if params.start_date:
            query = query.gte("created_at", params.start_date.isoformat())
        if params.end_date:
            query = query.lte("created_at", params.end_date.isoformat())

        offset = (params.page - 1) * params.limit
        response = (
            query.order(params.sort_by, desc=params.sort_order == "desc")
            .range(offset, offset + params.limit - 1)
            .execute()
        )
        items = response.data or []
        total = response.count if response.count is not None else len(items)
        return items, total

    async def get_order_payments(self, order_id: str) -> list[dict[str, Any]]:
        """List an order's payments, newest first."""
        await self.get_order(order_id)
        return self.payments.list_for_order(order_id)

    async def update_order(self, order_id: str, data: OrderUpdate) -> dict[str, Any]:
        """Update non-status fields of an order."""
        current = await self.get_order(order_id)
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return current

        response = self.client.table("orders").update(changes).eq("id", order_id).execute()
        if not response.data:
            raise NotFoundError("Order not found")
        return response.data[0]

    async def apply_admin_event(
        self,
        order_id: str,
        event: OrderEvent,
        admin_id: str | None = None,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Apply a manual lifecycle event (ship, deliver or cancel).

        Raises:
            BadRequestError: If the event is driven by payments only.
            ConflictError: If the event is not allowed from the current status.
        """
        if event not in ADMIN_EVENTS:
            raise BadRequestError(f"Event '{event.value}' cannot be applied manually")
        if event == OrderEvent.CANCEL:
            return await self.cancel_order(order_id, reason, actor=admin_id)

        order = await self.get_order(order_id)
        extra = {"processed_by": admin_id} if admin_id else None
        return self._apply_event(order, event, actor=admin_id, reason=reason, extra=extra)

    async def override_status(
        self,
        order_id: str,
        status: OrderStatus,
        admin_id: str,
        reason: str,
    ) -> dict[str, Any]:
        """Force an order into any status, bypassing the lifecycle rules.

        The change is recorded in the audit table with kind "override".
        """
        order = await self.get_order(order_id)
        if order["status"] == status.value:
            return order

        logger.warning(
            "Admin %s overriding order %s status %s -> %s: %s",
            admin_id,
            order["order_code"],
            order["status"],
            status.value,
            reason,
        )
        return self._set_status(
            order,
            status,
            actor=admin_id,
            reason=reason,
            kind="override",
            extra={"processed_by": admin_id},
        )

    async def delete_order(self, order_id: str) -> None:
        """Delete an order.

        Raises:
            NotFoundError: If the order does not exist.
            ConflictError: If the order has a completed payment.
        """
        await self.get_order(order_id)
        payments = self.payments.list_for_order(order_id)
        if any(p["status"] == PaymentStatus.COMPLETED.value for p in payments):
            raise ConflictError("Cannot delete an order with a completed payment")

        response = self.client.table("orders").delete().eq("id", order_id).execute()
        if not response.data:
            raise NotFoundError("Order not found")
        logger.info("Order %s deleted", order_id)

    async def get_order_stats(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, Any]:
        """Count orders and sum amounts per status.

        Revenue only includes orders in status ``success``.
        """
        query = self.client.table("orders").select("status, final_amount")
        if start_date:
            query = query.gte("created_at", start_date.isoformat())
        if end_date:
            query = query.lte("created_at", end_date.isoformat())
        rows = query.execute().data or []

        breakdown: dict[str, dict[str, Any]] = {}
        for row in rows:
            entry = breakdown.setdefault(row["status"], {"status": row["status"], "count": 0, "total_amount": 0})
            entry["count"] += 1
            entry["total_amount"] += row.get("final_amount") or 0

        success = breakdown.get(OrderStatus.SUCCESS.value)
        return {
            "total_orders": len(rows),
            "total_revenue": success["total_amount"] if success else 0,
            "status_breakdown": list(breakdown.values()),
        }

    async def _settle_payment(
        self,
        order: dict[str, Any],
        payment: dict[str, Any],
        transaction_code: str | None,
        source: str,
        notes: str | None = None,
    ) -> tuple[dict[str, Any], dict[str, Any], bool]:
        """Complete a payment and confirm its pending order.

        Returns:
            tuple: (order, payment, whether the order was confirmed now).
            PaymentConfirmed is published only in the last case.
        """
        if payment["status"] != PaymentStatus.COMPLETED.value:
            changes: dict[str, Any] = {
                "status": PaymentStatus.COMPLETED.value,
                "payment_date": datetime.now(timezone.utc).isoformat(),
            }
            if transaction_code:
                changes["transaction_code"] = transaction_code
            if notes:
                changes["notes"] = notes
            payment = self.payments.update(payment["id"], changes)
            logger.info("Payment %s completed via %s", payment["id"], source)

        if order["status"] == OrderStatus.FAILED.value:
            logger.error(
                "Payment %s completed for failed order %s; needs manual review",
                payment["id"],
                order["order_code"],
            )
            return order, payment, False
        if order["status"] != OrderStatus.PENDING.value:
            return order, payment, False

        try:
            order = self._apply_event(order, OrderEvent.PAYMENT_SUCCEEDED, actor=source)
        except ConflictError:
            logger.info("Order %s was confirmed concurrently", order["order_code"])
            return await self.get_order(order["id"]), payment, False

        await self.events.publish(
            PaymentConfirmed(
                order_id=order["id"],
                order_code=order["order_code"],
                customer_id=order["customer_id"],
                amount=order["final_amount"],
                source=source,
            )
        )
        return order, payment, True

    def _record_payment_failure(
        self,
        order: dict[str, Any],
        payment: dict[str, Any],
        reason: str | None,
    ) -> WebhookResult:
        if payment["status"] == PaymentStatus.COMPLETED.value:
            logger.warning(
                "Ignoring failure notification for completed payment %s",
                payment["id"],
            )
            return WebhookResult(order_id=order["id"], payment_id=payment["id"], outcome="ignored")

        changed = False
        if payment["status"] == PaymentStatus.PENDING.value:
            payment = self.payments.update(
                payment["id"],
                {"status": PaymentStatus.FAILED.value, "notes": reason or "Payment failed"},
            )
            changed = True

        if order["status"] == OrderStatus.PENDING.value:
            try:
                self._apply_event(order, OrderEvent.PAYMENT_FAILED, actor="webhook", reason=reason)
                changed = True
            except ConflictError:
                logger.info("Order %s changed concurrently; leaving it as is", order["order_code"])

        return WebhookResult(
            order_id=order["id"],
            payment_id=payment["id"],
            outcome="failed" if changed else "duplicate",
        )

    def _apply_event(
        self,
        order: dict[str, Any],
        event: OrderEvent,
        actor: str | None = None,
        reason: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            next_status = transition(order["status"], event)
        except InvalidTransitionError as e:
            raise ConflictError(str(e)) from e
        return self._set_status(order, next_status, event=event, actor=actor, reason=reason, extra=extra)

    def _set_status(
        self,
        order: dict[str, Any],
        status: OrderStatus,
        event: OrderEvent | None = None,
        actor: str | None = None,
        reason: str | None = None,
        kind: str = "transition",
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Write a status change guarded on the status it was read with.

        Raises:
            ConflictError: If the order's status changed in the meantime.
        """
        changes = {"status": status.value, **(extra or {})}
        response = (
            self.client.table("orders")
            .update(changes)
            .eq("id", order["id"])
            .eq("status", order["status"])
            .execute()
        )
        if not response.data:
            raise ConflictError("Order status changed concurrently, please retry")

        self.client.table("order_status_audit").insert(
            {
                "order_id": order["id"],
                "from_status": order["status"],
                "to_status": status.value,
                "event": event.value if event else None,
                "actor": actor,
                "reason": reason,
                "kind": kind,
            }
        ).execute()
        logger.info("Order %s: %s -> %s", order["order_code"], order["status"], status.value)
        return response.data[0]

    def _find_order(self, order_id: str) -> dict[str, Any] | None:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("id", order_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def _get_order_by_ref(self, order_ref: str) -> dict[str, Any]:
        if ORDER_CODE_PATTERN.match(order_ref):
            response = (
                self.client.table("orders")
                .select("*")
                .eq("order_code", order_ref)
                .maybe_single()
                .execute()
            )
            if not response or not response.data:
                raise NotFoundError("Order not found")
            return response.data

        try:
            UUID(order_ref)
        except ValueError:
            raise NotFoundError("Order not found") from None
        return await self.get_order(order_ref)
