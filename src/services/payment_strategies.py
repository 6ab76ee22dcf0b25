"""Payment method strategies.

Each payment method knows how to start collecting funds for a freshly
created order and how to withdraw an outstanding payment when the order
is cancelled. The order service picks the strategy by
``PaymentMethod`` and never branches on the method itself.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from src.models.payment import PaymentMethod, PaymentStatus
from src.schemas.payos import PaymentLinkItem, PaymentLinkRequest
from src.services.payment_records import PaymentRecords
from src.services.payos_service import PayOSService

logger = logging.getLogger(__name__)


@dataclass
class PaymentStartResult:
    """Outcome of starting a payment for an order."""

    payment: dict[str, Any]
    payment_url: str | None
    message: str


class PaymentStrategy(Protocol):
    """Behaviour specific to one payment method."""

    method: PaymentMethod

    async def start(self, order: dict[str, Any]) -> PaymentStartResult:
        """Create the payment record (and any external resource) for an order."""
        ...

    async def withdraw(self, payment: dict[str, Any], reason: str) -> None:
        """Release external resources of a pending payment being cancelled."""
        ...


class CashPaymentStrategy:
    """Cash on delivery: a pending payment row and nothing else.

    The payment stays pending until an administrator confirms collection.
    """

    method = PaymentMethod.CASH

    def __init__(self, payments: PaymentRecords) -> None:
        self.payments = payments

    async def start(self, order: dict[str, Any]) -> PaymentStartResult:
        payment = self.payments.insert(
            order_id=order["id"],
            method=self.method,
            amount=order["final_amount"],
            notes="Cash on delivery",
        )
        return PaymentStartResult(
            payment=payment,
            payment_url=None,
            message="Order created successfully. Pay on delivery.",
        )

    async def withdraw(self, payment: dict[str, Any], reason: str) -> None:
        return None


class PayOSPaymentStrategy:
    """Hosted checkout through PayOS."""

    method = PaymentMethod.PAYOS

    def __init__(self, payments: PaymentRecords, payos: PayOSService) -> None:
        self.payments = payments
        self.payos = payos

    async def start(self, order: dict[str, Any]) -> PaymentStartResult:
        """Create a pending payment and request a checkout link.

        If PayOS cannot create the link, the payment is marked failed and
        no URL is returned; the order itself is left pending.
        """
        payos_order_code = self.payos.generate_order_code()
        payment = self.payments.insert(
            order_id=order["id"],
            method=self.method,
            amount=order["final_amount"],
            payos_order_code=payos_order_code,
        )

        result = await self.payos.create_payment_link(
            PaymentLinkRequest(
                order_code=payos_order_code,
                amount=order["final_amount"],
                description=order["order_code"],
                order_id=order["id"],
                buyer_name=order.get("recipient_name"),
                buyer_phone=order.get("recipient_phone"),
                buyer_address=order.get("shipping_address"),
                items=[
                    PaymentLinkItem(
                        name=f"Product {detail['product_id']}",
                        quantity=detail["quantity"],
                        price=detail["price_at_purchase"],
                    )
                    for detail in order.get("order_details", [])
                ],
            )
        )

        if result.ok:
            link_id = result.data.get("paymentLinkId")
            payment = self.payments.update(
                payment["id"],
                {"payos_payment_link_id": link_id, "transaction_code": link_id},
            )
            logger.info("PayOS payment created for order %s", order["id"])
            return PaymentStartResult(
                payment=payment,
                payment_url=result.data.get("checkoutUrl"),
                message="Order created. Please complete the payment through the PayOS link.",
            )

        logger.error("PayOS payment failed for order %s: %s", order["id"], result.message)
        payment = self.payments.update(
            payment["id"],
            {"status": PaymentStatus.FAILED.value, "notes": result.message},
        )
        return PaymentStartResult(
            payment=payment,
            payment_url=None,
            message=f"Order created, but the PayOS payment link could not be created: {result.message}",
        )

    async def withdraw(self, payment: dict[str, Any], reason: str) -> None:
        """Cancel the checkout link; a gateway failure is logged only."""
        if not payment.get("payos_order_code"):
            return
        result = await self.payos.cancel_payment_link(payment["payos_order_code"], reason)
        if result.error:
            logger.warning(
                "Could not cancel PayOS link %s: %s",
                payment["payos_order_code"],
                result.message,
            )


def build_strategies(payments: PaymentRecords, payos: PayOSService) -> dict[PaymentMethod, PaymentStrategy]:
    """Build the strategy registry keyed by payment method."""
    strategies: list[PaymentStrategy] = [
        CashPaymentStrategy(payments),
        PayOSPaymentStrategy(payments, payos),
    ]
    return {strategy.method: strategy for strategy in strategies}
