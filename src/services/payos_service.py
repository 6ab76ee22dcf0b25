"""PayOS hosted checkout adapter.

Wraps the PayOS SDK client. Every call returns a ``GatewayResult``; SDK
and transport errors are logged and converted to ``error=1`` instead of
being raised, so the order flow can decide how to degrade.
"""

import logging
import secrets
from typing import Any
from urllib.parse import urlencode

import httpx
from payos import AsyncPayOS, PayOSError
from payos.types import CreatePaymentLinkRequest

from src.core.payos import PayOSConfig, create_payos_client
from src.schemas.payos import GatewayResult, PaymentLinkRequest

logger = logging.getLogger(__name__)

SUCCESS_CODE = "00"
NOT_CONFIGURED = "PayOS is not configured"


class PayOSService:
    """Client for creating, querying and cancelling PayOS payment links."""

    def __init__(self, config: PayOSConfig, client: AsyncPayOS | None = None) -> None:
        """Initialize the adapter.

        Args:
            config: PayOS credentials and endpoints.
            client: Optional SDK client; one is built from ``config`` when
                omitted and credentials are present.
        """
        self.config = config
        if client is None and config.is_configured:
            client = create_payos_client(config)
        self.client = client

    async def create_payment_link(self, data: PaymentLinkRequest) -> GatewayResult:
        """Create a hosted checkout link.

        Return and cancel URLs default to the frontend's
        ``/payment/success`` and ``/payment/cancel`` pages with ``orderId``
        and ``orderCode`` query parameters.

        Args:
            data: Payment link request.

        Returns:
            GatewayResult: ``data`` holds the PayOS link (``checkoutUrl``,
            ``paymentLinkId``...) on success.
        """
        if self.client is None:
            logger.error("PayOS is not configured; cannot create link for %s", data.order_code)
            return GatewayResult(error=1, message=NOT_CONFIGURED)

        items = [item.model_dump() for item in data.items] or [
            {"name": data.description, "quantity": 1, "price": data.amount}
        ]
        request = CreatePaymentLinkRequest(
            order_code=data.order_code,
            amount=data.amount,
            description=data.description,
            return_url=data.return_url or self.build_callback_url("success", data.order_id, data.order_code),
            cancel_url=data.cancel_url or self.build_callback_url("cancel", data.order_id, data.order_code),
            items=items,
            buyer_name=data.buyer_name,
            buyer_email=data.buyer_email,
            buyer_phone=data.buyer_phone,
            buyer_address=data.buyer_address,
        )

        logger.info(
            "Creating PayOS payment link for order code %s (order %s)",
            data.order_code,
            data.order_id,
        )
        try:
            link = await self.client.payment_requests.create(request)
        except (PayOSError, httpx.HTTPError) as e:
            return self._failure("create", data.order_code, e)

        logger.info("PayOS payment link created: %s", link.checkout_url)
        return GatewayResult(
            error=0,
            message="Success",
            data={
                "checkoutUrl": link.checkout_url,
                "paymentLinkId": link.payment_link_id,
                "orderCode": link.order_code,
                "amount": link.amount,
                "status": link.status,
                "qrCode": link.qr_code,
            },
        )

    async def get_payment_link_information(self, order_code: int) -> GatewayResult:
        """Fetch the current state of a payment link.

        Args:
            order_code: PayOS order code.

        Returns:
            GatewayResult: ``data["status"]`` is e.g. PENDING, PAID, CANCELLED.
        """
        if self.client is None:
            return GatewayResult(error=1, message=NOT_CONFIGURED)

        logger.info("Getting PayOS payment info for order code %s", order_code)
        try:
            info = await self.client.payment_requests.get(order_code)
        except (PayOSError, httpx.HTTPError) as e:
            return self._failure("get", order_code, e)

        return GatewayResult(
            error=0,
            message="Success",
            data={
                "orderCode": info.order_code,
                "amount": info.amount,
                "amountPaid": info.amount_paid,
                "status": info.status,
            },
        )

    async def cancel_payment_link(self, order_code: int, reason: str | None = None) -> GatewayResult:
        """Cancel a payment link.

        Args:
            order_code: PayOS order code.
            reason: Optional cancellation reason shown by PayOS.

        Returns:
            GatewayResult: Result of the cancellation.
        """
        if self.client is None:
            return GatewayResult(error=1, message=NOT_CONFIGURED)

        logger.info("Cancelling PayOS payment link for order code %s", order_code)
        try:
            cancelled = await self.client.payment_requests.cancel(order_code, reason)
        except (PayOSError, httpx.HTTPError) as e:
            return self._failure("cancel", order_code, e)

        return GatewayResult(error=0, message="Success", data={"orderCode": order_code, "status": cancelled.status})

    async def verify_webhook_signature(self, payload: Any) -> bool:
        """Check a webhook body against its signature.

        Args:
            payload: Raw webhook JSON body.

        Returns:
            bool: True only if ``data`` and ``signature`` are present and
            the SDK accepts the signature.
        """
        data = payload.get("data") if isinstance(payload, dict) else None
        signature = payload.get("signature") if isinstance(payload, dict) else None
        if not isinstance(data, dict) or not isinstance(signature, str) or not signature:
            logger.warning("Webhook payload missing data or signature")
            return False
        if self.client is None:
            logger.error("PayOS checksum key not configured; rejecting webhook")
            return False

        try:
            verified = await self.client.webhooks.verify(payload)
        except (PayOSError, TypeError, ValueError) as e:
            logger.warning("Webhook verification failed: %s", str(e))
            return False
        return verified is not None

    def build_callback_url(self, kind: str, order_id: str | None, order_code: int | None) -> str:
        """Build a frontend redirect URL carrying the order identifiers.

        Args:
            kind: "success" or "cancel".
            order_id: Our order id.
            order_code: PayOS order code.

        Returns:
            str: The redirect URL.
        """
        url = f"{self.config.frontend_url}/payment/{kind}"
        params = {}
        if order_id:
            params["orderId"] = order_id
        if order_code:
            params["orderCode"] = str(order_code)
        return f"{url}?{urlencode(params)}" if params else url

    @staticmethod
    def generate_order_code() -> int:
        """Generate a random 10-digit PayOS order code."""
        return 1_000_000_000 + secrets.randbelow(9_000_000_000)

    @staticmethod
    def format_currency(amount: int | float) -> str:
        """Format an amount as VND, e.g. ``1.500.000 ₫``."""
        return f"{amount:,.0f}".replace(",", ".") + " ₫"

    @staticmethod
    def _failure(operation: str, order_code: int, error: Exception) -> GatewayResult:
        logger.error("PayOS %s failed for order code %s: %s", operation, order_code, str(error))
        return GatewayResult(error=1, message=str(error) or "PayOS request failed")
