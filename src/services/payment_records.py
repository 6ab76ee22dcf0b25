"""Persistence helpers for the payments table."""

from datetime import datetime, timezone
from typing import Any

from supabase import Client

from src.api.middleware.error_handler import NotFoundError
from src.models.payment import PaymentMethod, PaymentStatus, PaymentUpdate


class PaymentRecords:
    """Reads and writes payment rows."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def insert(
        self,
        order_id: str,
        method: PaymentMethod,
        amount: int,
        payos_order_code: int | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Insert a pending payment for an order."""
        row = {
            "order_id": order_id,
            "payment_method": method.value,
            "amount": amount,
            "status": PaymentStatus.PENDING.value,
            "payos_order_code": payos_order_code,
            "notes": notes,
            "payment_date": datetime.now(timezone.utc).isoformat(),
        }
        response = self.client.table("payments").insert(row).execute()
        return response.data[0]

    def update(self, payment_id: str, changes: PaymentUpdate) -> dict[str, Any]:
        """Update a payment and return the stored row.

        Raises:
            NotFoundError: If the payment does not exist.
        """
        response = self.client.table("payments").update(dict(changes)).eq("id", payment_id).execute()
        if not response.data:
            raise NotFoundError("Payment not found")
        return response.data[0]

    def list_for_order(self, order_id: str) -> list[dict[str, Any]]:
        """All payments of an order, newest first."""
        response = (
            self.client.table("payments")
            .select("*")
            .eq("order_id", order_id)
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []

    def latest_for_order(self, order_id: str) -> dict[str, Any] | None:
        """The most recent payment of an order, if any."""
        payments = self.list_for_order(order_id)
        return payments[0] if payments else None

    def find_by_payos_order_code(self, order_code: int) -> dict[str, Any] | None:
        """Find the payment created for a PayOS order code."""
        response = (
            self.client.table("payments")
            .select("*")
            .eq("payos_order_code", order_code)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None
