"""Voucher validation, redemption and administration service."""

import logging
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal
from typing import Any

from supabase import Client
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random

from src.api.middleware.error_handler import BadRequestError, NotFoundError
from src.core.supabase import ilike_any
from src.models.voucher import DiscountType
from src.schemas.voucher import (
    VoucherCreate,
    VoucherListParams,
    VoucherResponse,
    VoucherUpdate,
    VoucherValidationResult,
)
from src.services.payos_service import PayOSService

logger = logging.getLogger(__name__)

# Compare-and-set attempts before a redemption gives up under contention.
REDEEM_ATTEMPTS = 3
MAX_JITTER_SECONDS = 0.05


class UsageCountChanged(Exception):
    """used_count changed between the read and the conditional write."""

    def __init__(self, voucher_id: str) -> None:
        self.voucher_id = voucher_id
        super().__init__(f"Concurrent update on voucher {voucher_id}")


_retry_on_race = retry(
    retry=retry_if_exception_type(UsageCountChanged),
    stop=stop_after_attempt(REDEEM_ATTEMPTS),
    wait=wait_random(0, MAX_JITTER_SECONDS),
    reraise=True,
)


def _to_datetime(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class VoucherService:
    """Service for voucher validation and management."""

    def __init__(self, client: Client) -> None:
        """Initialize voucher service.

        Args:
            client: Supabase client.
        """
        self.client = client

    async def validate_voucher(self, code: str, order_value: int) -> VoucherValidationResult:
        """Check a voucher against an order value and compute its discount.

        Never raises for business reasons: unknown, inactive, out of window,
        below minimum order value and exhausted vouchers are returned with
        ``is_valid=False`` and a message. Has no side effects.

        Args:
            code: Voucher code.
            order_value: Order subtotal in VND.

        Returns:
            VoucherValidationResult: Validation outcome.
        """
        voucher = self._find_by_code(code)
        if not voucher:
            return VoucherValidationResult(is_valid=False, message="Voucher code not found")

        if not voucher.get("is_active", False):
            return VoucherValidationResult(is_valid=False, message="Voucher is not active")

        now = datetime.now(timezone.utc)
        if now < _to_datetime(voucher["start_date"]):
            return VoucherValidationResult(is_valid=False, message="Voucher is not yet valid")
        if now > _to_datetime(voucher["end_date"]):
            return VoucherValidationResult(is_valid=False, message="Voucher has expired")

        min_order_value = voucher.get("min_order_value") or 0
        if order_value < min_order_value:
            return VoucherValidationResult(
                is_valid=False,
                message=f"Order value must be at least {PayOSService.format_currency(min_order_value)}",
            )

        usage_limit = voucher.get("usage_limit")
        if usage_limit is not None and (voucher.get("used_count") or 0) >= usage_limit:
            return VoucherValidationResult(is_valid=False, message="Voucher usage limit reached")

        return VoucherValidationResult(
            is_valid=True,
            message="Voucher is valid",
            discount_amount=self.compute_discount(voucher, order_value),
            voucher=VoucherResponse(**voucher),
        )

    @staticmethod
    def compute_discount(voucher: dict[str, Any], order_value: int) -> int:
        """Compute the discount a voucher grants on an order value.

        Percentage vouchers are rounded down to whole VND. The result is
        capped by ``max_discount_amount`` (unset or 0 means uncapped) and by
        the order value itself, so the discounted total never goes negative.

        Args:
            voucher: Voucher row.
            order_value: Order subtotal in VND.

        Returns:
            int: Discount in VND.
        """
        value = Decimal(str(voucher["discount_value"]))
        if voucher["discount_type"] == DiscountType.PERCENTAGE.value:
            discount = (Decimal(order_value) * value / 100).to_integral_value(rounding=ROUND_DOWN)
        else:
            discount = value.to_integral_value(rounding=ROUND_DOWN)

        amount = int(discount)
        max_discount = voucher.get("max_discount_amount")
        if max_discount and amount > max_discount:
            amount = max_discount
        return max(0, min(amount, order_value))

    async def redeem_voucher(self, voucher_id: str) -> bool:
        """Consume one use of a voucher.

        The increment is a compare-and-set on ``used_count`` that refuses
        once ``usage_limit`` is reached, so concurrent redemptions can never
        push the counter past the limit.

        Args:
            voucher_id: Voucher UUID.

        Returns:
            bool: True if a use was consumed, False if none is left.

        Raises:
            NotFoundError: If the voucher does not exist.
        """
        try:
            return await self._redeem_once(voucher_id)
        except UsageCountChanged:
            logger.warning("Gave up redeeming voucher %s after %d attempts", voucher_id, REDEEM_ATTEMPTS)
            return False

    async def release_voucher(self, voucher_id: str) -> None:
        """Give back one use of a voucher after a failed order insert.

        Args:
            voucher_id: Voucher UUID.
        """
        try:
            await self._release_once(voucher_id)
        except UsageCountChanged:
            logger.error("Could not release voucher %s; used_count may be one too high", voucher_id)

    @_retry_on_race
    async def _redeem_once(self, voucher_id: str) -> bool:
        voucher = await self.get_voucher(voucher_id)
        used = voucher.get("used_count") or 0
        limit = voucher.get("usage_limit")
        if limit is not None and used >= limit:
            logger.warning("Voucher %s has no uses left (%d/%d)", voucher["discount_code"], used, limit)
            return False

        response = (
            self.client.table("vouchers")
            .update({"used_count": used + 1})
            .eq("id", voucher_id)
            .eq("used_count", used)
            .execute()
        )
        if not response.data:
            logger.info("Concurrent update on voucher %s, retrying redemption", voucher_id)
            raise UsageCountChanged(voucher_id)
        logger.info("Voucher %s redeemed (%d used)", voucher["discount_code"], used + 1)
        return True

    @_retry_on_race
    async def _release_once(self, voucher_id: str) -> None:
        voucher = await self.get_voucher(voucher_id)
        used = voucher.get("used_count") or 0
        if used <= 0:
            return
        response = (
            self.client.table("vouchers")
            .update({"used_count": used - 1})
            .eq("id", voucher_id)
            .eq("used_count", used)
            .execute()
        )
        if not response.data:
            raise UsageCountChanged(voucher_id)
        logger.info("Released one use of voucher %s", voucher["discount_code"])

    async def create_voucher(self, data: VoucherCreate) -> dict[str, Any]:
        """Create a voucher.

        Raises:
            BadRequestError: On duplicate code, inverted dates or a
                percentage above 100.
        """
        if self._find_by_code(data.discount_code):
            raise BadRequestError("Voucher code already exists")
        self._check_rules(data.discount_type, data.discount_value, data.start_date, data.end_date)

        row = data.model_dump(mode="json")
        row["used_count"] = 0
        response = self.client.table("vouchers").insert(row).execute()
        voucher = response.data[0]
        logger.info("Voucher %s created", voucher["discount_code"])
        return voucher

    async def list_vouchers(self, params: VoucherListParams) -> tuple[list[dict[str, Any]], int]:
        """List vouchers with filters and pagination.

        Returns:
            tuple: (vouchers on the page, total matching count).
        """
        query = self.client.table("vouchers").select("*", count="exact")
        if params.is_active is not None:
            query = query.eq("is_active", params.is_active)
        if params.discount_type:
            query = query.eq("discount_type", params.discount_type.value)
        if params.search:
            query = query.or_(ilike_any(["discount_code", "discount_name"], params.search))

        offset = (params.page - 1) * params.limit
        response = (
            query.order(params.sort_by, desc=params.sort_order == "desc")
            .range(offset, offset + params.limit - 1)
            .execute()
        )
        items = response.data or []
        total = response.count if response.count is not None else len(items)
        return items, total

    async def get_voucher(self, voucher_id: str) -> dict[str, Any]:
        """Get a voucher by id.

        Raises:
            NotFoundError: If the voucher does not exist.
        """
        response = (
            self.client.table("vouchers")
            .select("*")
            .eq("id", voucher_id)
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("Voucher not found")
        return response.data

    async def get_voucher_by_code(self, code: str) -> dict[str, Any]:
        """Get a voucher by code.

        Raises:
            NotFoundError: If no voucher has this code.
        """
        voucher = self._find_by_code(code)
        if not voucher:
            raise NotFoundError("Voucher code not found")
        return voucher

    async def update_voucher(self, voucher_id: str, data: VoucherUpdate) -> dict[str, Any]:
        """Apply a partial update to a voucher.

        Raises:
            NotFoundError: If the voucher does not exist.
            BadRequestError: If the resulting dates or percentage are invalid.
        """
        current = await self.get_voucher(voucher_id)
        changes = data.model_dump(mode="json", exclude_unset=True)
        if not changes:
            return current

        merged = {**current, **changes}
        self._check_rules(
            DiscountType(merged["discount_type"]),
            merged["discount_value"],
            _to_datetime(merged["start_date"]),
            _to_datetime(merged["end_date"]),
        )

        response = self.client.table("vouchers").update(changes).eq("id", voucher_id).execute()
        if not response.data:
            raise NotFoundError("Voucher not found")
        return response.data[0]

    async def delete_voucher(self, voucher_id: str) -> None:
        """Delete a voucher.

        Raises:
            NotFoundError: If the voucher does not exist.
        """
        response = self.client.table("vouchers").delete().eq("id", voucher_id).execute()
        if not response.data:
            raise NotFoundError("Voucher not found")
        logger.info("Voucher %s deleted", voucher_id)

    async def get_active_vouchers(self) -> list[dict[str, Any]]:
        """List vouchers usable right now: active, in window, with uses left."""
        now = datetime.now(timezone.utc).isoformat()
        response = (
            self.client.table("vouchers")
            .select("*")
            .eq("is_active", True)
            .lte("start_date", now)
            .gte("end_date", now)
            .order("created_at", desc=True)
            .execute()
        )
        return [
            voucher
            for voucher in response.data or []
            if voucher.get("usage_limit") is None or (voucher.get("used_count") or 0) < voucher["usage_limit"]
        ]

    def _find_by_code(self, code: str) -> dict[str, Any] | None:
        response = (
            self.client.table("vouchers")
            .select("*")
            .eq("discount_code", code)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    @staticmethod
    def _check_rules(
        discount_type: DiscountType,
        discount_value: float,
        start_date: datetime,
        end_date: datetime,
    ) -> None:
        if _to_datetime(start_date) >= _to_datetime(end_date):
            raise BadRequestError("End date must be after start date")
        if discount_type == DiscountType.PERCENTAGE and discount_value > 100:
            raise BadRequestError("Percentage discount cannot exceed 100%")
