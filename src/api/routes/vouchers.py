"""Voucher API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from src.api.deps import Vouchers
from src.schemas.common import MessageResponse
from src.schemas.voucher import (
    ValidateVoucherRequest,
    VoucherCreate,
    VoucherListParams,
    VoucherListResponse,
    VoucherResponse,
    VoucherUpdate,
    VoucherValidationResult,
)

router = APIRouter(prefix="/vouchers", tags=["vouchers"])


@router.post(
    "",
    response_model=VoucherResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a voucher",
)
async def create_voucher(data: VoucherCreate, service: Vouchers) -> VoucherResponse:
    """Create a voucher.

    Raises:
        BadRequestError: 400 on duplicate code, inverted dates or a
            percentage above 100.
    """
    voucher = await service.create_voucher(data)
    return VoucherResponse(**voucher)


@router.get(
    "",
    response_model=VoucherListResponse,
    summary="List vouchers",
)
async def list_vouchers(
    service: Vouchers,
    params: Annotated[VoucherListParams, Query()],
) -> VoucherListResponse:
    """List vouchers with filters and pagination."""
    items, total = await service.list_vouchers(params)
    return VoucherListResponse(
        items=[VoucherResponse(**voucher) for voucher in items],
        total=total,
        page=params.page,
        limit=params.limit,
    )


@router.get(
    "/active",
    response_model=list[VoucherResponse],
    summary="List usable vouchers",
    description="Active vouchers inside their validity window with uses left.",
)
async def get_active_vouchers(service: Vouchers) -> list[VoucherResponse]:
    vouchers = await service.get_active_vouchers()
    return [VoucherResponse(**voucher) for voucher in vouchers]


@router.post(
    "/validate",
    response_model=VoucherValidationResult,
    summary="Validate a voucher",
    description="Checks a voucher against an order value without consuming it.",
)
async def validate_voucher(data: ValidateVoucherRequest, service: Vouchers) -> VoucherValidationResult:
    """Validate a voucher. Invalid vouchers are answered with 200 and is_valid false."""
    return await service.validate_voucher(data.voucher_code, data.order_value)


@router.get(
    "/code/{code}",
    response_model=VoucherResponse,
    summary="Get voucher by code",
)
async def get_voucher_by_code(code: str, service: Vouchers) -> VoucherResponse:
    voucher = await service.get_voucher_by_code(code)
    return VoucherResponse(**voucher)


@router.get(
    "/{voucher_id}",
    response_model=VoucherResponse,
    summary="Get voucher by ID",
)
async def get_voucher(voucher_id: UUID, service: Vouchers) -> VoucherResponse:
    voucher = await service.get_voucher(str(voucher_id))
    return VoucherResponse(**voucher)


@router.patch(
    "/{voucher_id}",
    response_model=VoucherResponse,
    summary="Update a voucher",
)
async def update_voucher(voucher_id: UUID, data: VoucherUpdate, service: Vouchers) -> VoucherResponse:
    """Apply a partial update. Date order and percentage rules are rechecked."""
    voucher = await service.update_voucher(str(voucher_id), data)
    return VoucherResponse(**voucher)


@router.delete(
    "/{voucher_id}",
    response_model=MessageResponse,
    summary="Delete a voucher",
)
async def delete_voucher(voucher_id: UUID, service: Vouchers) -> MessageResponse:
    await service.delete_voucher(str(voucher_id))
    return MessageResponse(message="Voucher deleted successfully")
