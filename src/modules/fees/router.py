"""API endpoints for Fees module."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.core.schools.scope import CurrentScope
from src.modules.fees.models import FeeCategory, PaymentStatusClass
from src.modules.fees.schemas import (
    BulkFeeAssignment,
    BulkFeeAssignmentResult,
    CollectionSummary,
    DiscountApply,
    FeeRecordCreate,
    FeeRecordFilters,
    FeeRecordResponse,
    FeeRecordUpdate,
)
from src.modules.fees.service import FeeRecordService
from src.shared.schemas.base import ApiResponse, BaseSchema, PaginatedResponse

router = APIRouter(prefix="/fee-records", tags=["Fee Records"])


class DeactivateRequest(BaseSchema):
    reason: str | None = None


@router.post(
    "",
    response_model=ApiResponse[FeeRecordResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_fee_record(
    data: FeeRecordCreate,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    """Assign fees to a student for one term."""
    record = await FeeRecordService(db).create_fee_record(scope, data)
    return ApiResponse(
        data=FeeRecordResponse.from_record(record),
        message="Fee record created successfully",
    )


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[FeeRecordResponse]],
)
async def list_fee_records(
    scope: CurrentScope,
    student_id: int | None = Query(None),
    year: int | None = Query(None),
    term: int | None = Query(None, ge=1, le=3),
    currency: str | None = Query(None),
    payment_status: PaymentStatusClass | None = Query(None),
    fee_category: FeeCategory | None = Query(None),
    include_inactive: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    filters = FeeRecordFilters(
        student_id=student_id,
        year=year,
        term=term,
        currency=currency,
        payment_status=payment_status,
        fee_category=fee_category,
        include_inactive=include_inactive,
        page=page,
        limit=limit,
    )
    records, total = await FeeRecordService(db).list_fee_records(scope, filters)
    return ApiResponse(
        data=PaginatedResponse.create(
            items=[FeeRecordResponse.from_record(r) for r in records],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.get(
    "/summary",
    response_model=ApiResponse[CollectionSummary],
)
async def get_collection_summary(
    scope: CurrentScope,
    currency: str = Query("USD"),
    year: int | None = Query(None),
    term: int | None = Query(None, ge=1, le=3),
    db: AsyncSession = Depends(get_db),
):
    """Collection totals and rate for the school's active records."""
    summary = await FeeRecordService(db).collection_summary(scope, currency, year, term)
    return ApiResponse(data=summary)


@router.post(
    "/bulk-assign",
    response_model=ApiResponse[BulkFeeAssignmentResult],
)
async def bulk_assign_fees(
    data: BulkFeeAssignment,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    """Assign the same fee components to grades, a class, or the whole school."""
    result = await FeeRecordService(db).bulk_assign(scope, data)
    return ApiResponse(
        data=result,
        message=f"Fees assigned: {result.created} created, {result.updated} updated",
    )


@router.get(
    "/{record_id}",
    response_model=ApiResponse[FeeRecordResponse],
)
async def get_fee_record(
    record_id: int,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    record = await FeeRecordService(db).get_fee_record(scope, record_id)
    return ApiResponse(data=FeeRecordResponse.from_record(record))


@router.put(
    "/{record_id}",
    response_model=ApiResponse[FeeRecordResponse],
)
async def update_fee_record(
    record_id: int,
    data: FeeRecordUpdate,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    record = await FeeRecordService(db).update_fee_record(scope, record_id, data)
    return ApiResponse(
        data=FeeRecordResponse.from_record(record),
        message="Fee record updated successfully",
    )


@router.post(
    "/{record_id}/discounts",
    response_model=ApiResponse[FeeRecordResponse],
)
async def apply_discount(
    record_id: int,
    data: DiscountApply,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    record = await FeeRecordService(db).apply_discount(scope, record_id, data)
    return ApiResponse(
        data=FeeRecordResponse.from_record(record),
        message="Discount applied successfully",
    )


@router.post(
    "/{record_id}/deactivate",
    response_model=ApiResponse[FeeRecordResponse],
)
async def deactivate_fee_record(
    record_id: int,
    scope: CurrentScope,
    data: DeactivateRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Soft-delete a fee record. Payment history is kept."""
    record = await FeeRecordService(db).deactivate_fee_record(
        scope, record_id, data.reason if data else None
    )
    return ApiResponse(
        data=FeeRecordResponse.from_record(record),
        message="Fee record deactivated",
    )
