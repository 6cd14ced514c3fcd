"""API endpoints for Payments module."""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.core.schools.scope import CurrentScope
from src.integrations.settlement.client import SettlementClient, get_settlement_client
from src.modules.payments.models import PaymentChannel, PaymentMethod, PaymentStatus
from src.modules.payments.schemas import (
    BankCounterPaymentCreate,
    DigitalPaymentCreate,
    PaymentFilters,
    PaymentResponse,
    PaymentReverse,
    SchoolPaymentCreate,
    SettleRequest,
    SettlementReport,
)
from src.modules.payments.service import PaymentService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/payments", tags=["Payments"])


# --- Recording ---


@router.post(
    "/school",
    response_model=ApiResponse[PaymentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_school_payment(
    data: SchoolPaymentCreate,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    """Payment received at the school. Applied to the fee record immediately."""
    payment = await PaymentService(db).record_school_payment(scope, data)
    return ApiResponse(
        data=PaymentResponse.model_validate(payment),
        message="Payment recorded successfully",
    )


@router.post(
    "/bank-counter",
    response_model=ApiResponse[PaymentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_bank_counter_payment(
    data: BankCounterPaymentCreate,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
    client: SettlementClient = Depends(get_settlement_client),
):
    """Teller payment. The fee record changes only once the transfer is confirmed."""
    payment = await PaymentService(db, client).record_bank_counter_payment(scope, data)
    return ApiResponse(
        data=PaymentResponse.model_validate(payment),
        message="Bank payment settled successfully",
    )


@router.post(
    "/digital",
    response_model=ApiResponse[PaymentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_digital_payment(
    data: DigitalPaymentCreate,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
    client: SettlementClient = Depends(get_settlement_client),
):
    """Mobile/internet banking, USSD or standing order payment."""
    payment = await PaymentService(db, client).record_digital_payment(scope, data)
    return ApiResponse(
        data=PaymentResponse.model_validate(payment),
        message="Digital payment settled successfully",
    )


@router.post(
    "/{payment_id}/settle",
    response_model=ApiResponse[PaymentResponse],
)
async def settle_payment(
    payment_id: int,
    scope: CurrentScope,
    data: SettleRequest | None = None,
    db: AsyncSession = Depends(get_db),
    client: SettlementClient = Depends(get_settlement_client),
):
    """Re-drive a PENDING bank payment through the settlement switch."""
    payment = await PaymentService(db, client).settle_pending_payment(
        scope, payment_id, data.parent_account_number if data else None
    )
    return ApiResponse(
        data=PaymentResponse.model_validate(payment),
        message="Payment settled successfully",
    )


@router.post(
    "/{payment_id}/reverse",
    response_model=ApiResponse[PaymentResponse],
)
async def reverse_payment(
    payment_id: int,
    data: PaymentReverse,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    """Mark a completed payment as reversed. The fee record balance is not adjusted."""
    payment = await PaymentService(db).reverse_payment(scope, payment_id, data.reason)
    return ApiResponse(
        data=PaymentResponse.model_validate(payment),
        message="Payment reversed. Fee record balance was not adjusted",
    )


# --- Lookups ---


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[PaymentResponse]],
)
async def list_payments(
    scope: CurrentScope,
    student_id: int | None = Query(None),
    fee_record_id: int | None = Query(None),
    status: PaymentStatus | None = Query(None),
    channel: PaymentChannel | None = Query(None),
    payment_method: PaymentMethod | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List payments with optional filters."""
    filters = PaymentFilters(
        student_id=student_id,
        fee_record_id=fee_record_id,
        status=status,
        channel=channel,
        payment_method=payment_method,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    payments, total = await PaymentService(db).list_payments(scope, filters)
    return ApiResponse(
        data=PaginatedResponse.create(
            items=[PaymentResponse.model_validate(p) for p in payments],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.get(
    "/reports/settlement",
    response_model=ApiResponse[SettlementReport],
)
async def get_settlement_report(
    scope: CurrentScope,
    day: date | None = Query(None, description="Defaults to today"),
    db: AsyncSession = Depends(get_db),
):
    """Settled bank-channel totals for one day (end-of-day reconciliation)."""
    report = await PaymentService(db).get_settlement_report(scope, day or date.today())
    return ApiResponse(data=report)


@router.get(
    "/{payment_id}",
    response_model=ApiResponse[PaymentResponse],
)
async def get_payment(
    payment_id: int,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    """Get payment by ID."""
    payment = await PaymentService(db).get_payment(scope, payment_id)
    return ApiResponse(data=PaymentResponse.model_validate(payment))
