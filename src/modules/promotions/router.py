"""API endpoints for Promotions module."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.core.schools.scope import CurrentScope
from src.modules.promotions.schemas import (
    AcademicYearConfigCreate,
    AcademicYearConfigResponse,
    CancelPromotionRequest,
    DemotionRequest,
    DemotionResult,
    PromotionRequest,
    PromotionSummary,
)
from src.modules.promotions.service import PromotionEngine
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/promotions", tags=["Promotions"])


@router.post("/run", response_model=ApiResponse[PromotionSummary])
async def run_promotion(
    data: PromotionRequest,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    """Promote the whole cohort now. Per-student failures are listed in the summary."""
    summary = await PromotionEngine(db).run_promotion(scope, data)
    return ApiResponse(data=summary, message=summary.message)


@router.post(
    "/students/{student_id}/demote",
    response_model=ApiResponse[DemotionResult],
)
async def demote_student(
    student_id: int,
    data: DemotionRequest,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    result = await PromotionEngine(db).demote_student(scope, student_id, data)
    return ApiResponse(data=result, message="Student demoted successfully")


# --- Academic year configs ---


@router.post(
    "/configs",
    response_model=ApiResponse[AcademicYearConfigResponse],
    status_code=status.HTTP_201_CREATED,
)
async def save_config(
    data: AcademicYearConfigCreate,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    """Create or update the end-of-year config of an academic year."""
    config = await PromotionEngine(db).create_or_update_config(scope, data)
    return ApiResponse(
        data=AcademicYearConfigResponse.model_validate(config),
        message="Academic year config saved",
    )


@router.get("/configs", response_model=ApiResponse[list[AcademicYearConfigResponse]])
async def list_configs(
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    configs = await PromotionEngine(db).list_configs(scope)
    return ApiResponse(data=[AcademicYearConfigResponse.model_validate(c) for c in configs])


@router.post(
    "/configs/{config_id}/trigger",
    response_model=ApiResponse[PromotionSummary],
)
async def trigger_promotion(
    config_id: int,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    """Run a scheduled config immediately."""
    summary = await PromotionEngine(db).trigger_promotion(scope, config_id)
    return ApiResponse(data=summary, message=summary.message)


@router.post(
    "/configs/{config_id}/cancel",
    response_model=ApiResponse[AcademicYearConfigResponse],
)
async def cancel_promotion(
    config_id: int,
    data: CancelPromotionRequest,
    scope: CurrentScope,
    db: AsyncSession = Depends(get_db),
):
    config = await PromotionEngine(db).cancel_promotion(scope, config_id, data.reason)
    return ApiResponse(
        data=AcademicYearConfigResponse.model_validate(config),
        message="Promotion cancelled",
    )
