"""Pydantic schemas for Promotions module."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, field_validator

from src.core.config import settings
from src.shared.schemas.base import BaseSchema
from src.modules.fees.models import FeeCategory
from src.modules.fees.schemas import FeeComponents


class FeeStructure(FeeComponents):
    """Fee components and default discounts for one grade in the new year."""

    default_scholarship: Decimal = Field(Decimal("0.00"), ge=0)
    default_sibling_discount: Decimal = Field(Decimal("0.00"), ge=0)
    fee_category: FeeCategory = FeeCategory.STANDARD


def _currency(v: str) -> str:
    code = (v or "").strip().upper()
    if code not in settings.supported_currencies:
        raise ValueError(f"Unsupported currency '{v}'")
    return code


class PromotionRequest(BaseSchema):
    """
    Parameters of a year-end promotion run.

    new_year and new_term are checked by the engine so that a missing value
    fails the whole run before any student is touched.
    """

    new_year: int | None = None
    new_term: int | None = None
    currency: str = "USD"
    carry_forward_balances: bool = True
    excluded_student_ids: list[int] = []
    fee_structures: dict[str, FeeStructure] = {}
    default_fee_structure: FeeStructure | None = None
    notes: str | None = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _currency(v)


class PromotionErrorDetail(BaseSchema):
    student_id: int
    student_ref: str
    student_name: str
    grade: str | None
    error: str


class CompletedStudent(BaseSchema):
    student_id: int
    student_ref: str
    student_name: str
    completion_status: str


class GradePromotionStats(BaseSchema):
    from_grade: str
    to_grade: str | None = None
    student_count: int = 0
    success_count: int = 0
    error_count: int = 0


class PromotionSummary(BaseSchema):
    new_year: int
    new_term: int
    total_processed: int = 0
    promoted_count: int = 0
    completed_count: int = 0
    excluded_count: int = 0
    error_count: int = 0
    promoted_students: list[str] = []
    fee_record_ids: list[int] = []
    completed_students: list[CompletedStudent] = []
    errors: list[PromotionErrorDetail] = []
    grade_breakdown: dict[str, GradePromotionStats] = {}
    message: str = ""


class DemotionRequest(BaseSchema):
    """Send a student back to a grade and bill them for a term there."""

    grade: str = Field(..., min_length=1, max_length=50)
    class_name: str | None = Field(None, max_length=50)
    reason: str = Field(..., min_length=1, max_length=500)
    year: int = Field(ge=2000, le=2100)
    term: int = Field(ge=1, le=3)
    currency: str = "USD"
    fee_structure: FeeStructure = FeeStructure()
    carry_forward_balance: bool = False

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _currency(v)


class DemotionResult(BaseSchema):
    student_id: int
    student_ref: str
    grade: str | None
    class_name: str | None
    is_active: bool
    completion_status: str | None
    notes: str | None
    fee_record_id: int
    previous_balance: Decimal
    outstanding_balance: Decimal


# --- Academic year configuration ---


class AcademicYearConfigCreate(BaseSchema):
    academic_year: int = Field(ge=2000, le=2100)
    end_of_year_date: date
    next_year: int | None = Field(None, ge=2000, le=2100)
    next_term: int = Field(1, ge=1, le=3)
    currency: str = "USD"
    carry_forward_balances: bool = True
    fee_structures: dict[str, FeeStructure] = {}
    default_fee_structure: FeeStructure | None = None
    notes: str | None = Field(None, max_length=1000)
    is_active: bool = True

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _currency(v)


class AcademicYearConfigResponse(BaseSchema):
    id: int
    school_id: int
    academic_year: int
    end_of_year_date: date
    next_year: int
    next_term: int
    currency: str
    carry_forward_balances: bool
    fee_structures: dict | None
    default_fee_structure: dict | None
    promotion_status: str
    executed_at: datetime | None
    students_promoted: int
    students_completed: int
    promotion_errors: int
    notes: str | None
    is_active: bool
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class CancelPromotionRequest(BaseSchema):
    reason: str = Field(..., min_length=1, max_length=500)
