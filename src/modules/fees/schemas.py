"""Pydantic schemas for Fees module."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator, model_validator

from src.core.config import settings
from src.shared.schemas.base import BaseSchema
from src.modules.fees import ledger
from src.modules.fees.models import DiscountKind, FeeCategory, PaymentStatusClass


def _check_currency(value: str) -> str:
    code = (value or "").strip().upper()
    if code not in settings.supported_currencies:
        raise ValueError(
            f"Unsupported currency '{value}'. Allowed: {', '.join(settings.supported_currencies)}"
        )
    return code


class FeeComponents(BaseSchema):
    """Fee components shared by create, bulk assignment and promotion structures."""

    tuition_fee: Decimal = Field(Decimal("0.00"), ge=0)
    boarding_fee: Decimal = Field(Decimal("0.00"), ge=0)
    development_levy: Decimal = Field(Decimal("0.00"), ge=0)
    exam_fee: Decimal = Field(Decimal("0.00"), ge=0)
    other_fees: Decimal = Field(Decimal("0.00"), ge=0)


class FeeRecordCreate(FeeComponents):
    """Schema for assigning fees to one student for a term."""

    student_id: int
    year: int = Field(ge=2000, le=2100)
    term: int = Field(ge=1, le=3)
    currency: str = "USD"
    fee_category: FeeCategory = FeeCategory.STANDARD

    scholarship_amount: Decimal = Field(Decimal("0.00"), ge=0)
    sibling_discount: Decimal = Field(Decimal("0.00"), ge=0)
    early_payment_discount: Decimal = Field(Decimal("0.00"), ge=0)
    previous_balance: Decimal = Decimal("0.00")

    bursar_notes: str | None = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _check_currency(v)


class FeeRecordUpdate(BaseSchema):
    """Schema for updating fee components of an active record. Payments are not editable."""

    fee_category: FeeCategory | None = None
    tuition_fee: Decimal | None = Field(None, ge=0)
    boarding_fee: Decimal | None = Field(None, ge=0)
    development_levy: Decimal | None = Field(None, ge=0)
    exam_fee: Decimal | None = Field(None, ge=0)
    other_fees: Decimal | None = Field(None, ge=0)
    previous_balance: Decimal | None = None
    bursar_notes: str | None = None


class DiscountApply(BaseSchema):
    kind: DiscountKind
    amount: Decimal = Field(ge=0)
    reason: str | None = Field(None, max_length=500)


class BulkFeeAssignment(FeeComponents):
    """
    Assign the same fee components to a group of students.

    Target: the given grades (optionally narrowed to one class), or every
    active student of the school when no grade is given.
    """

    grades: list[str] = []
    class_name: str | None = None
    year: int = Field(ge=2000, le=2100)
    term: int = Field(ge=1, le=3)
    currency: str = "USD"
    fee_category: FeeCategory = FeeCategory.STANDARD

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _check_currency(v)

    @model_validator(mode="after")
    def class_requires_grade(self):
        if self.class_name and not self.grades:
            raise ValueError("class_name requires at least one grade")
        return self


class BulkFeeAssignmentResult(BaseSchema):
    created: int
    updated: int
    skipped_inactive: int
    record_ids: list[int]


class FeeRecordResponse(BaseSchema):
    id: int
    school_id: int
    student_id: int
    year: int
    term: int
    currency: str
    fee_category: str

    tuition_fee: Decimal
    boarding_fee: Decimal
    development_levy: Decimal
    exam_fee: Decimal
    other_fees: Decimal

    scholarship_amount: Decimal
    sibling_discount: Decimal
    early_payment_discount: Decimal

    previous_balance: Decimal
    amount_paid: Decimal

    gross_amount: Decimal
    net_amount: Decimal
    outstanding_balance: Decimal
    payment_status: PaymentStatusClass

    bursar_notes: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    payment_percentage: Decimal | None = None

    @classmethod
    def from_record(cls, record) -> "FeeRecordResponse":
        response = cls.model_validate(record)
        response.payment_percentage = ledger.payment_percentage(record)
        return response


class FeeRecordFilters(BaseSchema):
    student_id: int | None = None
    year: int | None = None
    term: int | None = None
    currency: str | None = None
    payment_status: PaymentStatusClass | None = None
    fee_category: FeeCategory | None = None
    include_inactive: bool = False
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=100)


class CollectionSummary(BaseSchema):
    """Collection totals over the active fee records of one school and currency."""

    currency: str
    record_count: int
    total_gross: Decimal
    total_scholarships: Decimal
    total_collected: Decimal
    total_outstanding: Decimal
    collection_rate: Decimal
    arrears_count: int
    partially_paid_count: int
    paid_count: int
