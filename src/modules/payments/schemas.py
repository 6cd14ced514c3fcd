"""Pydantic schemas for Payments module."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, computed_field, field_validator

from src.shared.schemas.base import BaseSchema
from src.modules.payments.models import (
    DIGITAL_METHODS,
    PaymentChannel,
    PaymentMethod,
    PaymentStatus,
)


# --- Payment recording ---


class PaymentRequestBase(BaseSchema):
    """
    Target fee record and amount. Range and currency checks happen in the
    service so that they surface as domain errors before any state is created.
    """

    student_ref: str = Field(..., min_length=1, max_length=50)
    year: int
    term: int
    currency: str
    amount: Decimal
    notes: str | None = Field(None, max_length=500)


class SchoolPaymentCreate(PaymentRequestBase):
    """Payment received by school staff (cash, cheque, card, ...)."""

    payment_method: PaymentMethod = PaymentMethod.CASH
    transaction_reference: str | None = Field(None, max_length=100)
    received_by: str | None = Field(None, max_length=150)
    payment_date: date | None = None

    @field_validator("payment_method")
    @classmethod
    def school_channel_only(cls, v: PaymentMethod) -> PaymentMethod:
        if v.channel != PaymentChannel.SCHOOL:
            raise ValueError(f"{v.display_name} is not a school payment method")
        return v


class BankCounterPaymentCreate(PaymentRequestBase):
    """Payment taken by a bank teller at a branch counter."""

    parent_account_number: str = Field(..., min_length=1, max_length=50)
    bank_transaction_id: str = Field(..., min_length=1, max_length=100)
    bank_branch: str | None = Field(None, max_length=100)
    teller_name: str = Field(..., min_length=1, max_length=100)


class DigitalPaymentCreate(PaymentRequestBase):
    """Payment initiated by the parent through mobile/internet banking, USSD or standing order."""

    payment_method: PaymentMethod = PaymentMethod.MOBILE_BANKING
    parent_account_number: str = Field(..., min_length=1, max_length=50)
    bank_transaction_id: str = Field(..., min_length=1, max_length=100)

    @field_validator("payment_method")
    @classmethod
    def digital_only(cls, v: PaymentMethod) -> PaymentMethod:
        if v not in DIGITAL_METHODS:
            raise ValueError(f"{v.display_name} is not a digital banking method")
        return v


class SettleRequest(BaseSchema):
    """Re-drive a PENDING bank payment. Defaults to the account stored on the payment."""

    parent_account_number: str | None = Field(None, max_length=50)


class PaymentReverse(BaseSchema):
    reason: str = Field(..., min_length=1, max_length=500)


# --- Responses ---


class PaymentResponse(BaseSchema):
    """Schema for payment response."""

    id: int
    payment_reference: str
    school_id: int
    student_id: int
    fee_record_id: int | None
    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    channel: PaymentChannel
    payment_date: date
    status: PaymentStatus
    transaction_reference: str | None
    received_by: str | None
    notes: str | None
    bank_branch: str | None
    teller_name: str | None
    parent_account_number: str | None
    bank_transaction_id: str | None
    settlement_reference: str | None
    settlement_value_date: date | None
    completed_at: datetime | None
    reversal_reason: str | None
    reversed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def method_display_name(self) -> str:
        return self.payment_method.display_name


class PaymentFilters(BaseSchema):
    """Filters for listing payments."""

    student_id: int | None = None
    fee_record_id: int | None = None
    status: PaymentStatus | None = None
    channel: PaymentChannel | None = None
    payment_method: PaymentMethod | None = None
    date_from: date | None = None
    date_to: date | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=100)


# --- Reconciliation ---


class CurrencyTotal(BaseSchema):
    currency: str
    count: int
    total: Decimal


class SettlementReport(BaseSchema):
    """Bank-channel activity of one school for one day."""

    school_code: str
    day: date
    settled: list[CurrencyTotal]
    pending_count: int
    failed_count: int
    reversed_count: int
