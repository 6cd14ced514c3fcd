"""FeeRecord model: one student's fee obligation for one term."""

from decimal import Decimal
from enum import StrEnum

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel, BigIntPK, SchoolOwnedMixin

# At most one active record per (school, student, year, term, currency)
ACTIVE_PERIOD_INDEX = "uq_fee_records_active_period"


class Currency(StrEnum):
    """Currencies a school can bill in."""

    USD = "USD"
    ZWG = "ZWG"


class FeeCategory(StrEnum):
    DAY_SCHOLAR = "DAY_SCHOLAR"
    BOARDING = "BOARDING"
    STANDARD = "STANDARD"


class PaymentStatusClass(StrEnum):
    """Balance classification of a fee record."""

    ARREARS = "ARREARS"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class DiscountKind(StrEnum):
    """Discount fields that can be set on a fee record."""

    SCHOLARSHIP = "SCHOLARSHIP"
    SIBLING = "SIBLING"
    EARLY_PAYMENT = "EARLY_PAYMENT"


class FeeRecord(SchoolOwnedMixin, BaseModel):
    """
    Fee record for (student, year, term, currency).

    gross = sum of components
    net = gross - discounts
    outstanding = net + previous_balance - amount_paid

    Derived fields are written only by the ledger's recompute().
    Records are never deleted, only deactivated.
    """

    __tablename__ = "fee_records"

    student_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("students.id"), nullable=False, index=True
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)
    term: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default=Currency.USD.value)
    fee_category: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FeeCategory.STANDARD.value
    )

    # Components
    tuition_fee: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    boarding_fee: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    development_levy: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    exam_fee: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    other_fees: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    # Discounts
    scholarship_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    sibling_discount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    early_payment_discount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    # Balance inputs (previous_balance may be negative: credit carried forward)
    previous_balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    # Derived
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    net_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    outstanding_balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatusClass.ARREARS.value, index=True
    )

    bursar_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index(
            ACTIVE_PERIOD_INDEX,
            "school_id",
            "student_id",
            "year",
            "term",
            "currency",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )
