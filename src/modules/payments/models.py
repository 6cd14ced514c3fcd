"""Payment model and payment method catalogue."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel, BigIntPK, SchoolOwnedMixin


class PaymentChannel(StrEnum):
    """Who records the payment: school staff, or the bank via settlement."""

    SCHOOL = "SCHOOL"
    BANK = "BANK"


class PaymentMethod(StrEnum):
    """
    Payment method with its channel and display metadata.

    Bank-channel methods need a bank transaction id and are confirmed by the
    settlement gateway before they affect the fee ledger.
    """

    channel: PaymentChannel
    display_name: str
    requires_bank_transaction: bool

    def __new__(
        cls,
        value: str,
        channel: PaymentChannel,
        display_name: str,
        requires_bank_transaction: bool,
    ):
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.channel = channel
        obj.display_name = display_name
        obj.requires_bank_transaction = requires_bank_transaction
        return obj

    # Recorded at the school
    CASH = ("CASH", PaymentChannel.SCHOOL, "Cash Payment", False)
    MOBILE_MONEY = ("MOBILE_MONEY", PaymentChannel.SCHOOL, "Mobile Money", False)
    BANK_TRANSFER = ("BANK_TRANSFER", PaymentChannel.SCHOOL, "Bank Transfer", False)
    CHEQUE = ("CHEQUE", PaymentChannel.SCHOOL, "Cheque", False)
    CARD = ("CARD", PaymentChannel.SCHOOL, "Card Payment", False)

    # Teller counter
    BANK_COUNTER = ("BANK_COUNTER", PaymentChannel.BANK, "Bank Counter Payment", True)

    # Digital banking
    MOBILE_BANKING = ("MOBILE_BANKING", PaymentChannel.BANK, "Mobile Banking", True)
    INTERNET_BANKING = ("INTERNET_BANKING", PaymentChannel.BANK, "Internet Banking", True)
    USSD = ("USSD", PaymentChannel.BANK, "USSD Payment", True)
    STANDING_ORDER = ("STANDING_ORDER", PaymentChannel.BANK, "Standing Order", True)


DIGITAL_METHODS = frozenset(
    {
        PaymentMethod.MOBILE_BANKING,
        PaymentMethod.INTERNET_BANKING,
        PaymentMethod.USSD,
        PaymentMethod.STANDING_ORDER,
    }
)


class PaymentStatus(StrEnum):
    """Payment status options."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REVERSED = "REVERSED"


# Legal transitions. FAILED and REVERSED are terminal.
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REVERSED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REVERSED: frozenset(),
}


class Payment(SchoolOwnedMixin, BaseModel):
    """
    One payment attempt against a fee record.

    amount_paid on the linked fee record moves only when the payment reaches
    COMPLETED. Notes stay editable after a terminal status; nothing else does.
    """

    __tablename__ = "payments"

    payment_reference: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True
    )  # PAY-SCHOOL-YYYY-NNNNNN

    student_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("students.id"), nullable=False, index=True
    )
    fee_record_id: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("fee_records.id"), nullable=True, index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    channel: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )

    # Receipt number or other school-side reference
    transaction_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    received_by: Mapped[str | None] = mapped_column(String(150), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Bank channel
    bank_branch: Mapped[str | None] = mapped_column(String(100), nullable=True)
    teller_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    parent_account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bank_transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    settlement_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    settlement_value_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reversal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod(self.payment_method)

    @property
    def is_terminal(self) -> bool:
        """No further settlement outcome can be applied."""
        return self.status != PaymentStatus.PENDING.value

    def can_transition_to(self, target: PaymentStatus) -> bool:
        return target in PAYMENT_TRANSITIONS[PaymentStatus(self.status)]

    def add_note(self, text: str) -> None:
        self.notes = f"{self.notes}\n{text}" if self.notes else text
