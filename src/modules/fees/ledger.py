"""
Fee ledger arithmetic.

Pure functions over anything exposing the FeeRecord attributes. No I/O, no
session access; callers are responsible for locking the row they pass in.
"""

from decimal import Decimal
from typing import Protocol

from src.core.exceptions import InvalidAmountError, ValidationError
from src.modules.fees.models import DiscountKind, PaymentStatusClass
from src.shared.utils.money import money_or_zero, round_money

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

COMPONENT_FIELDS = (
    "tuition_fee",
    "boarding_fee",
    "development_levy",
    "exam_fee",
    "other_fees",
)

DISCOUNT_FIELDS: dict[DiscountKind, str] = {
    DiscountKind.SCHOLARSHIP: "scholarship_amount",
    DiscountKind.SIBLING: "sibling_discount",
    DiscountKind.EARLY_PAYMENT: "early_payment_discount",
}


class LedgerRecord(Protocol):
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
    payment_status: str


def classify(outstanding: Decimal, amount_paid: Decimal) -> PaymentStatusClass:
    if outstanding <= 0:
        return PaymentStatusClass.PAID
    if amount_paid > 0:
        return PaymentStatusClass.PARTIALLY_PAID
    return PaymentStatusClass.ARREARS


def recompute(record: LedgerRecord) -> LedgerRecord:
    """
    Recalculate gross, net, outstanding and payment status from the inputs.

    Idempotent. Net and outstanding are not clamped: a discount larger than the
    gross amount yields a negative net, and overpayment a negative outstanding.
    """
    # Normalise inputs so unsaved records (None before flush) behave as zero
    for field in COMPONENT_FIELDS + tuple(DISCOUNT_FIELDS.values()):
        setattr(record, field, money_or_zero(getattr(record, field)))
    record.previous_balance = money_or_zero(record.previous_balance)
    record.amount_paid = money_or_zero(record.amount_paid)

    gross = sum((getattr(record, f) for f in COMPONENT_FIELDS), ZERO)
    discounts = sum((getattr(record, f) for f in DISCOUNT_FIELDS.values()), ZERO)
    net = gross - discounts
    outstanding = net + record.previous_balance - record.amount_paid

    record.gross_amount = round_money(gross)
    record.net_amount = round_money(net)
    record.outstanding_balance = round_money(outstanding)
    record.payment_status = classify(record.outstanding_balance, record.amount_paid).value
    return record


def apply_payment(record: LedgerRecord, amount: Decimal) -> LedgerRecord:
    """Add a confirmed payment to amount_paid."""
    if amount is None or Decimal(str(amount)) <= 0:
        raise InvalidAmountError(amount, "Payment amount must be greater than zero")
    record.amount_paid = money_or_zero(record.amount_paid) + round_money(amount)
    return recompute(record)


def apply_discount(record: LedgerRecord, kind: DiscountKind | str, amount: Decimal) -> LedgerRecord:
    """Set (not add to) the named discount field."""
    try:
        field = DISCOUNT_FIELDS[DiscountKind(kind)]
    except ValueError:
        raise ValidationError(f"Unknown discount kind: {kind}", field="kind")
    if amount is None or Decimal(str(amount)) < 0:
        raise InvalidAmountError(amount, "Discount amount cannot be negative")
    setattr(record, field, round_money(amount))
    return recompute(record)


def payment_percentage(record: LedgerRecord) -> Decimal:
    """Share of the net amount already paid, 0-100+ (100 when nothing is due)."""
    net = money_or_zero(record.net_amount)
    if net == 0:
        return HUNDRED.quantize(ZERO)
    return round_money(money_or_zero(record.amount_paid) * HUNDRED / net)

