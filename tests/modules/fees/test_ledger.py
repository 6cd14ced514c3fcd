"""Tests for fee ledger arithmetic (no database)."""

from decimal import Decimal

import pytest

from src.core.exceptions import InvalidAmountError, ValidationError
from src.modules.fees import ledger
from src.modules.fees.models import DiscountKind, FeeRecord, PaymentStatusClass


def _boarder_record() -> FeeRecord:
    record = FeeRecord(
        tuition_fee=Decimal("500"),
        boarding_fee=Decimal("300"),
        development_levy=Decimal("50"),
        exam_fee=Decimal("25"),
        other_fees=Decimal("0"),
        scholarship_amount=Decimal("100"),
        sibling_discount=Decimal("50"),
        early_payment_discount=Decimal("0"),
        previous_balance=Decimal("0"),
        amount_paid=Decimal("0"),
    )
    return ledger.recompute(record)


def _assert_consistent(record: FeeRecord) -> None:
    components = sum(getattr(record, f) for f in ledger.COMPONENT_FIELDS)
    discounts = sum(getattr(record, f) for f in ledger.DISCOUNT_FIELDS.values())
    assert record.gross_amount == components
    assert record.net_amount == record.gross_amount - discounts
    assert record.outstanding_balance == (
        record.net_amount + record.previous_balance - record.amount_paid
    )


class TestRecompute:
    def test_boarder_with_discounts(self):
        record = _boarder_record()

        assert record.gross_amount == Decimal("875.00")
        assert record.net_amount == Decimal("725.00")
        assert record.outstanding_balance == Decimal("725.00")
        assert record.payment_status == PaymentStatusClass.ARREARS.value
        _assert_consistent(record)

    def test_idempotent(self):
        record = _boarder_record()
        first = (record.gross_amount, record.net_amount, record.outstanding_balance, record.payment_status)

        ledger.recompute(record)

        assert (
            record.gross_amount,
            record.net_amount,
            record.outstanding_balance,
            record.payment_status,
        ) == first

    def test_unset_fields_count_as_zero(self):
        record = ledger.recompute(FeeRecord(tuition_fee=Decimal("100")))

        assert record.gross_amount == Decimal("100.00")
        assert record.boarding_fee == Decimal("0.00")
        assert record.outstanding_balance == Decimal("100.00")

    def test_previous_balance_is_carried(self):
        record = ledger.recompute(
            FeeRecord(tuition_fee=Decimal("200"), previous_balance=Decimal("75.50"))
        )
        assert record.outstanding_balance == Decimal("275.50")

    def test_credit_balance_reduces_outstanding(self):
        record = ledger.recompute(
            FeeRecord(tuition_fee=Decimal("200"), previous_balance=Decimal("-50"))
        )
        assert record.outstanding_balance == Decimal("150.00")

    def test_discount_above_gross_is_not_clamped(self):
        record = ledger.recompute(
            FeeRecord(tuition_fee=Decimal("100"), scholarship_amount=Decimal("150"))
        )
        assert record.net_amount == Decimal("-50.00")
        assert record.payment_status == PaymentStatusClass.PAID.value


class TestClassify:
    @pytest.mark.parametrize(
        "outstanding, paid, expected",
        [
            (Decimal("0"), Decimal("725"), PaymentStatusClass.PAID),
            (Decimal("-10"), Decimal("800"), PaymentStatusClass.PAID),
            (Decimal("100"), Decimal("625"), PaymentStatusClass.PARTIALLY_PAID),
            (Decimal("725"), Decimal("0"), PaymentStatusClass.ARREARS),
        ],
    )
    def test_classify(self, outstanding, paid, expected):
        assert ledger.classify(outstanding, paid) == expected


class TestApplyPayment:
    def test_full_payment(self):
        record = ledger.apply_payment(_boarder_record(), Decimal("725"))

        assert record.amount_paid == Decimal("725.00")
        assert record.outstanding_balance == Decimal("0.00")
        assert record.payment_status == PaymentStatusClass.PAID.value
        _assert_consistent(record)

    def test_partial_payment(self):
        record = ledger.apply_payment(_boarder_record(), Decimal("225"))

        assert record.outstanding_balance == Decimal("500.00")
        assert record.payment_status == PaymentStatusClass.PARTIALLY_PAID.value

    def test_payments_accumulate(self):
        record = _boarder_record()
        ledger.apply_payment(record, Decimal("100"))
        ledger.apply_payment(record, Decimal("200"))

        assert record.amount_paid == Decimal("300.00")
        _assert_consistent(record)

    def test_overpayment_leaves_credit(self):
        record = ledger.apply_payment(_boarder_record(), Decimal("800"))
        assert record.outstanding_balance == Decimal("-75.00")
        assert record.payment_status == PaymentStatusClass.PAID.value

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), None])
    def test_non_positive_amount_rejected(self, amount):
        record = _boarder_record()
        with pytest.raises(InvalidAmountError):
            ledger.apply_payment(record, amount)
        assert record.amount_paid == Decimal("0.00")


class TestApplyDiscount:
    def test_sets_named_field(self):
        record = ledger.apply_discount(_boarder_record(), DiscountKind.EARLY_PAYMENT, Decimal("25"))

        assert record.early_payment_discount == Decimal("25.00")
        assert record.net_amount == Decimal("700.00")
        _assert_consistent(record)

    def test_replaces_rather_than_adds(self):
        record = ledger.apply_discount(_boarder_record(), "SCHOLARSHIP", Decimal("200"))

        assert record.scholarship_amount == Decimal("200.00")
        assert record.net_amount == Decimal("625.00")

    def test_negative_rejected(self):
        with pytest.raises(InvalidAmountError):
            ledger.apply_discount(_boarder_record(), DiscountKind.SIBLING, Decimal("-1"))

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            ledger.apply_discount(_boarder_record(), "BURSARY", Decimal("10"))


class TestPaymentPercentage:
    def test_partial(self):
        record = ledger.apply_payment(_boarder_record(), Decimal("362.50"))
        assert ledger.payment_percentage(record) == Decimal("50.00")

    def test_nothing_due_is_fully_paid(self):
        record = ledger.recompute(FeeRecord())
        assert ledger.payment_percentage(record) == Decimal("100.00")
