from decimal import Decimal

from src.shared.utils.money import money_or_zero, round_money, to_wire_amount


class TestRoundMoney:
    """Tests for round_money function."""

    def test_round_half_up(self):
        assert round_money(10.125) == Decimal("10.13")
        assert round_money(10.124) == Decimal("10.12")
        assert round_money("10.115") == Decimal("10.12")

    def test_credit_balances_round_symmetrically(self):
        assert round_money("-10.125") == Decimal("-10.13")
        assert round_money("-10.124") == Decimal("-10.12")

    def test_from_decimal(self):
        assert round_money(Decimal("99.999")) == Decimal("100.00")

    def test_from_int(self):
        assert round_money(100) == Decimal("100.00")


class TestMoneyOrZero:
    def test_none_is_zero(self):
        assert money_or_zero(None) == Decimal("0.00")

    def test_value_is_rounded(self):
        assert money_or_zero("12.345") == Decimal("12.35")


class TestWireAmount:
    def test_two_decimals(self):
        assert to_wire_amount(Decimal("150")) == "150.00"
        assert to_wire_amount("1250.5") == "1250.50"

    def test_no_exponent(self):
        assert to_wire_amount(Decimal("1E+3")) == "1000.00"
