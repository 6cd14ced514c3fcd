from decimal import ROUND_HALF_UP, Decimal
from typing import Union

# Type alias for money values
Money = Decimal

MoneyInput = Union[Decimal, float, int, str]

CENT = Decimal("0.01")


def round_money(value: MoneyInput) -> Decimal:
    """
    Round monetary value to 2 decimal places using ROUND_HALF_UP.

    Negative values (credit balances) round away from zero as well, so a
    credit and the matching debit always round to the same magnitude.

    Examples:
        >>> round_money(10.125)
        Decimal('10.13')
        >>> round_money("-10.125")
        Decimal('-10.13')
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_or_zero(value: MoneyInput | None) -> Decimal:
    """Rounded amount, with None (unset column) read as 0.00."""
    if value is None:
        return Decimal("0.00")
    return round_money(value)


def to_wire_amount(value: MoneyInput) -> str:
    """Plain two-decimal string for external systems: no exponent, no grouping."""
    return f"{round_money(value):.2f}"
