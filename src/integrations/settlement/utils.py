from __future__ import annotations

from decimal import Decimal

from src.core.exceptions import ValidationError


def build_narration(
    currency: str,
    branch: str,
    account_number: str,
    student_ref: str,
    correlation_id: str | None,
) -> str:
    """
    Narration in the switch format CURRENCY|BRANCH|ACCOUNT_STUDENTREF_CORRELATIONID.

    Example: USD|120|52289804360572_STU001_PAY-STMARYS-2026-000001
    """
    return "%s|%s|%s_%s_%s" % (
        currency,
        branch,
        account_number,
        student_ref,
        correlation_id or "PENDING",
    )


def validate_instruction(
    source_account: str | None,
    destination_account: str | None,
    amount: Decimal | None,
    source_currency: str | None,
    destination_currency: str | None,
) -> None:
    """Reject an instruction the switch would refuse, before sending it."""
    if not source_account or not source_account.strip():
        raise ValidationError("Source account (TXNACC) is required", field="parent_account_number")
    if not destination_account or not destination_account.strip():
        raise ValidationError("Destination account (OFFSETACC) is required", field="collection_account")
    if amount is None or amount <= 0:
        raise ValidationError("Transaction amount must be greater than zero", field="amount")
    if not source_currency or not source_currency.strip():
        raise ValidationError("Transaction currency (TXNCCY) is required", field="currency")
    if not destination_currency or not destination_currency.strip():
        raise ValidationError("Offset currency (OFFSETCCY) is required", field="currency")
