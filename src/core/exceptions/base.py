from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id={identifier} not found"
        super().__init__(message=message, status_code=404)


class ValidationError(AppException):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=422, details=details)


class InvalidAmountError(ValidationError):
    """Monetary amount outside the allowed range."""

    def __init__(self, amount: Any, message: str | None = None):
        super().__init__(message or f"Invalid amount: {amount}", field="amount")
        self.details["amount"] = str(amount)


class CurrencyMismatchError(AppException):
    """Payment currency differs from the fee record currency."""

    def __init__(self, payment_currency: str, record_currency: str):
        message = (
            f"Currency mismatch: payment currency '{payment_currency}' does not match "
            f"fee record currency '{record_currency}'"
        )
        super().__init__(
            message=message,
            status_code=422,
            details={
                "field": "currency",
                "payment_currency": payment_currency,
                "record_currency": record_currency,
            },
        )


class DuplicateError(AppException):
    """Duplicate resource."""

    def __init__(self, resource: str, field: str, value: Any):
        message = f"{resource} with {field}={value} already exists"
        super().__init__(message=message, status_code=409, details={"field": field, "value": value})


class InvalidTransitionError(AppException):
    """Illegal status transition."""

    def __init__(self, resource: str, current: str, target: str):
        message = f"{resource} cannot move from {current} to {target}"
        super().__init__(
            message=message,
            status_code=409,
            details={"current": current, "target": target},
        )


class AlreadyFinalizedError(AppException):
    """Settlement attempted on a payment that is already in a terminal state."""

    def __init__(self, payment_reference: str, status: str):
        message = f"Payment {payment_reference} is already finalized ({status})"
        super().__init__(message=message, status_code=409, details={"status": status})


class SettlementError(AppException):
    """External settlement system rejected or failed the transfer."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message=message, status_code=502, details={"code": code} if code else {})


class SettlementAuthError(SettlementError):
    """Could not obtain a token from the settlement system."""

    def __init__(self, message: str = "Settlement authentication failed"):
        super().__init__(message=message, code="AUTH_FAILURE")
