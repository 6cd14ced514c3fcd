from src.core.exceptions.base import (
    AppException,
    NotFoundError,
    ValidationError,
    InvalidAmountError,
    CurrencyMismatchError,
    DuplicateError,
    InvalidTransitionError,
    AlreadyFinalizedError,
    SettlementError,
    SettlementAuthError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "InvalidAmountError",
    "CurrencyMismatchError",
    "DuplicateError",
    "InvalidTransitionError",
    "AlreadyFinalizedError",
    "SettlementError",
    "SettlementAuthError",
]
