from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Base Pydantic schema. Reads ORM rows directly."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class ErrorDetail(BaseSchema):
    field: str | None = None
    message: str


class ApiResponse(BaseSchema, Generic[T]):
    """Envelope of every successful response."""

    success: bool = True
    data: T
    message: str | None = None


class ErrorResponse(BaseSchema):
    """
    Envelope of every error response.

    error_type is the exception class name (CurrencyMismatchError,
    SettlementError, ...). code carries the switch or settlement error code
    when there is one, so clients can tell a timeout from a rejection.
    """

    success: bool = False
    data: None = None
    message: str
    error_type: str | None = None
    code: str | None = None
    errors: list[ErrorDetail] = []
    details: dict[str, Any] = {}


class PaginatedResponse(BaseSchema, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def create(cls, items: list[T], total: int, page: int, limit: int) -> "PaginatedResponse[T]":
        pages = -(-total // limit) if limit > 0 else 0
        return cls(items=items, total=total, page=page, limit=limit, pages=pages)
