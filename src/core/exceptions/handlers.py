import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.core.config import settings
from src.core.exceptions.base import AppException, SettlementError
from src.shared.schemas import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

# Constraint name -> (message, field, status)
_CONSTRAINT_MESSAGES: dict[str, tuple[str, str | None, int]] = {
    "uq_students_school_ref": ("Student reference already used in this school", "student_ref", 409),
    "ix_payments_payment_reference": ("Payment reference already issued", "payment_reference", 409),
    "uq_academic_year_config_school_year": (
        "Academic year config already exists for this school",
        "academic_year",
        409,
    ),
    "ix_schools_code": ("School code already registered", "code", 409),
    "uq_fee_records_active_period": (
        "Student already has an active fee record for this period",
        "period",
        409,
    ),
}


def _render(status_code: int, response: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render AppException subclasses with their status and details."""
    field = exc.details.get("field")
    code = exc.details.get("code")

    if isinstance(exc, SettlementError):
        logger.error(
            "%s %s settlement failure [%s]: %s",
            request.method,
            request.url.path,
            code,
            exc.message,
        )
    elif exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)

    return _render(
        exc.status_code,
        ErrorResponse(
            message=exc.message,
            error_type=type(exc).__name__,
            code=code,
            errors=[ErrorDetail(field=field, message=exc.message)],
            details={k: v for k, v in exc.details.items() if k not in ("field", "code")},
        ),
    )


def _format_validation_errors(errors: list[dict]) -> list[ErrorDetail]:
    details: list[ErrorDetail] = []
    for error in errors:
        loc = error.get("loc", ())
        # "body"/"query"/"header" prefix is noise for clients
        if loc and loc[0] in ("body", "query", "header", "path"):
            loc = loc[1:]
        field = ".".join(str(part) for part in loc) if loc else None
        details.append(ErrorDetail(field=field, message=error.get("msg", "Invalid value")))
    return details


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _render(
        422,
        ErrorResponse(
            message="Validation error",
            error_type="ValidationError",
            errors=_format_validation_errors(exc.errors()),
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = str(exc.detail) if exc.detail else "HTTP error"
    return _render(
        exc.status_code,
        ErrorResponse(message=message, errors=[ErrorDetail(field=None, message=message)]),
    )


def _friendly_db_error(exc: Exception) -> tuple[str, str | None, int]:
    """Map a database error to (message, field, status) without leaking SQL."""
    raw = str(getattr(exc, "orig", exc))
    lower = raw.lower()

    for constraint, mapped in _CONSTRAINT_MESSAGES.items():
        if constraint in lower:
            return mapped

    if "does not exist" in lower and ("column" in lower or "relation" in lower):
        return (
            "Database schema is out of date. Run the latest migrations and try again.",
            None,
            500,
        )
    if "unique" in lower or "duplicate key" in lower:
        return ("Record already exists", None, 409)
    if "foreign key" in lower:
        return ("Referenced record does not exist", None, 409)

    if settings.debug:
        return (raw, None, 500)
    return ("Database error", None, 500)


async def sqlalchemy_db_error_handler(request: Request, exc: Exception) -> JSONResponse:
    message, field, status_code = _friendly_db_error(exc)
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _render(
        status_code,
        ErrorResponse(
            message=message,
            error_type="DatabaseError",
            errors=[ErrorDetail(field=field, message=message)],
        ),
    )
