"""Read-only audit trail of the current school."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.schemas import AuditEntryResponse
from src.core.audit.service import list_audit_entries
from src.core.database.session import get_db
from src.core.schools.scope import CurrentScope
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/audit-logs", tags=["Audit"])


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[AuditEntryResponse]],
)
async def get_audit_trail(
    scope: CurrentScope,
    entity_type: str | None = Query(None),
    entity_id: int | None = Query(None),
    action: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    entries, total = await list_audit_entries(
        db,
        school_id=scope.school_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        page=page,
        limit=limit,
    )
    items = [AuditEntryResponse.model_validate(e) for e in entries]
    return ApiResponse(
        data=PaginatedResponse.create(items=items, total=total, page=page, limit=limit),
    )
