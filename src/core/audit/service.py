from enum import StrEnum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.models import AuditLog


class AuditAction(StrEnum):
    """Standard audit actions."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DEACTIVATE = "DEACTIVATE"
    CANCEL = "CANCEL"

    # Domain-specific actions
    APPLY_DISCOUNT = "APPLY_DISCOUNT"
    RECORD_PAYMENT = "RECORD_PAYMENT"
    SETTLE_PAYMENT = "SETTLE_PAYMENT"
    SETTLEMENT_FAILED = "SETTLEMENT_FAILED"
    REVERSE_PAYMENT = "REVERSE_PAYMENT"
    PROMOTE_STUDENT = "PROMOTE_STUDENT"
    COMPLETE_STUDENT = "COMPLETE_STUDENT"
    DEMOTE_STUDENT = "DEMOTE_STUDENT"
    RUN_PROMOTION = "RUN_PROMOTION"


class AuditService:
    """Service for creating audit logs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str | AuditAction,
        entity_type: str,
        entity_id: int,
        actor: str = "SYSTEM",
        school_id: int | None = None,
        entity_identifier: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        comment: str | None = None,
    ) -> AuditLog:
        """Create an audit log entry. Flushed, not committed."""
        audit_log = AuditLog(
            school_id=school_id,
            actor=actor,
            action=str(action),
            entity_type=entity_type,
            entity_id=entity_id,
            entity_identifier=entity_identifier,
            old_values=old_values,
            new_values=new_values,
            comment=comment,
        )

        self.db.add(audit_log)
        await self.db.flush()

        return audit_log


async def list_audit_entries(
    session: AsyncSession,
    *,
    school_id: int,
    entity_type: str | None = None,
    entity_id: int | None = None,
    action: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[AuditLog], int]:
    """
    List audit log entries of one school with optional filters.
    Returns (entries, total_count).
    """
    q = select(AuditLog).where(AuditLog.school_id == school_id)
    if entity_type is not None:
        q = q.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.where(AuditLog.entity_id == entity_id)
    if action is not None:
        q = q.where(AuditLog.action == action)

    total = (await session.execute(select(func.count()).select_from(q.subquery()))).scalar_one()

    q = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    q = q.offset((page - 1) * limit).limit(limit)
    result = await session.execute(q)
    return list(result.scalars().all()), total
